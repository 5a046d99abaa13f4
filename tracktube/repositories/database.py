from __future__ import annotations

import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS track_videos (
    title TEXT NOT NULL,
    artist TEXT NOT NULL,
    video_id TEXT NOT NULL,
    created_at TEXT NOT NULL,
    PRIMARY KEY (title, artist)
);

CREATE TABLE IF NOT EXISTS youtube_search_quota_daily (
    date_utc TEXT PRIMARY KEY,
    units_used INTEGER NOT NULL,
    calls INTEGER NOT NULL,
    updated_at TEXT NOT NULL
);
"""


class Database:
    def __init__(self, path: Path) -> None:
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self._path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()

    def initialize(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with self.connection() as conn:
            conn.executescript(SCHEMA_SQL)
