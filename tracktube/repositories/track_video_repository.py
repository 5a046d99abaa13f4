from __future__ import annotations

import sqlite3
from dataclasses import dataclass

from tracktube.repositories.common import utc_now_iso
from tracktube.repositories.database import Database
from tracktube.services.playback_types import TrackKey, TrackVideoStoreError


@dataclass(frozen=True)
class StoredTrackVideo:
    title: str
    artist: str
    video_id: str
    created_at: str


class TrackVideoRepository:
    """Persistent `(title, artist) -> video_id` mapping. Rows are never rewritten."""

    def __init__(self, db: Database) -> None:
        self._db = db

    def lookup(self, key: TrackKey) -> str | None:
        try:
            with self._db.connection() as conn:
                row = conn.execute(
                    """
                    SELECT video_id
                    FROM track_videos
                    WHERE title = ? AND artist = ?
                    """,
                    (key.title, key.artist),
                ).fetchone()
        except sqlite3.Error as exc:
            raise TrackVideoStoreError(f"Track video lookup failed: {exc}") from exc

        if row is None:
            return None
        video_id = row["video_id"]
        if not isinstance(video_id, str) or not video_id.strip():
            return None
        return video_id

    def store(self, key: TrackKey, video_id: str) -> None:
        try:
            with self._db.connection() as conn:
                conn.execute(
                    """
                    INSERT INTO track_videos (title, artist, video_id, created_at)
                    VALUES (?, ?, ?, ?)
                    ON CONFLICT(title, artist) DO NOTHING
                    """,
                    (key.title, key.artist, video_id, utc_now_iso()),
                )
        except sqlite3.Error as exc:
            raise TrackVideoStoreError(f"Track video insert failed: {exc}") from exc

    def list_recent(self, *, limit: int) -> list[StoredTrackVideo]:
        with self._db.connection() as conn:
            rows = conn.execute(
                """
                SELECT title, artist, video_id, created_at
                FROM track_videos
                ORDER BY created_at DESC
                LIMIT ?
                """,
                (max(1, limit),),
            ).fetchall()

        return [
            StoredTrackVideo(
                title=str(row["title"]),
                artist=str(row["artist"]),
                video_id=str(row["video_id"]),
                created_at=str(row["created_at"]),
            )
            for row in rows
        ]

    def count(self) -> int:
        with self._db.connection() as conn:
            row = conn.execute("SELECT COUNT(*) AS total FROM track_videos").fetchone()
        return int(row["total"]) if row is not None else 0
