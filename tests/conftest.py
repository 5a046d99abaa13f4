from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from tracktube.dependencies import reset_cached_dependencies
from tracktube.main import create_app
from tracktube.repositories.database import Database


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Iterator[None]:  # pyright: ignore[reportUnusedFunction]
    for name in (
        "TRACKTUBE_SPOTIFY_ACCESS_TOKEN",
        "TRACKTUBE_SPOTIFY_TOKEN_PATH",
        "TRACKTUBE_YOUTUBE_API_KEY",
        "TRACKTUBE_RESOLVE_MAX_ATTEMPTS",
        "TRACKTUBE_DB_PATH",
        "TRACKTUBE_LOG_DIR",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("TRACKTUBE_DATA_DIR", str(tmp_path / "runtime-data"))
    monkeypatch.setenv("TRACKTUBE_TELEMETRY_SINK", "none")
    monkeypatch.chdir(tmp_path)
    reset_cached_dependencies()
    yield
    reset_cached_dependencies()


@pytest.fixture
def database(tmp_path: Path) -> Database:
    db = Database(tmp_path / "state" / "tracktube.db")
    db.initialize()
    return db


@pytest.fixture
def client(monkeypatch: pytest.MonkeyPatch) -> Iterator[TestClient]:
    monkeypatch.setenv("TRACKTUBE_YOUTUBE_API_KEY", "test-youtube-key")
    monkeypatch.setenv("TRACKTUBE_SPOTIFY_ACCESS_TOKEN", "test-spotify-token")
    reset_cached_dependencies()

    app = create_app()
    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
