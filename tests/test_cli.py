from __future__ import annotations

import pytest
from click.testing import CliRunner

from tracktube import cli
from tracktube.repositories.database import Database
from tracktube.repositories.track_video_repository import TrackVideoRepository
from tracktube.services.playback_types import (
    TrackFetchError,
    TrackKey,
    TrackSnapshot,
    VideoMatch,
    VideoSearchError,
)
from tracktube.services.polling_driver import Delivery, PollingDriver, ResolutionErrorHandler
from tracktube.services.recency_cache import RecencyCache
from tracktube.services.video_resolver import VideoResolver


class _FakeSearcher:
    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail

    def search_video(self, query: str) -> VideoMatch:
        if self.fail:
            raise VideoSearchError("quota exceeded")
        return VideoMatch.from_video_id("vid_" + query.replace(" ", "_"))


class _FakeStore:
    def lookup(self, key: TrackKey) -> str | None:
        _ = key
        return None

    def store(self, key: TrackKey, video_id: str) -> None:
        _ = (key, video_id)


class _OneTrackFetcher:
    def __init__(self) -> None:
        self._served = False

    def fetch_current_track(self) -> TrackSnapshot:
        if self._served:
            raise TrackFetchError("token revoked", fatal=True)
        self._served = True
        return TrackSnapshot(title="Song1", artist="ArtistA", progress_ms=5_000)


async def _no_sleep(_seconds: float) -> None:
    return None


def _resolver(*, fail: bool = False) -> VideoResolver:
    return VideoResolver(store=_FakeStore(), cache=RecencyCache(2), searcher=_FakeSearcher(fail=fail))


@pytest.fixture(autouse=True)
def _cli_env(monkeypatch: pytest.MonkeyPatch) -> None:  # pyright: ignore[reportUnusedFunction]
    monkeypatch.setenv("TRACKTUBE_YOUTUBE_API_KEY", "test-youtube-key")
    monkeypatch.setenv("TRACKTUBE_SPOTIFY_ACCESS_TOKEN", "test-spotify-token")
    monkeypatch.setattr(cli, "configure_application_logging", lambda _settings: None)


def test_resolve_prints_link(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(cli, "get_resolver", _resolver)

    result = CliRunner().invoke(cli.main, ["resolve", "ArtistA", "Song1", "--progress", "30"])

    assert result.exit_code == 0, result.output
    assert "https://www.youtube.com/embed/vid_ArtistA_Song1?start=30&autoplay=1&enablejsapi=1" in result.output
    assert "source: search" in result.output


def test_resolve_reports_search_failure(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(cli, "get_resolver", lambda: _resolver(fail=True))

    result = CliRunner().invoke(cli.main, ["resolve", "ArtistA", "Song1"])

    assert result.exit_code == 1
    assert "quota exceeded" in result.output


def test_watch_echoes_links_until_source_fails(monkeypatch: pytest.MonkeyPatch) -> None:
    def _build(
        delivery: Delivery,
        *,
        on_resolution_error: ResolutionErrorHandler | None = None,
    ) -> PollingDriver:
        return PollingDriver(
            fetcher=_OneTrackFetcher(),
            resolver=_resolver(),
            delivery=delivery,
            sleep=_no_sleep,
            on_resolution_error=on_resolution_error,
        )

    monkeypatch.setattr(cli, "build_polling_driver", _build)

    result = CliRunner().invoke(cli.main, ["watch"])

    assert result.exit_code == 1
    assert "https://www.youtube.com/embed/vid_ArtistA_Song1?start=5&autoplay=1&enablejsapi=1" in result.output
    assert "Playback source failed: token revoked" in result.output


def test_watch_reports_tracks_without_a_video(monkeypatch: pytest.MonkeyPatch) -> None:
    def _build(
        delivery: Delivery,
        *,
        on_resolution_error: ResolutionErrorHandler | None = None,
    ) -> PollingDriver:
        return PollingDriver(
            fetcher=_OneTrackFetcher(),
            resolver=_resolver(fail=True),
            delivery=delivery,
            sleep=_no_sleep,
            on_resolution_error=on_resolution_error,
        )

    monkeypatch.setattr(cli, "build_polling_driver", _build)

    result = CliRunner().invoke(cli.main, ["watch"])

    assert result.exit_code == 1
    assert "no video found for Song1 by ArtistA" in result.output
    assert "youtube.com" not in result.output


def test_resolve_rejects_blank_title(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(cli, "get_resolver", _resolver)

    result = CliRunner().invoke(cli.main, ["resolve", "ArtistA", "  "])

    assert result.exit_code == 1
    assert "nothing is playing" in result.output


def test_history_lists_stored_pairs(monkeypatch: pytest.MonkeyPatch, database: Database) -> None:
    repository = TrackVideoRepository(database)
    repository.store(TrackKey(title="Song1", artist="ArtistA"), "vid_1")
    monkeypatch.setattr(cli, "get_track_video_repository", lambda: repository)

    result = CliRunner().invoke(cli.main, ["history", "--limit", "5"])

    assert result.exit_code == 0, result.output
    assert "ArtistA - Song1  vid_1" in result.output
