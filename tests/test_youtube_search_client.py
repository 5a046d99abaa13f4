from __future__ import annotations

import sqlite3
from typing import Any, cast

import pytest

from tracktube.repositories.database import Database
from tracktube.repositories.search_quota_repository import SearchQuotaRepository
from tracktube.services.playback_types import VideoSearchError
from tracktube.services.youtube_search_client import SEARCH_LIST_QUOTA_UNITS, YouTubeSearchClient


class _FakeRequest:
    def __init__(self, response: dict[str, Any] | Exception) -> None:
        self._response = response

    def execute(self) -> dict[str, Any]:
        if isinstance(self._response, Exception):
            raise self._response
        return self._response


class _FakeSearchResource:
    def __init__(self, response: dict[str, Any] | Exception) -> None:
        self._response = response
        self.list_calls: list[dict[str, Any]] = []

    def list(self, **kwargs: Any) -> _FakeRequest:
        self.list_calls.append(kwargs)
        return _FakeRequest(self._response)


class _FakeYouTubeClient:
    def __init__(self, response: dict[str, Any] | Exception) -> None:
        self.resource = _FakeSearchResource(response)

    def search(self) -> _FakeSearchResource:
        return self.resource


def test_search_video_returns_first_video(database: Database) -> None:
    fake = _FakeYouTubeClient(
        {
            "items": [
                {"id": {"kind": "youtube#video", "videoId": "dQw4w9WgXcQ"}},
                {"id": {"kind": "youtube#video", "videoId": "other"}},
            ]
        }
    )
    client = YouTubeSearchClient(
        api_key="key",
        quota_repository=SearchQuotaRepository(database),
        client=fake,
    )

    match = client.search_video("  ArtistA   Song1 ")

    assert match.video_id == "dQw4w9WgXcQ"
    assert match.watch_url == "https://www.youtube.com/watch?v=dQw4w9WgXcQ"
    assert match.embed_url.startswith("https://www.youtube.com/embed/dQw4w9WgXcQ")
    assert fake.resource.list_calls == [
        {"part": "snippet", "q": "ArtistA Song1", "type": "video", "maxResults": 1}
    ]

    assert SearchQuotaRepository(database).usage_today() == (SEARCH_LIST_QUOTA_UNITS, 1)


def test_search_video_without_results_raises() -> None:
    client = YouTubeSearchClient(api_key="key", client=_FakeYouTubeClient({"items": []}))

    with pytest.raises(VideoSearchError, match="no videos"):
        client.search_video("ArtistA Song1")


def test_search_video_wraps_api_errors_and_still_counts_quota(database: Database) -> None:
    client = YouTubeSearchClient(
        api_key="key",
        quota_repository=SearchQuotaRepository(database),
        client=_FakeYouTubeClient(RuntimeError("quotaExceeded")),
    )

    with pytest.raises(VideoSearchError, match="quotaExceeded"):
        client.search_video("ArtistA Song1")

    assert SearchQuotaRepository(database).usage_today() == (SEARCH_LIST_QUOTA_UNITS, 1)


def test_empty_query_is_rejected_without_api_call() -> None:
    fake = _FakeYouTubeClient({"items": []})
    client = YouTubeSearchClient(api_key="key", client=fake)

    with pytest.raises(VideoSearchError, match="empty"):
        client.search_video("   ")
    assert fake.resource.list_calls == []


def test_missing_api_key_is_rejected() -> None:
    with pytest.raises(VideoSearchError, match="API key"):
        YouTubeSearchClient(api_key=" ")


class _LockedQuotaRepository:
    def __init__(self) -> None:
        self.calls = 0

    def record_and_snapshot(self, **_: Any) -> None:
        self.calls += 1
        raise sqlite3.OperationalError("database is locked")


def test_quota_write_failure_does_not_hide_search_result() -> None:
    quota = _LockedQuotaRepository()
    client = YouTubeSearchClient(
        api_key="key",
        quota_repository=cast(SearchQuotaRepository, quota),
        client=_FakeYouTubeClient({"items": [{"id": {"videoId": "vid_1"}}]}),
    )

    match = client.search_video("ArtistA Song1")

    assert match.video_id == "vid_1"
    assert quota.calls == 1


def test_quota_write_failure_does_not_mask_search_error() -> None:
    quota = _LockedQuotaRepository()
    client = YouTubeSearchClient(
        api_key="key",
        quota_repository=cast(SearchQuotaRepository, quota),
        client=_FakeYouTubeClient(RuntimeError("backendError")),
    )

    with pytest.raises(VideoSearchError, match="backendError"):
        client.search_video("ArtistA Song1")
    assert quota.calls == 1
