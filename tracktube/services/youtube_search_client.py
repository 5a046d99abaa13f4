from __future__ import annotations

import logging
import sqlite3
from importlib import import_module
from typing import Any, cast

from tracktube.repositories.search_quota_repository import SearchQuotaRepository
from tracktube.services.playback_types import VideoMatch, VideoSearchError

LOGGER = logging.getLogger("tracktube.youtube")

SEARCH_LIST_QUOTA_UNITS = 100


class YouTubeSearchClient:
    """
    Finds the best-matching video for a query with the YouTube Data API.

    Every `search.list` call costs 100 quota units; usage is recorded in the
    quota repository when one is configured.
    """

    def __init__(
        self,
        *,
        api_key: str,
        quota_repository: SearchQuotaRepository | None = None,
        daily_quota_limit: int = 10_000,
        quota_warning_percent: float = 0.8,
        client: Any | None = None,
    ) -> None:
        normalized_key = api_key.strip()
        if not normalized_key:
            raise VideoSearchError("A YouTube Data API key is required for video search.")
        self._api_key = normalized_key
        self._quota_repository = quota_repository
        self._daily_quota_limit = max(0, daily_quota_limit)
        self._quota_warning_threshold = int(
            self._daily_quota_limit * min(1.0, max(0.0, quota_warning_percent))
        )
        self._client = client

    def search_video(self, query: str) -> VideoMatch:
        normalized_query = " ".join(query.split())
        if not normalized_query:
            raise VideoSearchError("Video search query is empty.")

        client = self._get_client()
        try:
            response = cast(
                dict[str, Any],
                client.search()
                .list(
                    part="snippet",
                    q=normalized_query,
                    type="video",
                    maxResults=1,
                )
                .execute(),
            )
        except Exception as exc:
            self._record_quota_usage()
            raise VideoSearchError(
                f"YouTube search request failed: {_summarize_exception_message(exc)}"
            ) from exc
        self._record_quota_usage()

        video_id = _first_video_id(response)
        if video_id is None:
            raise VideoSearchError(f"YouTube search returned no videos for {normalized_query!r}.")
        return VideoMatch.from_video_id(video_id)

    def _get_client(self) -> Any:
        if self._client is None:
            self._client = _build_youtube_client(self._api_key)
        return self._client

    def _record_quota_usage(self) -> None:
        if self._quota_repository is None:
            return
        try:
            snapshot = self._quota_repository.record_and_snapshot(
                estimated_units_this_call=SEARCH_LIST_QUOTA_UNITS,
                daily_limit=self._daily_quota_limit,
                warning_threshold=self._quota_warning_threshold,
            )
        except sqlite3.Error:
            LOGGER.warning("youtube search quota could not be recorded", exc_info=True)
            return
        if snapshot.warning:
            LOGGER.warning(
                "youtube search quota nearing limit units_today=%s limit=%s remaining=%s calls_today=%s",
                snapshot.estimated_units_today,
                snapshot.daily_limit,
                snapshot.remaining_units,
                snapshot.estimated_calls_today,
            )


def _build_youtube_client(api_key: str) -> Any:
    try:
        discovery_module = import_module("googleapiclient.discovery")
    except ImportError as exc:  # pragma: no cover - dependency controlled at runtime
        raise VideoSearchError("Video search requires the google-api-python-client dependency") from exc

    build_fn: Any = discovery_module.build
    return build_fn("youtube", "v3", developerKey=api_key, cache_discovery=False)


def _first_video_id(response: dict[str, Any]) -> str | None:
    for item in _as_list(response.get("items")):
        identifier = _as_dict(_as_dict(item).get("id"))
        video_id = identifier.get("videoId")
        if isinstance(video_id, str) and video_id.strip():
            return video_id.strip()
    return None


def _summarize_exception_message(exc: Exception, *, max_length: int = 400) -> str:
    raw = str(exc).strip()
    if not raw:
        raw = repr(exc)
    if len(raw) <= max_length:
        return raw
    return f"{raw[: max_length - 3]}..."


def _as_dict(value: Any) -> dict[str, Any]:
    if isinstance(value, dict):
        raw_dict = cast(dict[object, object], value)
        return {key: item for key, item in raw_dict.items() if isinstance(key, str)}
    return {}


def _as_list(value: Any) -> list[Any]:
    if isinstance(value, list):
        return list(cast(list[Any], value))
    return []
