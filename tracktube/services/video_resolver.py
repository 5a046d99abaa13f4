from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Literal, Protocol

from tracktube.services.playback_types import (
    SearchFailedError,
    TrackKey,
    TrackSnapshot,
    TrackVideoStoreError,
    VideoMatch,
    VideoSearchError,
)
from tracktube.services.recency_cache import RecencyCache
from tracktube.telemetry import TelemetryClient

LOGGER = logging.getLogger("tracktube.resolver")

ResolutionSource = Literal["store", "memory", "search"]


class TrackVideoStore(Protocol):
    def lookup(self, key: TrackKey) -> str | None:
        ...

    def store(self, key: TrackKey, video_id: str) -> None:
        ...


class VideoSearcher(Protocol):
    def search_video(self, query: str) -> VideoMatch:
        ...


@dataclass(frozen=True)
class Resolution:
    match: VideoMatch
    source: ResolutionSource


class VideoResolver:
    """
    Cache-aside resolution of a playing track to a YouTube video.

    Lookup order is persistent store, then the in-memory recency cache, then
    the search API. Only a successful search writes to both caches; a failed
    search leaves them untouched so the same track can be retried later.
    With `rewarm_store` enabled a memory hit is also written back to the store.
    """

    def __init__(
        self,
        *,
        store: TrackVideoStore,
        cache: RecencyCache[TrackKey, str],
        searcher: VideoSearcher,
        search_query_suffix: str | None = None,
        rewarm_store: bool = False,
        telemetry: TelemetryClient | None = None,
    ) -> None:
        self._store = store
        self._cache = cache
        self._searcher = searcher
        self._search_query_suffix = search_query_suffix
        self._rewarm_store = rewarm_store
        self._telemetry = telemetry if telemetry is not None else TelemetryClient.disabled()

    @property
    def cache(self) -> RecencyCache[TrackKey, str]:
        return self._cache

    def resolve(self, track: TrackSnapshot) -> VideoMatch:
        return self.resolve_with_source(track).match

    def resolve_with_source(self, track: TrackSnapshot) -> Resolution:
        key = TrackKey.from_snapshot(track)

        stored_video_id = self._lookup_store(key)
        if stored_video_id is not None:
            return self._hit(key, stored_video_id, track, "store")

        cached_video_id = self._cache.get(key)
        if cached_video_id is not None:
            if self._rewarm_store:
                self._write_store(key, cached_video_id)
            return self._hit(key, cached_video_id, track, "memory")

        query = key.search_query(self._search_query_suffix)
        self._telemetry.emit("resolver.search", title=key.title, artist=key.artist)
        try:
            found = self._searcher.search_video(query)
        except VideoSearchError as exc:
            LOGGER.warning("video search failed query=%r error=%s", query, exc)
            raise SearchFailedError(f"Video search failed for {track.describe()}: {exc}") from exc

        self._cache.put(key, found.video_id)
        self._write_store(key, found.video_id)
        LOGGER.info(
            "resolved track via search title=%r artist=%r video_id=%s",
            key.title,
            key.artist,
            found.video_id,
        )
        return Resolution(match=_synthesize_match(found.video_id, track), source="search")

    def _hit(
        self,
        key: TrackKey,
        video_id: str,
        track: TrackSnapshot,
        source: ResolutionSource,
    ) -> Resolution:
        self._telemetry.emit("resolver.hit", source=source, title=key.title, artist=key.artist)
        LOGGER.debug(
            "resolved track from %s title=%r artist=%r",
            source,
            key.title,
            key.artist,
        )
        return Resolution(match=_synthesize_match(video_id, track), source=source)

    def _lookup_store(self, key: TrackKey) -> str | None:
        try:
            return self._store.lookup(key)
        except TrackVideoStoreError:
            LOGGER.warning(
                "track video store lookup failed; treating as miss title=%r artist=%r",
                key.title,
                key.artist,
                exc_info=True,
            )
            return None

    def _write_store(self, key: TrackKey, video_id: str) -> None:
        try:
            self._store.store(key, video_id)
        except TrackVideoStoreError:
            LOGGER.warning(
                "track video store write failed title=%r artist=%r video_id=%s",
                key.title,
                key.artist,
                video_id,
                exc_info=True,
            )


def _synthesize_match(video_id: str, track: TrackSnapshot) -> VideoMatch:
    return VideoMatch.from_video_id(video_id, start_seconds=track.progress_seconds)
