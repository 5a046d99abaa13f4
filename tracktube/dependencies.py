from __future__ import annotations

from functools import lru_cache
from uuid import uuid4

from tracktube.config import AppSettings, load_settings
from tracktube.repositories.database import Database
from tracktube.repositories.search_quota_repository import SearchQuotaRepository
from tracktube.repositories.track_video_repository import TrackVideoRepository
from tracktube.services.playback_types import TrackKey
from tracktube.services.polling_driver import (
    Delivery,
    PlaybackFetcher,
    PollingDriver,
    ResolutionErrorHandler,
)
from tracktube.services.recency_cache import RecencyCache
from tracktube.services.retry_policy import RetryPolicy
from tracktube.services.spotify_playback_client import (
    SpotifyPlaybackClient,
    TokenProvider,
    file_token_provider,
    static_token_provider,
)
from tracktube.services.video_resolver import VideoResolver
from tracktube.services.youtube_search_client import YouTubeSearchClient
from tracktube.telemetry import TelemetryClient, build_telemetry_client


@lru_cache(maxsize=1)
def get_settings() -> AppSettings:
    return load_settings()


@lru_cache(maxsize=1)
def get_database() -> Database:
    database = Database(get_settings().db_path)
    database.initialize()
    return database


@lru_cache(maxsize=1)
def get_track_video_repository() -> TrackVideoRepository:
    return TrackVideoRepository(get_database())


@lru_cache(maxsize=1)
def get_recency_cache() -> RecencyCache[TrackKey, str]:
    return RecencyCache(get_settings().recency_cache_capacity)


@lru_cache(maxsize=1)
def get_resolver() -> VideoResolver:
    settings = get_settings()
    assert settings.youtube_api_key is not None
    return VideoResolver(
        store=get_track_video_repository(),
        cache=get_recency_cache(),
        searcher=YouTubeSearchClient(
            api_key=settings.youtube_api_key,
            quota_repository=SearchQuotaRepository(get_database()),
            daily_quota_limit=settings.youtube_daily_quota_limit,
            quota_warning_percent=settings.youtube_quota_warning_percent,
        ),
        search_query_suffix=settings.youtube_search_query_suffix,
        rewarm_store=settings.rewarm_store_on_cache_hit,
        telemetry=get_telemetry(),
    )


@lru_cache(maxsize=1)
def get_telemetry() -> TelemetryClient:
    settings = get_settings()
    return build_telemetry_client(
        enabled=settings.telemetry_enabled,
        sink=settings.telemetry_sink,
    )


def build_playback_fetcher() -> PlaybackFetcher:
    settings = get_settings()
    return SpotifyPlaybackClient(
        token_provider=_spotify_token_provider(settings),
        base_url=settings.spotify_api_base_url,
        timeout_seconds=settings.spotify_http_timeout_seconds,
        market=settings.spotify_market,
    )


def build_polling_driver(
    delivery: Delivery,
    *,
    fetcher: PlaybackFetcher | None = None,
    on_resolution_error: ResolutionErrorHandler | None = None,
) -> PollingDriver:
    settings = get_settings()
    return PollingDriver(
        fetcher=fetcher if fetcher is not None else build_playback_fetcher(),
        resolver=get_resolver(),
        delivery=delivery,
        poll_interval_seconds=settings.poll_interval_seconds,
        fetch_backoff_seconds=settings.fetch_backoff_seconds,
        resolve_retry=RetryPolicy(
            max_attempts=settings.resolve_max_attempts,
            delay_seconds=settings.resolve_retry_delay_seconds,
        ),
        telemetry=get_telemetry(),
        driver_id=uuid4().hex,
        on_resolution_error=on_resolution_error,
    )


def _spotify_token_provider(settings: AppSettings) -> TokenProvider:
    if settings.spotify_access_token is not None:
        return static_token_provider(settings.spotify_access_token)
    assert settings.spotify_token_path is not None
    return file_token_provider(settings.spotify_token_path)


def reset_cached_dependencies() -> None:
    get_resolver.cache_clear()
    get_recency_cache.cache_clear()
    get_track_video_repository.cache_clear()
    get_database.cache_clear()
    get_telemetry.cache_clear()
    get_settings.cache_clear()
