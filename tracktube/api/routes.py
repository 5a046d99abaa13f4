from __future__ import annotations

import asyncio
import logging
from typing import Annotated, Protocol

from fastapi import APIRouter, Depends, HTTPException, Query, WebSocket
from starlette.websockets import WebSocketState

from tracktube.dependencies import (
    build_polling_driver,
    get_recency_cache,
    get_resolver,
    get_track_video_repository,
)
from tracktube.models.api_contracts import RecencyCacheResponse, ResolveResponse
from tracktube.repositories.track_video_repository import TrackVideoRepository
from tracktube.services.delivery import WebSocketDelivery
from tracktube.services.playback_types import (
    DeliveryError,
    ResolutionExhaustedError,
    ResolveError,
    SearchFailedError,
    TrackFetchError,
    TrackKey,
    TrackSnapshot,
)
from tracktube.services.polling_driver import Delivery, PollingDriver, ResolutionErrorHandler
from tracktube.services.recency_cache import RecencyCache
from tracktube.services.video_resolver import VideoResolver

LOGGER = logging.getLogger("tracktube.api")

router = APIRouter()


class DriverFactory(Protocol):
    def __call__(
        self,
        delivery: Delivery,
        *,
        on_resolution_error: ResolutionErrorHandler | None = None,
    ) -> PollingDriver:
        ...


def get_driver_factory() -> DriverFactory:
    return build_polling_driver


@router.get(
    "/v1/resolve",
    response_model=ResolveResponse,
    tags=["resolve"],
    operation_id="resolve_track",
)
def resolve_track(
    resolver: Annotated[VideoResolver, Depends(get_resolver)],
    title: Annotated[str, Query(min_length=1)],
    artist: Annotated[str, Query(min_length=1)],
    progress_ms: Annotated[int, Query(ge=0)] = 0,
) -> ResolveResponse:
    snapshot = TrackSnapshot(title=title, artist=artist, progress_ms=progress_ms)
    try:
        resolution = resolver.resolve_with_source(snapshot)
    except SearchFailedError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    except ResolveError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    key = TrackKey.from_snapshot(snapshot)
    return ResolveResponse(
        title=key.title,
        artist=key.artist,
        video_id=resolution.match.video_id,
        watch_url=resolution.match.watch_url,
        embed_url=resolution.match.embed_url,
        source=resolution.source,
    )


@router.get(
    "/v1/cache",
    response_model=RecencyCacheResponse,
    tags=["resolve"],
    operation_id="recency_cache_stats",
)
def recency_cache_stats(
    cache: Annotated[RecencyCache[TrackKey, str], Depends(get_recency_cache)],
    repository: Annotated[TrackVideoRepository, Depends(get_track_video_repository)],
) -> RecencyCacheResponse:
    stats = cache.stats()
    return RecencyCacheResponse(
        capacity=stats.capacity,
        size=stats.size,
        hits=stats.hits,
        misses=stats.misses,
        evictions=stats.evictions,
        stored_tracks=repository.count(),
    )


@router.websocket("/v1/now-playing/ws")
async def now_playing_socket(
    websocket: WebSocket,
    driver_factory: Annotated[DriverFactory, Depends(get_driver_factory)],
) -> None:
    await websocket.accept()
    delivery = WebSocketDelivery(websocket)

    async def _notify_resolution_failed(
        snapshot: TrackSnapshot, exc: ResolutionExhaustedError
    ) -> None:
        await delivery.send_notice(
            {
                "type": "resolution_failed",
                "title": snapshot.title,
                "artist": snapshot.artist,
                "attempts": exc.attempts,
                "detail": str(exc),
            }
        )

    driver = driver_factory(delivery, on_resolution_error=_notify_resolution_failed)
    watcher = asyncio.create_task(delivery.wait_closed())
    watcher.add_done_callback(lambda _task: driver.stop())

    try:
        await driver.run()
    except DeliveryError as exc:
        LOGGER.info("viewer connection ended: %s", exc)
    except TrackFetchError as exc:
        LOGGER.warning("playback source failed permanently: %s", exc)
        if websocket.client_state == WebSocketState.CONNECTED:
            await websocket.close(code=1011, reason="playback source unavailable")
    finally:
        watcher.cancel()
