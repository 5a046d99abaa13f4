from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from time import perf_counter
from uuid import uuid4

from fastapi import FastAPI, Request, Response
from structlog.contextvars import bind_contextvars, reset_contextvars

from tracktube.api.routes import router
from tracktube.dependencies import get_database, get_recency_cache, get_settings, get_telemetry
from tracktube.logging_config import configure_application_logging

LOGGER = logging.getLogger("tracktube.server")

REQUEST_ID_HEADER = "X-Request-ID"


def health_check() -> dict[str, str]:
    return {"status": "ok"}


@asynccontextmanager
async def app_lifespan(_: FastAPI) -> AsyncIterator[None]:
    settings = get_settings()
    configure_application_logging(settings)
    database = get_database()
    LOGGER.info(
        "tracktube server ready db_path=%s poll_interval_seconds=%s recency_cache_capacity=%s",
        database.path,
        settings.poll_interval_seconds,
        settings.recency_cache_capacity,
    )
    try:
        yield
    finally:
        stats = get_recency_cache().stats()
        LOGGER.info(
            "tracktube server stopping cache_size=%s cache_hits=%s cache_misses=%s",
            stats.size,
            stats.hits,
            stats.misses,
        )


async def request_context_middleware(
    request: Request,
    call_next: Callable[[Request], Awaitable[Response]],
) -> Response:
    request_id = _request_id(request)
    telemetry = get_telemetry().bound(request_id=request_id, path=request.url.path)
    context_tokens = bind_contextvars(
        http_request_id=request_id,
        http_method=request.method,
        http_path=request.url.path,
    )
    started_at = perf_counter()
    try:
        response = await call_next(request)
    except Exception as exc:
        telemetry.emit(
            "http.request.error",
            duration_ms=_elapsed_ms(started_at),
            error_type=type(exc).__name__,
        )
        raise
    finally:
        reset_contextvars(**context_tokens)

    response.headers[REQUEST_ID_HEADER] = request_id
    telemetry.emit(
        "http.request.finish",
        duration_ms=_elapsed_ms(started_at),
        status_code=response.status_code,
    )
    return response


def create_app() -> FastAPI:
    app = FastAPI(title="tracktube", version="0.1.0", lifespan=app_lifespan)
    app.middleware("http")(request_context_middleware)
    app.include_router(router)
    app.add_api_route(
        "/health",
        health_check,
        methods=["GET"],
        tags=["system"],
        operation_id="health_check",
    )
    return app


def _request_id(request: Request) -> str:
    incoming = request.headers.get(REQUEST_ID_HEADER)
    if isinstance(incoming, str) and incoming.strip():
        return incoming.strip()
    return str(uuid4())


def _elapsed_ms(started_at: float) -> int:
    return int((perf_counter() - started_at) * 1000)


app = create_app()
