from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Literal, Protocol
from uuid import uuid4

from structlog.contextvars import bind_contextvars, reset_contextvars

from tracktube.services.playback_types import (
    ResolutionExhaustedError,
    SearchFailedError,
    TrackFetchError,
    TrackSnapshot,
)
from tracktube.services.retry_policy import RetryAborted, RetryPolicy, SleepFn
from tracktube.services.track_diff import has_changed
from tracktube.services.video_resolver import Resolution, ResolutionSource, VideoResolver
from tracktube.telemetry import TelemetryClient

LOGGER = logging.getLogger("tracktube.driver")

DEFAULT_POLL_INTERVAL_SECONDS = 0.25
MIN_POLL_INTERVAL_SECONDS = 0.05
DEFAULT_FETCH_BACKOFF_SECONDS = 5.0
DEFAULT_RESOLVE_MAX_ATTEMPTS = 3

DriverState = Literal["idle", "fetching", "changed", "unchanged", "backoff"]
ResolutionErrorHandler = Callable[[TrackSnapshot, ResolutionExhaustedError], Awaitable[None]]


class PlaybackFetcher(Protocol):
    def fetch_current_track(self) -> TrackSnapshot:
        ...


class Delivery(Protocol):
    async def send(self, message: str) -> None:
        ...


@dataclass
class PollState:
    last_snapshot: TrackSnapshot | None = None


@dataclass(frozen=True)
class PollOutcome:
    snapshot: TrackSnapshot
    changed: bool
    fetch_failures: int = 0
    delivered_url: str | None = None
    resolution_source: ResolutionSource | None = None
    error: ResolutionExhaustedError | None = None


class PollingDriver:
    """
    Poll the playback fetcher and deliver a video link whenever the track changes.

    One driver serves one consumer and runs one cycle at a time:
    fetch, diff against the last snapshot, resolve, deliver. Fetch failures
    back off and retry forever unless the error is fatal. Search failures are
    retried under `resolve_retry`; when that budget runs out the change is
    reported as a `ResolutionExhaustedError`, handed to `on_resolution_error`
    when one is given, and polling continues. A `DeliveryError` or a fatal
    `TrackFetchError` ends `run()`.
    """

    def __init__(
        self,
        *,
        fetcher: PlaybackFetcher,
        resolver: VideoResolver,
        delivery: Delivery,
        poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
        fetch_backoff_seconds: float = DEFAULT_FETCH_BACKOFF_SECONDS,
        resolve_retry: RetryPolicy | None = None,
        telemetry: TelemetryClient | None = None,
        sleep: SleepFn | None = None,
        driver_id: str | None = None,
        on_resolution_error: ResolutionErrorHandler | None = None,
    ) -> None:
        self._fetcher = fetcher
        self._resolver = resolver
        self._delivery = delivery
        self._poll_interval_seconds = max(MIN_POLL_INTERVAL_SECONDS, poll_interval_seconds)
        self._fetch_retry = RetryPolicy.unbounded(max(0.0, fetch_backoff_seconds))
        self._resolve_retry = (
            resolve_retry
            if resolve_retry is not None
            else RetryPolicy(max_attempts=DEFAULT_RESOLVE_MAX_ATTEMPTS, delay_seconds=0.0)
        )
        self._driver_id = driver_id or uuid4().hex
        self._telemetry = (
            telemetry if telemetry is not None else TelemetryClient.disabled()
        ).bound(driver_id=self._driver_id)
        self._sleep = sleep
        self._on_resolution_error = on_resolution_error
        self._poll_state = PollState()
        self._state: DriverState = "idle"
        self._stop_event = asyncio.Event()

    @property
    def state(self) -> DriverState:
        return self._state

    @property
    def poll_state(self) -> PollState:
        return self._poll_state

    @property
    def poll_interval_seconds(self) -> float:
        return self._poll_interval_seconds

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()

    def stop(self) -> None:
        self._stop_event.set()

    async def run(self) -> None:
        context_tokens = bind_contextvars(driver_id=self._driver_id)
        LOGGER.info("polling driver started poll_interval_seconds=%s", self._poll_interval_seconds)
        try:
            while not self.stopped:
                outcome = await self.poll_once()
                if outcome.error is not None and self._on_resolution_error is not None:
                    await self._on_resolution_error(outcome.snapshot, outcome.error)
                if self.stopped:
                    break
                self._state = "idle"
                await self._pause(self._poll_interval_seconds)
        except RetryAborted:
            LOGGER.info("polling driver stop requested during retry")
        finally:
            self._state = "idle"
            LOGGER.info("polling driver stopped")
            reset_contextvars(**context_tokens)

    async def poll_once(self) -> PollOutcome:
        fetch_failures = 0

        def _on_fetch_failure(attempt: int, exc: Exception) -> None:
            nonlocal fetch_failures
            fetch_failures = attempt
            self._state = "backoff"
            LOGGER.warning(
                "playback fetch failed attempt=%s; retrying in %ss error=%s",
                attempt,
                self._fetch_retry.delay_seconds,
                exc,
            )
            self._telemetry.emit(
                "driver.fetch.error",
                attempt=attempt,
                error_type=type(exc).__name__,
            )

        snapshot = await self._fetch_retry.run(
            self._fetch,
            retry_on=(TrackFetchError,),
            giveup=_is_fatal_fetch_error,
            sleep=self._pause,
            should_stop=lambda: self.stopped,
            on_failure=_on_fetch_failure,
        )

        if not has_changed(self._poll_state.last_snapshot, snapshot):
            self._state = "unchanged"
            return PollOutcome(snapshot=snapshot, changed=False, fetch_failures=fetch_failures)

        self._state = "changed"
        self._poll_state.last_snapshot = snapshot
        LOGGER.info(
            "track changed: %s at %s",
            snapshot.describe(),
            snapshot.progress_as_string(),
        )
        self._telemetry.emit("driver.track.changed", has_item=snapshot.has_item)
        if not snapshot.has_item:
            return PollOutcome(snapshot=snapshot, changed=True, fetch_failures=fetch_failures)

        try:
            resolution = await self._resolve(snapshot)
        except ResolutionExhaustedError as exc:
            LOGGER.warning("giving up on video resolution for %s: %s", snapshot.describe(), exc)
            self._telemetry.emit("driver.resolve.exhausted", attempts=exc.attempts)
            return PollOutcome(
                snapshot=snapshot,
                changed=True,
                fetch_failures=fetch_failures,
                error=exc,
            )

        delivered_url = resolution.match.embed_url
        await self._delivery.send(delivered_url)
        self._telemetry.emit(
            "driver.delivery.finish",
            video_id=resolution.match.video_id,
            source=resolution.source,
        )
        return PollOutcome(
            snapshot=snapshot,
            changed=True,
            fetch_failures=fetch_failures,
            delivered_url=delivered_url,
            resolution_source=resolution.source,
        )

    async def _fetch(self) -> TrackSnapshot:
        self._state = "fetching"
        return await asyncio.to_thread(self._fetcher.fetch_current_track)

    async def _resolve(self, snapshot: TrackSnapshot) -> Resolution:
        attempts = 0

        def _on_resolve_failure(attempt: int, exc: Exception) -> None:
            nonlocal attempts
            attempts = attempt
            self._telemetry.emit(
                "driver.resolve.error",
                attempt=attempt,
                error_type=type(exc).__name__,
            )

        async def _attempt() -> Resolution:
            return await asyncio.to_thread(self._resolver.resolve_with_source, snapshot)

        try:
            return await self._resolve_retry.run(
                _attempt,
                retry_on=(SearchFailedError,),
                sleep=self._pause,
                should_stop=lambda: self.stopped,
                on_failure=_on_resolve_failure,
            )
        except SearchFailedError as exc:
            raise ResolutionExhaustedError(
                f"Video search failed {attempts} time(s) for {snapshot.describe()}",
                attempts=attempts,
            ) from exc

    async def _pause(self, seconds: float) -> None:
        if self._sleep is not None:
            await self._sleep(seconds)
            return
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except TimeoutError:
            return


def _is_fatal_fetch_error(exc: Exception) -> bool:
    return isinstance(exc, TrackFetchError) and exc.fatal
