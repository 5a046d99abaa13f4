from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

T = TypeVar("T")

SleepFn = Callable[[float], Awaitable[None]]


class RetryAborted(Exception):
    """Raised when a retry loop notices a stop request between attempts."""


def _never_give_up(_exc: Exception) -> bool:
    return False


def _never_stop() -> bool:
    return False


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int | None
    delay_seconds: float

    def __post_init__(self) -> None:
        if self.max_attempts is not None and self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1 or None for unbounded retries.")
        if self.delay_seconds < 0:
            raise ValueError("delay_seconds must not be negative.")

    @classmethod
    def unbounded(cls, delay_seconds: float) -> RetryPolicy:
        return cls(max_attempts=None, delay_seconds=delay_seconds)

    def allows_attempt(self, attempt: int) -> bool:
        return self.max_attempts is None or attempt <= self.max_attempts

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        retry_on: tuple[type[Exception], ...],
        sleep: SleepFn,
        giveup: Callable[[Exception], bool] = _never_give_up,
        should_stop: Callable[[], bool] = _never_stop,
        on_failure: Callable[[int, Exception], None] | None = None,
    ) -> T:
        """
        Await `operation` until it succeeds or the attempt budget runs out.

        Exceptions outside `retry_on`, or for which `giveup` returns true,
        propagate at once. When the budget is exhausted the last failure is
        re-raised. `should_stop` is checked before every attempt and raises
        `RetryAborted` when it returns true.
        """
        attempt = 0
        while True:
            if should_stop():
                raise RetryAborted(f"retry aborted after {attempt} attempt(s)")
            attempt += 1
            try:
                return await operation()
            except retry_on as exc:
                if giveup(exc):
                    raise
                if on_failure is not None:
                    on_failure(attempt, exc)
                if not self.allows_attempt(attempt + 1):
                    raise
            if self.delay_seconds > 0:
                await sleep(self.delay_seconds)
