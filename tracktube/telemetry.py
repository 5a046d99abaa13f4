"""Lightweight telemetry events for the polling drivers, the resolver and the HTTP layer."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Literal, Protocol

import structlog

TelemetrySinkName = Literal["none", "log"]
AttributeValue = bool | int | float | str | None

REDACTED = "[redacted]"
_CREDENTIAL_KEY_FRAGMENTS: tuple[str, ...] = (
    "token",
    "api_key",
    "authorization",
    "secret",
    "cookie",
)
_MAX_TEXT_LENGTH = 160


class TelemetrySink(Protocol):
    def emit(self, *, event_name: str, attributes: Mapping[str, Any]) -> None:
        ...


class NoOpTelemetrySink:
    def emit(self, *, event_name: str, attributes: Mapping[str, Any]) -> None:
        _ = (event_name, attributes)


class StructuredLogTelemetrySink:
    """Writes each event as one record on the `tracktube.telemetry` logger."""

    def __init__(self) -> None:
        self._logger = structlog.get_logger("tracktube.telemetry")

    def emit(self, *, event_name: str, attributes: Mapping[str, Any]) -> None:
        self._logger.info("telemetry", telemetry_event=event_name, **dict(attributes))


@dataclass(frozen=True)
class TelemetryClient:
    enabled: bool
    sink: TelemetrySink
    context: Mapping[str, AttributeValue] = field(default_factory=dict)

    @classmethod
    def disabled(cls) -> TelemetryClient:
        return cls(enabled=False, sink=NoOpTelemetrySink())

    def bound(self, **attributes: Any) -> TelemetryClient:
        """Return a client that adds `attributes` to every event it emits."""
        if not self.enabled:
            return self
        return TelemetryClient(
            enabled=True,
            sink=self.sink,
            context={**self.context, **sanitize_attributes(attributes)},
        )

    def emit(self, event_name: str, **attributes: Any) -> None:
        if not self.enabled:
            return
        payload = dict(self.context)
        payload.update(sanitize_attributes(attributes))
        self.sink.emit(event_name=event_name, attributes=payload)


def build_telemetry_client(*, enabled: bool, sink: TelemetrySinkName) -> TelemetryClient:
    if enabled and sink == "log":
        return TelemetryClient(enabled=True, sink=StructuredLogTelemetrySink())
    return TelemetryClient.disabled()


def sanitize_attributes(attributes: Mapping[str, Any]) -> dict[str, AttributeValue]:
    """Lower-case keys, redact credentials and flatten values to short scalars."""
    sanitized: dict[str, AttributeValue] = {}
    for raw_key, raw_value in attributes.items():
        key = str(raw_key).strip().lower()
        if not key:
            continue
        sanitized[key] = REDACTED if _is_credential_key(key) else _as_scalar(raw_value)
    return sanitized


def _is_credential_key(key: str) -> bool:
    return any(fragment in key for fragment in _CREDENTIAL_KEY_FRAGMENTS)


def _as_scalar(value: Any) -> AttributeValue:
    if value is None or isinstance(value, bool | int | float):
        return value
    if isinstance(value, str):
        compact = " ".join(value.split())
        if len(compact) <= _MAX_TEXT_LENGTH:
            return compact
        return f"{compact[:_MAX_TEXT_LENGTH]}..."
    return type(value).__name__
