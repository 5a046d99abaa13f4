from __future__ import annotations

from datetime import UTC, datetime


def utc_now_iso() -> str:
    return datetime.now(UTC).isoformat()


def utc_today_iso() -> str:
    return datetime.now(UTC).date().isoformat()
