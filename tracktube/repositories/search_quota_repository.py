from __future__ import annotations

from dataclasses import dataclass

from tracktube.repositories.common import utc_now_iso, utc_today_iso
from tracktube.repositories.database import Database


@dataclass(frozen=True)
class SearchQuotaSnapshot:
    date_utc: str
    estimated_units_this_call: int
    estimated_units_today: int
    estimated_calls_today: int
    daily_limit: int
    warning_threshold: int

    @property
    def warning(self) -> bool:
        return self.daily_limit > 0 and self.estimated_units_today >= self.warning_threshold

    @property
    def remaining_units(self) -> int | None:
        if self.daily_limit <= 0:
            return None
        return max(0, self.daily_limit - self.estimated_units_today)


class SearchQuotaRepository:
    """Estimated YouTube search quota spent per UTC day."""

    def __init__(self, db: Database) -> None:
        self._db = db

    def record_call(self, *, units: int) -> None:
        if units <= 0:
            return
        with self._db.connection() as conn:
            conn.execute(
                """
                INSERT INTO youtube_search_quota_daily (date_utc, units_used, calls, updated_at)
                VALUES (?, ?, 1, ?)
                ON CONFLICT(date_utc) DO UPDATE SET
                    units_used = units_used + excluded.units_used,
                    calls = calls + 1,
                    updated_at = excluded.updated_at
                """,
                (utc_today_iso(), units, utc_now_iso()),
            )

    def usage_today(self) -> tuple[int, int]:
        """Return `(units_used, calls)` for the current UTC day."""
        with self._db.connection() as conn:
            row = conn.execute(
                "SELECT units_used, calls FROM youtube_search_quota_daily WHERE date_utc = ?",
                (utc_today_iso(),),
            ).fetchone()
        if row is None:
            return 0, 0
        return int(row["units_used"]), int(row["calls"])

    def record_and_snapshot(
        self,
        *,
        estimated_units_this_call: int,
        daily_limit: int,
        warning_threshold: int,
    ) -> SearchQuotaSnapshot:
        units_this_call = max(0, estimated_units_this_call)
        self.record_call(units=units_this_call)
        units_today, calls_today = self.usage_today()
        return SearchQuotaSnapshot(
            date_utc=utc_today_iso(),
            estimated_units_this_call=units_this_call,
            estimated_units_today=units_today,
            estimated_calls_today=calls_today,
            daily_limit=daily_limit,
            warning_threshold=warning_threshold,
        )
