"""
Zone-aware system clock (TimePort implementation).

Key behaviors:
- now_ms: current UTC time in epoch milliseconds
- local_day_bounds_ms: DST-safe [start, end) of a local calendar day
- next_local_midnight: next 00:00 in the configured zone, as UTC
"""

from __future__ import annotations

from datetime import UTC, date, datetime, time, timedelta
from zoneinfo import ZoneInfo


def to_ms(dt: datetime) -> int:
    """Convert an aware datetime to epoch milliseconds (naive is treated as UTC)."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return int(dt.timestamp() * 1000)


def from_ms(ms: int) -> datetime:
    """Convert epoch milliseconds to an aware UTC datetime."""
    return datetime.fromtimestamp(ms / 1000, tz=UTC)


class SystemClock:
    """Wall clock bound to an IANA timezone for calendar math."""

    def __init__(self, tz_name: str = "UTC") -> None:
        self._tz_name = tz_name
        self._tz = ZoneInfo(tz_name)

    @property
    def timezone_name(self) -> str:
        return self._tz_name

    def now_utc(self) -> datetime:
        return datetime.now(UTC)

    def now_ms(self) -> int:
        return to_ms(self.now_utc())

    def today_local(self) -> date:
        return self.now_utc().astimezone(self._tz).date()

    def local_day_bounds_ms(self, day: date) -> tuple[int, int]:
        start = datetime.combine(day, time.min, tzinfo=self._tz)
        end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=self._tz)
        return to_ms(start), to_ms(end)

    def next_local_midnight(self) -> datetime:
        tomorrow = self.today_local() + timedelta(days=1)
        return datetime.combine(tomorrow, time.min, tzinfo=self._tz).astimezone(UTC)
