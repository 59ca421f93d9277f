"""
Time port.

Protocol-based interface for time operations so that cursors, bucket
boundaries and midnight scheduling are deterministic under test.

Key requirements:
- Storage uses integer epoch milliseconds (UTC)
- Calendar dates (daily rollup) use the configured local timezone
- Day boundaries must be DST-safe (a local day may be 23 or 25 hours)
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Protocol


class TimePort(Protocol):
    """Time/timezone interface."""

    def now_utc(self) -> datetime:
        """Get current UTC time (timezone-aware)."""
        ...

    def now_ms(self) -> int:
        """Get current time as epoch milliseconds."""
        ...

    def today_local(self) -> date:
        """Get today's date in the configured timezone."""
        ...

    def local_day_bounds_ms(self, day: date) -> tuple[int, int]:
        """
        Get [start, end) epoch-millisecond bounds of a local calendar day.

        Args:
            day: Calendar date in the configured timezone

        Returns:
            Tuple of (start_ms inclusive, end_ms exclusive)
        """
        ...

    def next_local_midnight(self) -> datetime:
        """Get the next local midnight as a UTC datetime."""
        ...

    @property
    def timezone_name(self) -> str:
        """IANA timezone name (e.g., 'UTC', 'Europe/London')."""
        ...
