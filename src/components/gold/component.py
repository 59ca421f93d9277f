"""
Gold component - Rollup entry points.

Shell Layer - converts inputs to Aggregator calls and invalid dates to
output errors.
"""

from __future__ import annotations

from ._impl import Aggregator
from .models import (
    GoldValidationError,
    HourlyStatsInput,
    RollupDailyInput,
    RollupDailyOutput,
    StatsOutput,
)


async def run_rollup_daily(inp: RollupDailyInput, *, aggregator: Aggregator) -> RollupDailyOutput:
    """Run the daily batch rollup for one date."""
    try:
        row = await aggregator.rollup_daily(inp.day)
    except ValueError as e:
        error = GoldValidationError(code="invalid_date", message=str(e), field_name="day")
        return RollupDailyOutput(analytics=None, errors=[error], success=False)
    return RollupDailyOutput(analytics=row)


def run_hourly_stats(inp: HourlyStatsInput, *, aggregator: Aggregator) -> StatsOutput:
    """Query hourly buckets in [start_ms, end_ms)."""
    if inp.end_ms <= inp.start_ms:
        error = GoldValidationError(
            code="invalid_range",
            message="end must be after start",
            field_name="end_ms",
        )
        return StatsOutput(stats=[], errors=[error], success=False)
    return StatsOutput(stats=aggregator.get_hourly_stats(inp.start_ms, inp.end_ms))
