"""
Gold component - Data models.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date

from src.core.entities import DailyAnalytics, RollupStat

# --- Validation Errors ---


@dataclass(frozen=True)
class GoldValidationError:
    """Gold query or rollup validation error."""

    code: str
    message: str
    field_name: str | None = None


# --- Input Models ---


@dataclass(frozen=True)
class RollupDailyInput:
    """Input for the daily batch rollup (date as YYYY-MM-DD or date)."""

    day: str | date


@dataclass(frozen=True)
class HourlyStatsInput:
    """Input for an hourly stats range query (epoch ms, end exclusive)."""

    start_ms: int
    end_ms: int


# --- Output Models ---


@dataclass(frozen=True)
class RollupDailyOutput:
    """Output from the daily rollup."""

    analytics: DailyAnalytics | None
    errors: list[GoldValidationError] = field(default_factory=list)
    success: bool = True


@dataclass(frozen=True)
class StatsOutput:
    """Output from a rollup stats query."""

    stats: list[RollupStat]
    errors: list[GoldValidationError] = field(default_factory=list)
    success: bool = True
