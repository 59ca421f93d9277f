"""
Gold component - Incremental rollups and daily analytics.
"""

from ._impl import (
    HOUR_MS,
    Aggregator,
    InMemoryDailyAnalyticsRepo,
    InMemoryRollupRepo,
    InMemoryUnitOfWork,
    calculate_hour_start,
    compute_daily,
    nearest_rank,
    record_delta,
    rollup_updates,
)
from .component import run_hourly_stats, run_rollup_daily
from .models import (
    GoldValidationError,
    HourlyStatsInput,
    RollupDailyInput,
    RollupDailyOutput,
    StatsOutput,
)
from .ports import (
    CanonicalRepoPort,
    DailyAnalyticsRepoPort,
    RollupRepoPort,
    TimePort,
    UnitOfWorkPort,
)

__all__ = [
    # Entry points
    "run_rollup_daily",
    "run_hourly_stats",
    # Services
    "Aggregator",
    "InMemoryRollupRepo",
    "InMemoryDailyAnalyticsRepo",
    "InMemoryUnitOfWork",
    # Models
    "GoldValidationError",
    "HourlyStatsInput",
    "RollupDailyInput",
    "RollupDailyOutput",
    "StatsOutput",
    # Ports
    "CanonicalRepoPort",
    "DailyAnalyticsRepoPort",
    "RollupRepoPort",
    "TimePort",
    "UnitOfWorkPort",
    # Helpers
    "HOUR_MS",
    "calculate_hour_start",
    "compute_daily",
    "nearest_rank",
    "record_delta",
    "rollup_updates",
]
