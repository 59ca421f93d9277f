"""
Gold component - Port interfaces.
"""

from __future__ import annotations

from src.core.ports.db import (
    CanonicalRepoPort,
    DailyAnalyticsRepoPort,
    RollupDelta,
    RollupDimension,
    RollupRepoPort,
    UnitOfWorkPort,
)
from src.core.ports.time import TimePort

__all__ = [
    "CanonicalRepoPort",
    "DailyAnalyticsRepoPort",
    "RollupDelta",
    "RollupDimension",
    "RollupRepoPort",
    "TimePort",
    "UnitOfWorkPort",
]
