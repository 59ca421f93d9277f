"""
Scheduler component input/output models.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

# --- Configuration ---


@dataclass(frozen=True)
class SchedulerConfig:
    """Scheduler configuration from rules."""

    # Interval sync
    auto_sync: bool = True
    sync_interval_seconds: int = 300

    # Event triggers
    sync_on_login: bool = True
    sync_after_inserts: int = 0  # 0 disables

    # Maintenance
    maintenance_interval_hours: float = 6
    vacuum_threshold_mb: int = 100
    skipped_retention_days: int = 7


# --- Output Models ---


@dataclass(frozen=True)
class MaintenanceOutput:
    """Result of one maintenance pass."""

    trimmed_skipped: int
    size_bytes: int
    vacuumed: bool
    success: bool = True


@dataclass(frozen=True)
class SchedulerStatus:
    running: bool
    interval_sync_active: bool
    next_sync_at: datetime | None
    next_rollup_at: datetime | None
    next_maintenance_at: datetime | None
    inserts_since_sync: int
