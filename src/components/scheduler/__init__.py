"""
Scheduler component - Interval sync, nightly rollup, maintenance and event triggers.
"""

from ._impl import PipelineScheduler, perform_maintenance
from .component import run_maintenance
from .models import MaintenanceOutput, SchedulerConfig, SchedulerStatus
from .ports import (
    CancelToken,
    DailyRollupPort,
    MaintenancePort,
    SessionStatePort,
    SkippedTrimPort,
    SyncRunnerPort,
    TimePort,
    TimerPort,
)

__all__ = [
    # Entry points
    "run_maintenance",
    # Services
    "PipelineScheduler",
    "perform_maintenance",
    # Models
    "MaintenanceOutput",
    "SchedulerConfig",
    "SchedulerStatus",
    # Ports
    "CancelToken",
    "DailyRollupPort",
    "MaintenancePort",
    "SessionStatePort",
    "SkippedTrimPort",
    "SyncRunnerPort",
    "TimePort",
    "TimerPort",
]
