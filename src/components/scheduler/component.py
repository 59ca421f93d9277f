"""
Scheduler component - Maintenance entry point.

Shell Layer - runs one maintenance pass outside the timer loop (CLI).
"""

from __future__ import annotations

from ._impl import perform_maintenance
from .models import MaintenanceOutput, SchedulerConfig
from .ports import MaintenancePort, SkippedTrimPort, TimePort


def run_maintenance(
    *,
    clock: TimePort,
    maintenance: MaintenancePort,
    skipped: SkippedTrimPort,
    config: SchedulerConfig | None = None,
) -> MaintenanceOutput:
    """
    Run one maintenance pass.

    Args:
        clock: Time port for the retention cutoff.
        maintenance: Database size and VACUUM port.
        skipped: Skip record store.
        config: Thresholds (defaults when omitted).

    Returns:
        MaintenanceOutput with counts and whether VACUUM ran.
    """
    return perform_maintenance(clock, maintenance, skipped, config or SchedulerConfig())
