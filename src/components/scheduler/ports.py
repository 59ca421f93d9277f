"""
Scheduler component port definitions.
"""

from __future__ import annotations

from datetime import date
from typing import Any, Protocol

from src.core.ports.db import MaintenancePort
from src.core.result import Result
from src.core.ports.time import TimePort
from src.core.ports.timers import CancelToken, TimerPort


class SyncRunnerPort(Protocol):
    """SyncEngine as seen by the scheduler."""

    @property
    def is_syncing(self) -> bool:
        ...

    async def sync_all(self) -> Result[Any]:
        ...


class SessionStatePort(Protocol):
    @property
    def is_authenticated(self) -> bool:
        ...


class DailyRollupPort(Protocol):
    async def rollup_daily(self, day: str | date) -> Any:
        """Recompute one local calendar day."""
        ...


class SkippedTrimPort(Protocol):
    def trim_skipped(self, before_ms: int) -> int:
        """Delete skip records older than the cutoff. Returns count deleted."""
        ...


__all__ = [
    "CancelToken",
    "DailyRollupPort",
    "MaintenancePort",
    "SessionStatePort",
    "SkippedTrimPort",
    "SyncRunnerPort",
    "TimePort",
    "TimerPort",
]
