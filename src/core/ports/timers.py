"""
Timer port.

One-shot scheduling primitive used by the Scheduler component. Recurring
work re-arms itself from inside the task, so every pending run is visible
as exactly one cancellable token.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Protocol

TimerTask = Callable[[], Awaitable[None]]


class CancelToken(Protocol):
    """Handle for one scheduled run."""

    def cancel(self) -> None:
        """Cancel the run if it has not started. Idempotent."""
        ...

    @property
    def cancelled(self) -> bool:
        """Whether cancel() has been called."""
        ...

    @property
    def when(self) -> datetime:
        """UTC time the run is scheduled for."""
        ...


class TimerPort(Protocol):
    """Timer interface."""

    def schedule_at(self, when: datetime, task: TimerTask) -> CancelToken:
        """Run task once at the given UTC time (immediately if in the past)."""
        ...

    async def drain(self) -> None:
        """Wait for runs that have already started to finish."""
        ...
