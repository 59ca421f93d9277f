"""
asyncio TimerPort implementation.

Uses loop.call_later to arm the timer and runs the task as an asyncio
task when it fires. Task failures are logged; the timer never propagates
them into the event loop.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime

from src.core.ports.time import TimePort
from src.core.ports.timers import TimerTask

logger = logging.getLogger(__name__)


class AsyncioCancelToken:
    """Cancel token backed by an asyncio TimerHandle."""

    def __init__(self, when: datetime) -> None:
        self._when = when
        self._handle: asyncio.TimerHandle | None = None
        self._task: asyncio.Task[None] | None = None
        self._cancelled = False

    @property
    def when(self) -> datetime:
        return self._when

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        if self._handle is not None:
            self._handle.cancel()


class AsyncioTimers:
    """TimerPort on the running asyncio event loop."""

    def __init__(self, clock: TimePort) -> None:
        self._clock = clock
        self._running: set[asyncio.Task[None]] = set()

    def schedule_at(self, when: datetime, task: TimerTask) -> AsyncioCancelToken:
        loop = asyncio.get_running_loop()
        delay = max(0.0, (when - self._clock.now_utc()).total_seconds())
        token = AsyncioCancelToken(when)

        def fire() -> None:
            if token.cancelled:
                return
            running = loop.create_task(self._run(task))
            token._task = running
            self._running.add(running)
            running.add_done_callback(self._running.discard)

        token._handle = loop.call_later(delay, fire)
        return token

    async def _run(self, task: TimerTask) -> None:
        try:
            await task()
        except Exception:
            logger.exception("Scheduled task failed")

    async def drain(self) -> None:
        """Wait for tasks that have already fired."""
        if self._running:
            await asyncio.gather(*list(self._running), return_exceptions=True)
