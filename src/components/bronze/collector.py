"""
Collector - Fire-and-forget intake for captured events.

collect() assigns the event id, enqueues and returns immediately. A single
drain task appends queued events to the RawStore in arrival order. When the
queue is full the event is dropped with a warning; the caller never blocks.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

from ._impl import RawStore, resolve_raw_id, validate_category
from .models import CollectorStats
from .ports import TimePort

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Queued:
    raw_id: str
    category: str
    payload: dict[str, Any]
    captured_at: int


class Collector:
    """Bounded queue in front of RawStore.append."""

    def __init__(self, store: RawStore, clock: TimePort, queue_size: int = 10_000) -> None:
        self._store = store
        self._clock = clock
        self._queue: asyncio.Queue[_Queued] = asyncio.Queue(maxsize=queue_size)
        self._task: asyncio.Task[None] | None = None
        self._accepted = 0
        self._stored = 0
        self._dropped = 0
        self._failed = 0

    def collect(self, category: str, payload: dict[str, Any]) -> str:
        """
        Enqueue a captured event.

        Returns:
            The id the event will be stored under

        Raises:
            ValueError: Unknown category
        """
        validate_category(category)
        raw_id = resolve_raw_id(payload)
        item = _Queued(raw_id, category, dict(payload), self._clock.now_ms())
        try:
            self._queue.put_nowait(item)
        except asyncio.QueueFull:
            self._dropped += 1
            logger.warning("Collector queue full, dropping %s event %s", category, raw_id)
            return raw_id

        self._accepted += 1
        return raw_id

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(self._drain())
            logger.info("Collector started")

    async def flush(self) -> None:
        """Wait until every queued event has been handled."""
        await self._queue.join()

    async def stop(self) -> None:
        """Flush pending events, then stop the drain task."""
        if self._task is None:
            return
        await self.flush()
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Collector stopped (%d stored, %d dropped)", self._stored, self._dropped)

    @property
    def stats(self) -> CollectorStats:
        return CollectorStats(
            accepted=self._accepted,
            stored=self._stored,
            dropped=self._dropped,
            failed=self._failed,
            pending=self._queue.qsize(),
        )

    async def _drain(self) -> None:
        while True:
            item = await self._queue.get()
            try:
                await self._store.append(
                    item.category,
                    item.payload,
                    captured_at=item.captured_at,
                    raw_id=item.raw_id,
                )
                self._stored += 1
            except Exception:
                self._failed += 1
                logger.exception("Failed to store collected event %s", item.raw_id)
            finally:
                self._queue.task_done()
