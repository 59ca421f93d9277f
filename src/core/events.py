"""
Typed event channels for the pipeline.

Each channel carries exactly one event type, so publishers and subscribers
are known statically instead of being joined by event-name strings.
Handlers may be plain callables or coroutine functions; they run in
subscription order. A failing handler is logged and does not stop the
remaining handlers or the publisher.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Generic, TypeVar

from src.core.entities import CanonicalRecord

logger = logging.getLogger(__name__)

E = TypeVar("E")

Handler = Callable[[E], Awaitable[None] | None]


class EventChannel(Generic[E]):
    """Single-type publish/subscribe channel."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._handlers: list[Handler[E]] = []

    def subscribe(self, handler: Handler[E]) -> Callable[[], None]:
        """Register a handler. Returns a function that removes it."""
        self._handlers.append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return unsubscribe

    @property
    def subscriber_count(self) -> int:
        return len(self._handlers)

    async def publish(self, event: E) -> None:
        for handler in list(self._handlers):
            try:
                result = handler(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Handler failed on channel %s", self.name)


# --- Event types ---


@dataclass(frozen=True)
class BronzeInserted:
    raw_id: str
    seq: int
    category: str


@dataclass(frozen=True)
class SilverWritten:
    record: CanonicalRecord
    previous: CanonicalRecord | None = None


@dataclass(frozen=True)
class DailyRollupCompleted:
    date: str
    total_requests: int


@dataclass(frozen=True)
class LoggedIn:
    user_id: str | None
    team_id: str | None


@dataclass(frozen=True)
class SessionExpired:
    reason: str


@dataclass(frozen=True)
class SyncCompleted:
    timestamp: int
    uploaded: dict[str, int]
    downloaded: dict[str, int]
    error_count: int


@dataclass
class PipelineEvents:
    """All channels of one pipeline instance."""

    bronze_inserted: EventChannel[BronzeInserted] = field(
        default_factory=lambda: EventChannel("bronze_inserted")
    )
    silver_written: EventChannel[SilverWritten] = field(
        default_factory=lambda: EventChannel("silver_written")
    )
    daily_rollup_completed: EventChannel[DailyRollupCompleted] = field(
        default_factory=lambda: EventChannel("daily_rollup_completed")
    )
    logged_in: EventChannel[LoggedIn] = field(default_factory=lambda: EventChannel("logged_in"))
    session_expired: EventChannel[SessionExpired] = field(
        default_factory=lambda: EventChannel("session_expired")
    )
    sync_completed: EventChannel[SyncCompleted] = field(
        default_factory=lambda: EventChannel("sync_completed")
    )
