"""
RawStore - Append-only bronze layer.

Key behaviors:
- append never transforms the payload
- The event id comes from payload["id"] when present, else a new uuid4 hex
- Each append publishes BronzeInserted on the pipeline channel
- Storage errors (sqlite3.Error) propagate unchanged
"""

from __future__ import annotations

import logging
from typing import Any
from uuid import uuid4

from src.core.entities import RAW_CATEGORIES, RawEvent
from src.core.events import BronzeInserted, EventChannel

from .ports import RawEventRepoPort, TimePort

logger = logging.getLogger(__name__)


def resolve_raw_id(payload: dict[str, Any]) -> str:
    """Use the payload's own id when it has one."""
    raw_id = payload.get("id")
    if isinstance(raw_id, str) and raw_id.strip():
        return raw_id.strip()
    if isinstance(raw_id, int) and not isinstance(raw_id, bool):
        return str(raw_id)
    return uuid4().hex


def validate_category(category: str) -> None:
    if category not in RAW_CATEGORIES:
        allowed = ", ".join(sorted(RAW_CATEGORIES))
        raise ValueError(f"Unknown category '{category}' (expected one of: {allowed})")


class RawStore:
    """Bronze layer facade over the raw event repository."""

    def __init__(
        self,
        repo: RawEventRepoPort,
        clock: TimePort,
        inserted: EventChannel[BronzeInserted] | None = None,
    ) -> None:
        self._repo = repo
        self._clock = clock
        self._inserted = inserted

    async def append(
        self,
        category: str,
        payload: dict[str, Any],
        captured_at: int | None = None,
        raw_id: str | None = None,
    ) -> str:
        """
        Append a raw event.

        Args:
            category: One of request, web-vital, security, third-party
            payload: Captured event body, stored as-is
            captured_at: Capture time (epoch ms); defaults to now
            raw_id: Pre-assigned id (collector); defaults to resolve_raw_id(payload)

        Returns:
            The event id

        Raises:
            ValueError: Unknown category or non-dict payload
        """
        validate_category(category)
        if not isinstance(payload, dict):
            raise ValueError("Payload must be a JSON object")

        event_id = raw_id or resolve_raw_id(payload)
        when = captured_at if captured_at is not None else self._clock.now_ms()
        seq = self._repo.insert(event_id, category, payload, when)
        logger.debug("Bronze append %s (%s) seq=%d", event_id, category, seq)

        if self._inserted is not None:
            await self._inserted.publish(BronzeInserted(raw_id=event_id, seq=seq, category=category))
        return event_id

    def list_since(self, after_seq: int, limit: int) -> list[RawEvent]:
        return self._repo.list_since(after_seq, limit)

    def get_latest(self, raw_id: str) -> RawEvent | None:
        return self._repo.get_latest(raw_id)

    def count(self) -> int:
        return self._repo.count()


class InMemoryRawEventRepo:
    """In-memory raw event store for testing."""

    def __init__(self) -> None:
        self.events: list[RawEvent] = []

    def insert(self, raw_id: str, category: str, payload: dict[str, Any], captured_at: int) -> int:
        seq = len(self.events) + 1
        self.events.append(
            RawEvent(
                seq=seq,
                id=raw_id,
                category=category,  # type: ignore[arg-type]
                payload=payload,
                captured_at=captured_at,
            )
        )
        return seq

    def list_since(self, after_seq: int, limit: int) -> list[RawEvent]:
        return [e for e in self.events if e.seq > after_seq][:limit]

    def get_latest(self, raw_id: str) -> RawEvent | None:
        matches = [e for e in self.events if e.id == raw_id]
        return matches[-1] if matches else None

    def count(self) -> int:
        return len(self.events)
