"""
Repository port interfaces for the medallion layers.

Protocol-based interfaces for data persistence. Implementations live in
src/adapters/sqlite/repos.py.

Key requirements:
- Bronze is append-only: no update or delete operations exist
- Silver upserts are keyed by record id
- Gold rollups are updated with additive deltas only
- Storage errors propagate (sqlite3.Error); repos never swallow them
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal, Protocol

from src.core.entities import (
    CanonicalRecord,
    DailyAnalytics,
    Preference,
    RawEvent,
    RollupStat,
    SkippedRecord,
)

RollupDimension = Literal["domain", "resource", "hourly"]


@dataclass(frozen=True)
class RollupDelta:
    """Signed increments for one rollup bucket."""

    count: int
    total_bytes: int
    total_duration_ms: int
    error_count: int


@dataclass(frozen=True)
class RecordFilter:
    """Filter for canonical record queries."""

    domain: str | None = None
    page_url: str | None = None
    type: str | None = None
    start_ms: int | None = None
    end_ms: int | None = None
    limit: int = 100
    offset: int = 0


# --- Bronze ---


class RawEventRepoPort(Protocol):
    """Append-only raw event storage."""

    def insert(self, raw_id: str, category: str, payload: dict[str, Any], captured_at: int) -> int:
        """Append an event. Returns the store-assigned sequence number."""
        ...

    def list_since(self, after_seq: int, limit: int) -> list[RawEvent]:
        """List events with seq > after_seq, ordered by seq."""
        ...

    def get_latest(self, raw_id: str) -> RawEvent | None:
        """Get the newest event for an id."""
        ...

    def count(self) -> int:
        """Total number of stored events."""
        ...


# --- Silver ---


class CanonicalRepoPort(Protocol):
    """Canonical request record storage."""

    def get(self, record_id: str) -> CanonicalRecord | None:
        """Get record by id."""
        ...

    def upsert(self, record: CanonicalRecord) -> None:
        """Insert or replace the record with the same id."""
        ...

    def insert_if_absent(self, record: CanonicalRecord) -> bool:
        """Insert only when no record with the id exists. Returns True if inserted."""
        ...

    def list_created_since(self, after_ms: int, limit: int) -> list[CanonicalRecord]:
        """Records with created_at > after_ms, oldest first."""
        ...

    def list_in_range(self, start_ms: int, end_ms: int) -> list[CanonicalRecord]:
        """Records with start_ms <= timestamp < end_ms."""
        ...

    def query(self, flt: RecordFilter) -> list[CanonicalRecord]:
        """Filtered query, newest first."""
        ...

    def record_skipped(self, skipped: SkippedRecord) -> None:
        """Record a validation skip (replaces any previous skip for the same seq)."""
        ...

    def list_skipped(self, limit: int = 100) -> list[SkippedRecord]:
        """Most recent skips first."""
        ...

    def trim_skipped(self, before_ms: int) -> int:
        """Delete skips recorded before the cutoff. Returns count deleted."""
        ...


# --- Gold ---


class RollupRepoPort(Protocol):
    """Incremental rollup counters."""

    def apply(self, dimension: RollupDimension, key: str | int, delta: RollupDelta, now_ms: int) -> None:
        """Add signed deltas to a bucket, creating it when missing."""
        ...

    def list_stats(self, dimension: RollupDimension) -> list[RollupStat]:
        """All buckets of a dimension, largest count first."""
        ...

    def list_hourly(self, start_ms: int, end_ms: int) -> list[RollupStat]:
        """Hourly buckets with start_ms <= hour_start < end_ms, oldest first."""
        ...


class DailyAnalyticsRepoPort(Protocol):
    """Daily analytics rows (one per date)."""

    def replace(self, row: DailyAnalytics) -> None:
        """INSERT OR REPLACE the row for row.date."""
        ...

    def get(self, day: str) -> DailyAnalytics | None:
        """Get the row for a date (YYYY-MM-DD)."""
        ...

    def list_created_since(self, after_ms: int, limit: int) -> list[DailyAnalytics]:
        """Rows with created_at > after_ms, ordered by date."""
        ...

    def list_range(self, start_day: str | None = None, end_day: str | None = None) -> list[DailyAnalytics]:
        """Rows with start_day <= date <= end_day, ordered by date."""
        ...


class PreferenceRepoPort(Protocol):
    """Synced configuration entries."""

    def get(self, key: str) -> Preference | None:
        ...

    def set(self, key: str, value: Any, now_ms: int) -> Preference:
        """Create or update a preference."""
        ...

    def insert_if_absent(self, pref: Preference) -> bool:
        """Insert only when the key does not exist. Returns True if inserted."""
        ...

    def list_updated_since(self, after_ms: int, limit: int) -> list[Preference]:
        ...

    def list_all(self) -> list[Preference]:
        ...


class MaintenancePort(Protocol):
    """Storage housekeeping."""

    def database_size_bytes(self) -> int:
        ...

    def vacuum(self) -> None:
        ...


# --- Unit of Work ---


class UnitOfWorkPort(Protocol):
    """
    Silver and gold writes that commit together.

    Usage:
        with unit_of_work() as uow:
            uow.canonical.upsert(record)
            uow.rollups.apply(...)
            uow.commit()

    Leaving the block without commit() (or with an exception) rolls back.
    """

    canonical: CanonicalRepoPort
    rollups: RollupRepoPort

    def __enter__(self) -> UnitOfWorkPort:
        ...

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        ...

    def commit(self) -> None:
        ...

    def rollback(self) -> None:
        ...
