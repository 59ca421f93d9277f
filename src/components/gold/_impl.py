"""
Aggregator - Gold layer rollups.

Handles incremental domain/resource/hour counters and the nightly daily
analytics batch.

Key behaviors:
- on_new_record adds one record's contribution to its three buckets
- on_record_replaced retracts the previous contribution, then adds the new one
- store_written / store_remote write the silver row and its rollup deltas in
  one unit of work, so a failed rollup leaves no silver change behind
- Counters are additive only; no dedup happens at this layer
- rollup_daily rescans one local calendar day and INSERT OR REPLACEs its row
- Percentiles use nearest rank: sorted[ceil(p/100 * n) - 1]
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable
from datetime import date
from typing import Any

from src.core.entities import CanonicalRecord, DailyAnalytics, RollupStat
from src.core.events import DailyRollupCompleted, EventChannel

from .ports import (
    CanonicalRepoPort,
    DailyAnalyticsRepoPort,
    RollupDelta,
    RollupDimension,
    RollupRepoPort,
    TimePort,
    UnitOfWorkPort,
)

logger = logging.getLogger(__name__)

HOUR_MS = 3_600_000


# --- Bucket Calculation ---


def calculate_hour_start(timestamp_ms: int) -> int:
    """Start of the UTC hour containing the timestamp (epoch ms)."""
    return timestamp_ms - (timestamp_ms % HOUR_MS)


def record_delta(record: CanonicalRecord, sign: int = 1) -> RollupDelta:
    return RollupDelta(
        count=sign,
        total_bytes=sign * record.size_bytes,
        total_duration_ms=sign * record.duration_ms,
        error_count=sign * int(record.has_error),
    )


def record_buckets(record: CanonicalRecord) -> list[tuple[RollupDimension, str | int]]:
    return [
        ("domain", record.domain),
        ("resource", record.type),
        ("hourly", calculate_hour_start(record.timestamp)),
    ]


def rollup_updates(
    record: CanonicalRecord, previous: CanonicalRecord | None = None
) -> list[tuple[RollupDimension, str | int, RollupDelta]]:
    """Bucket deltas for a write: retract previous (if any), then add record."""
    updates: list[tuple[RollupDimension, str | int, RollupDelta]] = []
    if previous is not None:
        delta = record_delta(previous, sign=-1)
        updates.extend((dimension, key, delta) for dimension, key in record_buckets(previous))
    delta = record_delta(record)
    updates.extend((dimension, key, delta) for dimension, key in record_buckets(record))
    return updates


def nearest_rank(sorted_values: list[int], percentile: float) -> float:
    """Nearest-rank percentile of an ascending list (0 for an empty list)."""
    if not sorted_values:
        return 0.0
    index = math.ceil(percentile / 100 * len(sorted_values)) - 1
    index = max(0, min(index, len(sorted_values) - 1))
    return float(sorted_values[index])


def parse_day(day: str | date) -> date:
    if isinstance(day, date):
        return day
    try:
        return date.fromisoformat(day)
    except ValueError:
        raise ValueError(f"Invalid date '{day}' (expected YYYY-MM-DD)") from None


def compute_daily(records: list[CanonicalRecord], day: date, now_ms: int) -> DailyAnalytics:
    """Full-day analytics for the given records."""
    total = len(records)
    durations = sorted(r.duration_ms for r in records)
    errors = sum(1 for r in records if r.has_error)

    return DailyAnalytics(
        date=day.isoformat(),
        total_requests=total,
        total_bytes=sum(r.size_bytes for r in records),
        avg_response_time=(sum(durations) / total) if total else 0.0,
        median_response_time=nearest_rank(durations, 50),
        p95_response_time=nearest_rank(durations, 95),
        p99_response_time=nearest_rank(durations, 99),
        error_rate=(errors / total * 100) if total else 0.0,
        unique_domains=len({r.domain for r in records}),
        created_at=now_ms,
        updated_at=now_ms,
    )


# --- Aggregator ---


class Aggregator:
    """Incremental and batch rollups over canonical records."""

    def __init__(
        self,
        canonical_repo: CanonicalRepoPort,
        rollup_repo: RollupRepoPort,
        daily_repo: DailyAnalyticsRepoPort,
        clock: TimePort,
        completed: EventChannel[DailyRollupCompleted] | None = None,
        unit_of_work: Callable[[], UnitOfWorkPort] | None = None,
    ) -> None:
        self._canonical = canonical_repo
        self._rollups = rollup_repo
        self._daily = daily_repo
        self._clock = clock
        self._completed = completed
        self._unit_of_work = unit_of_work

    def on_new_record(self, record: CanonicalRecord) -> None:
        self._apply(self._rollups, rollup_updates(record))

    def on_record_replaced(self, previous: CanonicalRecord, current: CanonicalRecord) -> None:
        self._apply(self._rollups, rollup_updates(current, previous))

    def store_written(self, record: CanonicalRecord, previous: CanonicalRecord | None) -> None:
        """
        Upsert a transformed record and apply its rollup deltas atomically.

        Raises:
            sqlite3.Error (or any repo error): nothing was written
        """
        with self._begin() as uow:
            uow.canonical.upsert(record)
            self._apply(uow.rollups, rollup_updates(record, previous))
            uow.commit()

    def store_remote(self, record: CanonicalRecord) -> bool:
        """Insert a downloaded record unless the id exists; rollups move with it."""
        with self._begin() as uow:
            inserted = uow.canonical.insert_if_absent(record)
            if inserted:
                self._apply(uow.rollups, rollup_updates(record))
            uow.commit()
        return inserted

    def _begin(self) -> UnitOfWorkPort:
        if self._unit_of_work is None:
            raise RuntimeError("Aggregator has no unit of work for silver writes")
        return self._unit_of_work()

    def _apply(
        self, rollups: RollupRepoPort, updates: list[tuple[RollupDimension, str | int, RollupDelta]]
    ) -> None:
        now = self._clock.now_ms()
        for dimension, key, delta in updates:
            rollups.apply(dimension, key, delta, now)

    async def rollup_daily(self, day: str | date) -> DailyAnalytics:
        """
        Recompute the analytics row for one local calendar day.

        Raises:
            ValueError: day is not a valid YYYY-MM-DD date
        """
        target = parse_day(day)
        start_ms, end_ms = self._clock.local_day_bounds_ms(target)
        records = self._canonical.list_in_range(start_ms, end_ms)

        row = compute_daily(records, target, self._clock.now_ms())
        self._daily.replace(row)
        logger.info(
            "Daily rollup %s: %d requests, %d domains", row.date, row.total_requests, row.unique_domains
        )

        if self._completed is not None:
            await self._completed.publish(
                DailyRollupCompleted(date=row.date, total_requests=row.total_requests)
            )
        return row

    # --- Queries ---

    def get_domain_stats(self) -> list[RollupStat]:
        return self._rollups.list_stats("domain")

    def get_resource_stats(self) -> list[RollupStat]:
        return self._rollups.list_stats("resource")

    def get_hourly_stats(self, start_ms: int, end_ms: int) -> list[RollupStat]:
        return self._rollups.list_hourly(start_ms, end_ms)

    def get_daily(self, start_day: str | None = None, end_day: str | None = None) -> list[DailyAnalytics]:
        return self._daily.list_range(start_day, end_day)


# --- In-memory repos (tests) ---


class InMemoryRollupRepo:
    """In-memory rollup counters for testing."""

    def __init__(self) -> None:
        self.buckets: dict[tuple[str, Any], RollupStat] = {}

    def apply(self, dimension: RollupDimension, key: str | int, delta: RollupDelta, now_ms: int) -> None:
        current = self.buckets.get((dimension, key)) or RollupStat(key=key)
        self.buckets[(dimension, key)] = RollupStat(
            key=key,
            count=current.count + delta.count,
            total_bytes=current.total_bytes + delta.total_bytes,
            total_duration_ms=current.total_duration_ms + delta.total_duration_ms,
            error_count=current.error_count + delta.error_count,
            updated_at=now_ms,
        )

    def list_stats(self, dimension: RollupDimension) -> list[RollupStat]:
        stats = [s for (d, _), s in self.buckets.items() if d == dimension and s.count > 0]
        return sorted(stats, key=lambda s: (-s.count, str(s.key)))

    def list_hourly(self, start_ms: int, end_ms: int) -> list[RollupStat]:
        stats = [
            s
            for (d, key), s in self.buckets.items()
            if d == "hourly" and start_ms <= key < end_ms and s.count > 0
        ]
        return sorted(stats, key=lambda s: s.key)


class InMemoryDailyAnalyticsRepo:
    """In-memory daily analytics rows for testing."""

    def __init__(self) -> None:
        self.rows: dict[str, DailyAnalytics] = {}

    def replace(self, row: DailyAnalytics) -> None:
        self.rows[row.date] = row

    def get(self, day: str) -> DailyAnalytics | None:
        return self.rows.get(day)

    def list_created_since(self, after_ms: int, limit: int) -> list[DailyAnalytics]:
        rows = sorted(
            (r for r in self.rows.values() if r.created_at > after_ms),
            key=lambda r: (r.created_at, r.date),
        )
        return rows[:limit]

    def list_range(self, start_day: str | None = None, end_day: str | None = None) -> list[DailyAnalytics]:
        rows = [
            r
            for r in self.rows.values()
            if (start_day is None or r.date >= start_day) and (end_day is None or r.date <= end_day)
        ]
        return sorted(rows, key=lambda r: r.date)


class InMemoryUnitOfWork:
    """
    Unit of work over the in-memory repos for testing.

    Snapshots `canonical.records` and `rollups.buckets` on enter and restores
    them unless commit() was called.
    """

    def __init__(self, canonical: Any, rollups: InMemoryRollupRepo) -> None:
        self.canonical = canonical
        self.rollups = rollups
        self._saved: tuple[dict[Any, Any], dict[Any, Any]] | None = None

    def __enter__(self) -> InMemoryUnitOfWork:
        self._saved = (dict(self.canonical.records), dict(self.rollups.buckets))
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.rollback()

    def commit(self) -> None:
        self._saved = None

    def rollback(self) -> None:
        if self._saved is not None:
            records, buckets = self._saved
            self.canonical.records = records
            self.rollups.buckets = buckets
            self._saved = None
