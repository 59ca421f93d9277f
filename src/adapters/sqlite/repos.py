"""
SQLite adapters for the medallion layers.

Implements the repository ports in src/core/ports/db.py. Every repo opens a
connection per call unless an external connection is injected (tests,
read-only query API).
"""

from __future__ import annotations

import json
import os
import sqlite3
from typing import Any

from src.core.entities import (
    CanonicalRecord,
    DailyAnalytics,
    Preference,
    RawEvent,
    RollupStat,
    SkippedRecord,
)
from src.core.ports.db import RecordFilter, RollupDelta, RollupDimension

# -----------------------------------------------------------------------------
# Helper functions
# -----------------------------------------------------------------------------


def dict_factory(cursor: sqlite3.Cursor, row: tuple[Any, ...]) -> dict[str, Any]:
    """Convert SQLite row to dictionary."""
    return {col[0]: row[idx] for idx, col in enumerate(cursor.description)}


_ROLLUP_TABLES: dict[str, tuple[str, str]] = {
    "domain": ("gold_domain_stats", "domain"),
    "resource": ("gold_resource_stats", "resource_type"),
    "hourly": ("gold_hourly_stats", "hour_start"),
}

_CANONICAL_COLUMNS = (
    "id",
    "url",
    "method",
    "domain",
    "page_url",
    "type",
    "status",
    "status_class",
    "duration_ms",
    "size_bytes",
    "from_cache",
    "is_secure",
    "is_third_party",
    "has_error",
    "performance_score",
    "quality_score",
    "timestamp",
    "raw_seq",
    "created_at",
    "updated_at",
)

_BOOL_COLUMNS = ("from_cache", "is_secure", "is_third_party", "has_error")


def _record_params(record: CanonicalRecord) -> tuple[Any, ...]:
    data = record.model_dump()
    for col in _BOOL_COLUMNS:
        data[col] = int(data[col])
    return tuple(data[col] for col in _CANONICAL_COLUMNS)


def _row_to_record(row: dict[str, Any]) -> CanonicalRecord:
    data = dict(row)
    for col in _BOOL_COLUMNS:
        data[col] = bool(data[col])
    return CanonicalRecord(**data)


def _row_to_preference(row: dict[str, Any]) -> Preference:
    return Preference(
        key=row["key"],
        value=json.loads(row["value"]),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


# -----------------------------------------------------------------------------
# Base SQLite Repository
# -----------------------------------------------------------------------------


class SQLiteRepoBase:
    """Base class for SQLite repositories."""

    def __init__(self, db_path: str, connection: sqlite3.Connection | None = None):
        self.db_path = db_path
        self._external_conn = connection

    def _get_conn(self) -> sqlite3.Connection:
        """Get database connection (uses external if provided)."""
        if self._external_conn is not None:
            return self._external_conn

        conn = sqlite3.connect(self.db_path)
        conn.row_factory = dict_factory
        conn.execute("PRAGMA foreign_keys = ON;")
        return conn

    def _should_close(self) -> bool:
        """Whether to close connection after use."""
        return self._external_conn is None


# -----------------------------------------------------------------------------
# Bronze: raw events
# -----------------------------------------------------------------------------


class SQLiteRawEventRepo(SQLiteRepoBase):
    """Append-only raw event store."""

    def insert(self, raw_id: str, category: str, payload: dict[str, Any], captured_at: int) -> int:
        conn = self._get_conn()
        try:
            cursor = conn.execute(
                """
                INSERT INTO bronze_events (id, category, payload, captured_at)
                VALUES (?, ?, ?, ?)
                """,
                (raw_id, category, json.dumps(payload), captured_at),
            )
            if self._should_close():
                conn.commit()
            return int(cursor.lastrowid or 0)
        finally:
            if self._should_close():
                conn.close()

    def list_since(self, after_seq: int, limit: int) -> list[RawEvent]:
        conn = self._get_conn()
        try:
            rows = conn.execute(
                "SELECT * FROM bronze_events WHERE seq > ? ORDER BY seq ASC LIMIT ?",
                (after_seq, limit),
            ).fetchall()
            return [self._row_to_entity(r) for r in rows]
        finally:
            if self._should_close():
                conn.close()

    def get_latest(self, raw_id: str) -> RawEvent | None:
        conn = self._get_conn()
        try:
            row = conn.execute(
                "SELECT * FROM bronze_events WHERE id = ? ORDER BY seq DESC LIMIT 1",
                (raw_id,),
            ).fetchone()
            return self._row_to_entity(row) if row else None
        finally:
            if self._should_close():
                conn.close()

    def count(self) -> int:
        conn = self._get_conn()
        try:
            row = conn.execute("SELECT COUNT(*) AS n FROM bronze_events").fetchone()
            return int(row["n"])
        finally:
            if self._should_close():
                conn.close()

    def _row_to_entity(self, row: dict[str, Any]) -> RawEvent:
        return RawEvent(
            seq=row["seq"],
            id=row["id"],
            category=row["category"],
            payload=json.loads(row["payload"]),
            captured_at=row["captured_at"],
        )


# -----------------------------------------------------------------------------
# Silver: canonical records and skips
# -----------------------------------------------------------------------------


class SQLiteCanonicalRepo(SQLiteRepoBase):
    """Canonical request records keyed by id."""

    def get(self, record_id: str) -> CanonicalRecord | None:
        conn = self._get_conn()
        try:
            row = conn.execute(
                "SELECT * FROM silver_requests WHERE id = ?", (record_id,)
            ).fetchone()
            return _row_to_record(row) if row else None
        finally:
            if self._should_close():
                conn.close()

    def upsert(self, record: CanonicalRecord) -> None:
        placeholders = ", ".join("?" for _ in _CANONICAL_COLUMNS)
        updates = ", ".join(
            f"{col}=excluded.{col}" for col in _CANONICAL_COLUMNS if col not in ("id", "created_at")
        )
        conn = self._get_conn()
        try:
            conn.execute(
                f"""
                INSERT INTO silver_requests ({", ".join(_CANONICAL_COLUMNS)})
                VALUES ({placeholders})
                ON CONFLICT(id) DO UPDATE SET {updates}
                """,
                _record_params(record),
            )
            if self._should_close():
                conn.commit()
        finally:
            if self._should_close():
                conn.close()

    def insert_if_absent(self, record: CanonicalRecord) -> bool:
        placeholders = ", ".join("?" for _ in _CANONICAL_COLUMNS)
        conn = self._get_conn()
        try:
            cursor = conn.execute(
                f"""
                INSERT OR IGNORE INTO silver_requests ({", ".join(_CANONICAL_COLUMNS)})
                VALUES ({placeholders})
                """,
                _record_params(record),
            )
            if self._should_close():
                conn.commit()
            return cursor.rowcount > 0
        finally:
            if self._should_close():
                conn.close()

    def list_created_since(self, after_ms: int, limit: int) -> list[CanonicalRecord]:
        conn = self._get_conn()
        try:
            rows = conn.execute(
                """
                SELECT * FROM silver_requests
                WHERE created_at > ?
                ORDER BY created_at ASC, id ASC
                LIMIT ?
                """,
                (after_ms, limit),
            ).fetchall()
            return [_row_to_record(r) for r in rows]
        finally:
            if self._should_close():
                conn.close()

    def list_in_range(self, start_ms: int, end_ms: int) -> list[CanonicalRecord]:
        conn = self._get_conn()
        try:
            rows = conn.execute(
                """
                SELECT * FROM silver_requests
                WHERE timestamp >= ? AND timestamp < ?
                ORDER BY timestamp ASC
                """,
                (start_ms, end_ms),
            ).fetchall()
            return [_row_to_record(r) for r in rows]
        finally:
            if self._should_close():
                conn.close()

    def query(self, flt: RecordFilter) -> list[CanonicalRecord]:
        sql = "SELECT * FROM silver_requests WHERE 1=1"
        params: list[Any] = []

        if flt.domain:
            sql += " AND domain = ?"
            params.append(flt.domain)
        if flt.page_url:
            sql += " AND page_url = ?"
            params.append(flt.page_url)
        if flt.type:
            sql += " AND type = ?"
            params.append(flt.type)
        if flt.start_ms is not None:
            sql += " AND timestamp >= ?"
            params.append(flt.start_ms)
        if flt.end_ms is not None:
            sql += " AND timestamp < ?"
            params.append(flt.end_ms)

        sql += " ORDER BY timestamp DESC LIMIT ? OFFSET ?"
        params.extend([flt.limit, flt.offset])

        conn = self._get_conn()
        try:
            rows = conn.execute(sql, params).fetchall()
            return [_row_to_record(r) for r in rows]
        finally:
            if self._should_close():
                conn.close()

    def record_skipped(self, skipped: SkippedRecord) -> None:
        conn = self._get_conn()
        try:
            conn.execute(
                """
                INSERT OR REPLACE INTO silver_skipped (raw_seq, raw_id, reason, detail, recorded_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    skipped.raw_seq,
                    skipped.raw_id,
                    skipped.reason,
                    skipped.detail,
                    skipped.recorded_at,
                ),
            )
            if self._should_close():
                conn.commit()
        finally:
            if self._should_close():
                conn.close()

    def list_skipped(self, limit: int = 100) -> list[SkippedRecord]:
        conn = self._get_conn()
        try:
            rows = conn.execute(
                "SELECT * FROM silver_skipped ORDER BY recorded_at DESC, raw_seq DESC LIMIT ?",
                (limit,),
            ).fetchall()
            return [SkippedRecord(**r) for r in rows]
        finally:
            if self._should_close():
                conn.close()

    def trim_skipped(self, before_ms: int) -> int:
        conn = self._get_conn()
        try:
            cursor = conn.execute("DELETE FROM silver_skipped WHERE recorded_at < ?", (before_ms,))
            if self._should_close():
                conn.commit()
            return cursor.rowcount
        finally:
            if self._should_close():
                conn.close()


# -----------------------------------------------------------------------------
# Gold: incremental rollups and daily analytics
# -----------------------------------------------------------------------------


class SQLiteRollupRepo(SQLiteRepoBase):
    """Additive counters for domain, resource type and hour buckets."""

    def apply(self, dimension: RollupDimension, key: str | int, delta: RollupDelta, now_ms: int) -> None:
        table, key_col = _ROLLUP_TABLES[dimension]
        conn = self._get_conn()
        try:
            conn.execute(
                f"""
                INSERT INTO {table} ({key_col}, count, total_bytes, total_duration_ms, error_count, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT({key_col}) DO UPDATE SET
                    count = count + excluded.count,
                    total_bytes = total_bytes + excluded.total_bytes,
                    total_duration_ms = total_duration_ms + excluded.total_duration_ms,
                    error_count = error_count + excluded.error_count,
                    updated_at = excluded.updated_at
                """,
                (
                    key,
                    delta.count,
                    delta.total_bytes,
                    delta.total_duration_ms,
                    delta.error_count,
                    now_ms,
                ),
            )
            if self._should_close():
                conn.commit()
        finally:
            if self._should_close():
                conn.close()

    def list_stats(self, dimension: RollupDimension) -> list[RollupStat]:
        table, key_col = _ROLLUP_TABLES[dimension]
        conn = self._get_conn()
        try:
            rows = conn.execute(
                f"SELECT * FROM {table} WHERE count > 0 ORDER BY count DESC, {key_col} ASC"
            ).fetchall()
            return [self._row_to_stat(r, key_col) for r in rows]
        finally:
            if self._should_close():
                conn.close()

    def list_hourly(self, start_ms: int, end_ms: int) -> list[RollupStat]:
        conn = self._get_conn()
        try:
            rows = conn.execute(
                """
                SELECT * FROM gold_hourly_stats
                WHERE hour_start >= ? AND hour_start < ? AND count > 0
                ORDER BY hour_start ASC
                """,
                (start_ms, end_ms),
            ).fetchall()
            return [self._row_to_stat(r, "hour_start") for r in rows]
        finally:
            if self._should_close():
                conn.close()

    def _row_to_stat(self, row: dict[str, Any], key_col: str) -> RollupStat:
        return RollupStat(
            key=row[key_col],
            count=row["count"],
            total_bytes=row["total_bytes"],
            total_duration_ms=row["total_duration_ms"],
            error_count=row["error_count"],
            updated_at=row["updated_at"],
        )


class SQLiteDailyAnalyticsRepo(SQLiteRepoBase):
    """One analytics row per calendar date."""

    _COLUMNS = (
        "date",
        "total_requests",
        "total_bytes",
        "avg_response_time",
        "median_response_time",
        "p95_response_time",
        "p99_response_time",
        "error_rate",
        "unique_domains",
        "created_at",
        "updated_at",
    )

    def replace(self, row: DailyAnalytics) -> None:
        data = row.model_dump()
        conn = self._get_conn()
        try:
            conn.execute(
                f"""
                INSERT OR REPLACE INTO gold_daily_analytics ({", ".join(self._COLUMNS)})
                VALUES ({", ".join("?" for _ in self._COLUMNS)})
                """,
                tuple(data[col] for col in self._COLUMNS),
            )
            if self._should_close():
                conn.commit()
        finally:
            if self._should_close():
                conn.close()

    def get(self, day: str) -> DailyAnalytics | None:
        conn = self._get_conn()
        try:
            row = conn.execute(
                "SELECT * FROM gold_daily_analytics WHERE date = ?", (day,)
            ).fetchone()
            return DailyAnalytics(**row) if row else None
        finally:
            if self._should_close():
                conn.close()

    def list_created_since(self, after_ms: int, limit: int) -> list[DailyAnalytics]:
        conn = self._get_conn()
        try:
            rows = conn.execute(
                """
                SELECT * FROM gold_daily_analytics
                WHERE created_at > ?
                ORDER BY created_at ASC, date ASC
                LIMIT ?
                """,
                (after_ms, limit),
            ).fetchall()
            return [DailyAnalytics(**r) for r in rows]
        finally:
            if self._should_close():
                conn.close()

    def list_range(self, start_day: str | None = None, end_day: str | None = None) -> list[DailyAnalytics]:
        sql = "SELECT * FROM gold_daily_analytics WHERE 1=1"
        params: list[Any] = []
        if start_day:
            sql += " AND date >= ?"
            params.append(start_day)
        if end_day:
            sql += " AND date <= ?"
            params.append(end_day)
        sql += " ORDER BY date ASC"

        conn = self._get_conn()
        try:
            rows = conn.execute(sql, params).fetchall()
            return [DailyAnalytics(**r) for r in rows]
        finally:
            if self._should_close():
                conn.close()


# -----------------------------------------------------------------------------
# Configuration preferences
# -----------------------------------------------------------------------------


class SQLitePreferenceRepo(SQLiteRepoBase):
    """Synced configuration entries (value stored as JSON text)."""

    def get(self, key: str) -> Preference | None:
        conn = self._get_conn()
        try:
            row = conn.execute(
                "SELECT * FROM config_preferences WHERE key = ?", (key,)
            ).fetchone()
            return _row_to_preference(row) if row else None
        finally:
            if self._should_close():
                conn.close()

    def set(self, key: str, value: Any, now_ms: int) -> Preference:
        conn = self._get_conn()
        try:
            conn.execute(
                """
                INSERT INTO config_preferences (key, value, created_at, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    value=excluded.value,
                    updated_at=excluded.updated_at
                """,
                (key, json.dumps(value), now_ms, now_ms),
            )
            if self._should_close():
                conn.commit()
            row = conn.execute(
                "SELECT * FROM config_preferences WHERE key = ?", (key,)
            ).fetchone()
            return _row_to_preference(row)
        finally:
            if self._should_close():
                conn.close()

    def insert_if_absent(self, pref: Preference) -> bool:
        conn = self._get_conn()
        try:
            cursor = conn.execute(
                """
                INSERT OR IGNORE INTO config_preferences (key, value, created_at, updated_at)
                VALUES (?, ?, ?, ?)
                """,
                (pref.key, json.dumps(pref.value), pref.created_at, pref.updated_at or pref.created_at),
            )
            if self._should_close():
                conn.commit()
            return cursor.rowcount > 0
        finally:
            if self._should_close():
                conn.close()

    def list_updated_since(self, after_ms: int, limit: int) -> list[Preference]:
        conn = self._get_conn()
        try:
            rows = conn.execute(
                """
                SELECT * FROM config_preferences
                WHERE updated_at > ?
                ORDER BY updated_at ASC, key ASC
                LIMIT ?
                """,
                (after_ms, limit),
            ).fetchall()
            return [_row_to_preference(r) for r in rows]
        finally:
            if self._should_close():
                conn.close()

    def list_all(self) -> list[Preference]:
        conn = self._get_conn()
        try:
            rows = conn.execute("SELECT * FROM config_preferences ORDER BY key ASC").fetchall()
            return [_row_to_preference(r) for r in rows]
        finally:
            if self._should_close():
                conn.close()


# -----------------------------------------------------------------------------
# Maintenance
# -----------------------------------------------------------------------------


class SQLiteMaintenance(SQLiteRepoBase):
    """File size and VACUUM for the database file."""

    def database_size_bytes(self) -> int:
        if not os.path.exists(self.db_path):
            return 0
        return os.path.getsize(self.db_path)

    def vacuum(self) -> None:
        conn = self._get_conn()
        try:
            conn.execute("VACUUM")
        finally:
            if self._should_close():
                conn.close()


# -----------------------------------------------------------------------------
# Unit of Work
# -----------------------------------------------------------------------------


class SQLiteUnitOfWork:
    """
    SQLite Unit of Work for silver upserts and their gold deltas.

    Repositories share one connection, so nothing is committed until
    commit() is called.
    """

    def __init__(self, db_path: str):
        self.db_path = db_path
        self._conn: sqlite3.Connection | None = None
        self._canonical: SQLiteCanonicalRepo | None = None
        self._rollups: SQLiteRollupRepo | None = None

    def __enter__(self) -> SQLiteUnitOfWork:
        self._conn = sqlite3.connect(self.db_path)
        self._conn.row_factory = dict_factory
        self._conn.execute("PRAGMA foreign_keys = ON;")
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        if self._conn:
            # Anything not committed is discarded
            self.rollback()
            self._conn.close()
            self._conn = None
        self._canonical = None
        self._rollups = None

    def commit(self) -> None:
        if self._conn:
            self._conn.commit()

    def rollback(self) -> None:
        if self._conn:
            self._conn.rollback()

    @property
    def canonical(self) -> SQLiteCanonicalRepo:
        if self._canonical is None:
            self._canonical = SQLiteCanonicalRepo(self.db_path, self._conn)
        return self._canonical

    @property
    def rollups(self) -> SQLiteRollupRepo:
        if self._rollups is None:
            self._rollups = SQLiteRollupRepo(self.db_path, self._conn)
        return self._rollups


# -----------------------------------------------------------------------------
# Ad-hoc read-only queries
# -----------------------------------------------------------------------------

_READ_KEYWORDS = ("select", "with")


def check_select(sql: str) -> str:
    """
    Normalize an ad-hoc query and reject anything but a single SELECT.

    Raises:
        ValueError: Empty, multi-statement or non-SELECT query
    """
    statement = sql.strip().rstrip(";").strip()
    if not statement:
        raise ValueError("Query is empty")
    if ";" in statement or not sqlite3.complete_statement(statement + ";"):
        raise ValueError("Only a single statement is allowed")
    first = statement.split(None, 1)[0].lower()
    if first not in _READ_KEYWORDS:
        raise ValueError("Only SELECT queries are allowed")
    return statement


class SQLiteReadOnlyQuery:
    """Runs SELECTs over a mode=ro connection, so writes fail at the driver."""

    def __init__(self, db_path: str, max_rows: int = 1000):
        self.db_path = db_path
        self.max_rows = max_rows

    def _get_conn(self) -> sqlite3.Connection:
        uri = f"file:{os.path.abspath(self.db_path)}?mode=ro"
        conn = sqlite3.connect(uri, uri=True)
        conn.row_factory = dict_factory
        return conn

    def select(self, sql: str, params: list[Any] | None = None) -> list[dict[str, Any]]:
        statement = check_select(sql)
        conn = self._get_conn()
        try:
            cursor = conn.execute(statement, params or [])
            return cursor.fetchmany(self.max_rows)
        finally:
            conn.close()
