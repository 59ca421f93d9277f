import sqlite3

import pytest

from src.adapters.sqlite.repos import (
    SQLiteCanonicalRepo,
    SQLiteDailyAnalyticsRepo,
    SQLiteMaintenance,
    SQLitePreferenceRepo,
    SQLiteRawEventRepo,
    SQLiteReadOnlyQuery,
    SQLiteRollupRepo,
    SQLiteUnitOfWork,
    check_select,
)
from src.core.entities import CanonicalRecord, DailyAnalytics, Preference, SkippedRecord
from src.core.ports.db import RecordFilter, RollupDelta


def make_record(record_id="r1", **overrides):
    values = {
        "id": record_id,
        "url": "https://a.com/x",
        "domain": "a.com",
        "type": "xhr",
        "status": 200,
        "status_class": "2xx",
        "duration_ms": 120,
        "size_bytes": 2048,
        "is_secure": True,
        "timestamp": 1_000,
        "raw_seq": 1,
        "created_at": 10,
        "updated_at": 10,
    }
    values.update(overrides)
    return CanonicalRecord(**values)


# --- Bronze ---


def test_raw_events_append_only_sequence(db_path):
    repo = SQLiteRawEventRepo(db_path)
    first = repo.insert("r1", "request", {"url": "https://a.com", "n": [1]}, 5)
    second = repo.insert("r1", "request", {"url": "https://a.com", "n": [2]}, 6)

    assert second > first
    assert repo.count() == 2
    assert repo.get_latest("r1").payload == {"url": "https://a.com", "n": [2]}
    assert [e.seq for e in repo.list_since(first, 10)] == [second]


def test_raw_events_reject_unknown_category(db_path):
    repo = SQLiteRawEventRepo(db_path)
    with pytest.raises(sqlite3.IntegrityError):
        repo.insert("x", "console", {}, 1)


# --- Silver ---


def test_canonical_upsert_keeps_created_at(db_path):
    repo = SQLiteCanonicalRepo(db_path)
    repo.upsert(make_record())
    repo.upsert(make_record(status=404, created_at=99, updated_at=99))

    stored = repo.get("r1")
    assert stored.status == 404
    assert stored.created_at == 10
    assert stored.updated_at == 99
    assert stored.is_secure is True
    assert stored.from_cache is False


def test_canonical_insert_if_absent(db_path):
    repo = SQLiteCanonicalRepo(db_path)
    assert repo.insert_if_absent(make_record()) is True
    assert repo.insert_if_absent(make_record(status=500)) is False
    assert repo.get("r1").status == 200


def test_canonical_list_created_since(db_path):
    repo = SQLiteCanonicalRepo(db_path)
    for i, created in enumerate([5, 15, 25]):
        repo.upsert(make_record(f"r{i}", created_at=created))

    assert [r.id for r in repo.list_created_since(10, 10)] == ["r1", "r2"]
    assert [r.id for r in repo.list_created_since(0, 1)] == ["r0"]


def test_canonical_query_filters(db_path):
    repo = SQLiteCanonicalRepo(db_path)
    repo.upsert(make_record("a", timestamp=100))
    repo.upsert(make_record("b", timestamp=200, domain="b.com", type="script"))
    repo.upsert(make_record("c", timestamp=300, page_url="https://a.com/"))

    assert [r.id for r in repo.query(RecordFilter())] == ["c", "b", "a"]
    assert [r.id for r in repo.query(RecordFilter(domain="b.com"))] == ["b"]
    assert [r.id for r in repo.query(RecordFilter(type="xhr"))] == ["c", "a"]
    assert [r.id for r in repo.query(RecordFilter(page_url="https://a.com/"))] == ["c"]
    assert [r.id for r in repo.query(RecordFilter(start_ms=150, end_ms=300))] == ["b"]
    assert [r.id for r in repo.query(RecordFilter(limit=1, offset=1))] == ["b"]


def test_skipped_records_trim(db_path):
    repo = SQLiteCanonicalRepo(db_path)
    repo.record_skipped(SkippedRecord(raw_seq=1, raw_id="a", reason="missing_field", recorded_at=10))
    repo.record_skipped(SkippedRecord(raw_seq=2, raw_id="b", reason="malformed_url", detail="bad", recorded_at=20))
    repo.record_skipped(SkippedRecord(raw_seq=2, raw_id="b", reason="invalid_field", recorded_at=30))

    assert [s.reason for s in repo.list_skipped()] == ["invalid_field", "missing_field"]
    assert repo.trim_skipped(15) == 1
    assert [s.raw_seq for s in repo.list_skipped()] == [2]


# --- Gold ---


def test_rollup_apply_is_additive(db_path):
    repo = SQLiteRollupRepo(db_path)
    repo.apply("domain", "a.com", RollupDelta(1, 2048, 120, 0), 1)
    repo.apply("domain", "a.com", RollupDelta(1, 100, 80, 1), 2)
    repo.apply("domain", "b.com", RollupDelta(1, 1, 1, 0), 2)
    repo.apply("domain", "b.com", RollupDelta(-1, -1, -1, 0), 3)

    [stat] = repo.list_stats("domain")
    assert stat.key == "a.com"
    assert stat.count == 2
    assert stat.total_bytes == 2148
    assert stat.error_count == 1
    assert stat.avg_duration_ms == 100.0
    assert stat.updated_at == 2


def test_rollup_hourly_range(db_path):
    repo = SQLiteRollupRepo(db_path)
    hour = 3_600_000
    for h in range(3):
        repo.apply("hourly", h * hour, RollupDelta(1, 10, 10, 0), 1)
    repo.apply("resource", "xhr", RollupDelta(1, 10, 10, 0), 1)

    assert [s.key for s in repo.list_hourly(hour, 3 * hour)] == [hour, 2 * hour]
    assert [s.key for s in repo.list_stats("resource")] == ["xhr"]


def test_daily_analytics_replace_and_range(db_path):
    repo = SQLiteDailyAnalyticsRepo(db_path)
    repo.replace(DailyAnalytics(date="2024-06-14", total_requests=1, created_at=1, updated_at=1))
    repo.replace(DailyAnalytics(date="2024-06-15", total_requests=2, created_at=5, updated_at=5))
    repo.replace(DailyAnalytics(date="2024-06-15", total_requests=3, error_rate=12.5, created_at=9, updated_at=9))

    assert repo.get("2024-06-15").total_requests == 3
    assert repo.get("2024-06-15").error_rate == 12.5
    assert [r.date for r in repo.list_range("2024-06-15")] == ["2024-06-15"]
    assert [r.date for r in repo.list_range(None, "2024-06-14")] == ["2024-06-14"]
    assert [r.date for r in repo.list_created_since(4, 10)] == ["2024-06-15"]


# --- Unit of work ---


def test_unit_of_work_commit_persists_record_and_rollup(db_path):
    with SQLiteUnitOfWork(db_path) as uow:
        uow.canonical.upsert(make_record())
        uow.rollups.apply("domain", "a.com", RollupDelta(1, 2048, 120, 0), 1)
        uow.commit()

    assert SQLiteCanonicalRepo(db_path).get("r1") is not None
    assert [s.key for s in SQLiteRollupRepo(db_path).list_stats("domain")] == ["a.com"]


def test_unit_of_work_without_commit_writes_nothing(db_path):
    with pytest.raises(RuntimeError):
        with SQLiteUnitOfWork(db_path) as uow:
            uow.canonical.upsert(make_record())
            uow.rollups.apply("domain", "a.com", RollupDelta(1, 2048, 120, 0), 1)
            raise RuntimeError("rollup failed")

    assert SQLiteCanonicalRepo(db_path).get("r1") is None
    assert SQLiteRollupRepo(db_path).list_stats("domain") == []


# --- Config ---


def test_preferences(db_path):
    repo = SQLitePreferenceRepo(db_path)
    repo.set("theme", {"mode": "dark"}, 10)
    repo.set("theme", {"mode": "light"}, 20)

    pref = repo.get("theme")
    assert pref.value == {"mode": "light"}
    assert pref.created_at == 10
    assert pref.updated_at == 20

    assert repo.insert_if_absent(Preference(key="theme", value="x", created_at=30, updated_at=30)) is False
    assert repo.insert_if_absent(Preference(key="lang", value="en", created_at=30, updated_at=30)) is True
    assert [p.key for p in repo.list_updated_since(15, 10)] == ["theme", "lang"]
    assert [p.key for p in repo.list_all()] == ["lang", "theme"]


# --- Maintenance / read-only SQL ---


def test_maintenance_size_and_vacuum(db_path, tmp_path):
    maintenance = SQLiteMaintenance(db_path)
    assert maintenance.database_size_bytes() > 0
    maintenance.vacuum()
    assert SQLiteMaintenance(str(tmp_path / "missing.db")).database_size_bytes() == 0


def test_readonly_query_selects(db_path):
    SQLiteCanonicalRepo(db_path).upsert(make_record())
    query = SQLiteReadOnlyQuery(db_path)

    rows = query.select("SELECT id, domain FROM silver_requests WHERE status = ?;", [200])

    assert rows == [{"id": "r1", "domain": "a.com"}]


def test_readonly_query_cannot_write(db_path):
    query = SQLiteReadOnlyQuery(db_path)
    with pytest.raises(sqlite3.OperationalError):
        query.select("WITH x AS (SELECT 1) DELETE FROM silver_requests")


@pytest.mark.parametrize(
    "sql",
    ["", "DELETE FROM silver_requests", "SELECT 1; DROP TABLE silver_requests", "PRAGMA user_version = 3"],
)
def test_check_select_rejects(sql):
    with pytest.raises(ValueError):
        check_select(sql)
