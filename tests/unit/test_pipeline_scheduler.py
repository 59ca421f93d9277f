"""
Tests for PipelineScheduler (interval sync, nightly rollup, maintenance, triggers).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, date, datetime, timedelta

import pytest

from src.components.scheduler import PipelineScheduler, SchedulerConfig, run_maintenance
from src.components.silver import InMemoryCanonicalRepo
from src.core.entities import SkippedRecord
from src.core.events import BronzeInserted, LoggedIn, PipelineEvents, SessionExpired
from src.core.result import Err, ErrorKind, Ok

from tests.conftest import FakeClock, FakeTimers

# --- Dataclass mocks ---


@dataclass
class FakeSync:
    is_syncing: bool = False
    runs: int = 0
    fail_with: Exception | None = None

    async def sync_all(self):
        self.runs += 1
        if self.fail_with is not None:
            raise self.fail_with
        return Ok({})


@dataclass
class FakeSessionState:
    is_authenticated: bool = True


@dataclass
class FakeRollup:
    days: list[date] = field(default_factory=list)
    fail: bool = False

    async def rollup_daily(self, day):
        self.days.append(day)
        if self.fail:
            raise RuntimeError("rollup broke")


@dataclass
class FakeMaintenance:
    size: int = 0
    vacuums: int = 0
    size_after_vacuum: int = 0

    def database_size_bytes(self) -> int:
        return self.size

    def vacuum(self) -> None:
        self.vacuums += 1
        self.size = self.size_after_vacuum


# --- Fixtures ---


@pytest.fixture
def sync() -> FakeSync:
    return FakeSync()


@pytest.fixture
def session_state() -> FakeSessionState:
    return FakeSessionState()


@pytest.fixture
def rollup() -> FakeRollup:
    return FakeRollup()


@pytest.fixture
def maintenance() -> FakeMaintenance:
    return FakeMaintenance()


@pytest.fixture
def skipped() -> InMemoryCanonicalRepo:
    return InMemoryCanonicalRepo()


@pytest.fixture
def events() -> PipelineEvents:
    return PipelineEvents()


def build(timers, clock, sync, session_state, rollup, maintenance, skipped, events, **config) -> PipelineScheduler:
    return PipelineScheduler(
        timers,
        clock,
        sync,
        session_state,
        rollup,
        maintenance,
        skipped,
        SchedulerConfig(**config),
        events,
    )


@pytest.fixture
def scheduler(
    timers, clock, sync, session_state, rollup, maintenance, skipped, events
) -> PipelineScheduler:
    return build(
        timers, clock, sync, session_state, rollup, maintenance, skipped, events, sync_interval_seconds=60
    )


# --- Lifecycle ---


class TestLifecycle:
    def test_start_arms_sync_rollup_and_maintenance(self, scheduler, timers, clock) -> None:
        scheduler.start()

        status = scheduler.status()
        assert status.running
        assert status.interval_sync_active
        assert status.next_sync_at == clock.now_utc() + timedelta(seconds=60)
        assert status.next_rollup_at == datetime(2024, 6, 16, tzinfo=UTC)
        assert status.next_maintenance_at == clock.now_utc() + timedelta(hours=6)
        assert len(timers.pending) == 3

    def test_start_and_stop_are_idempotent(self, scheduler, timers, events) -> None:
        scheduler.start()
        scheduler.start()
        assert len(timers.pending) == 3
        assert events.logged_in.subscriber_count == 1

        scheduler.stop()
        scheduler.stop()
        assert timers.pending == []
        assert events.logged_in.subscriber_count == 0
        assert not scheduler.status().running

    def test_auto_sync_off_skips_interval(
        self, timers, clock, sync, session_state, rollup, maintenance, skipped, events
    ) -> None:
        scheduler = build(
            timers, clock, sync, session_state, rollup, maintenance, skipped, events, auto_sync=False
        )
        scheduler.start()
        assert not scheduler.status().interval_sync_active

    def test_restarting_interval_replaces_timer(self, scheduler, timers) -> None:
        scheduler.start_interval_sync()
        scheduler.start_interval_sync()

        assert len(timers.pending) == 1


# --- Interval sync ---


class TestIntervalSync:
    async def test_interval_runs_sync_and_rearms(self, scheduler, timers, clock, sync) -> None:
        scheduler.start()

        clock.advance(seconds=60)
        await timers.run_due()
        clock.advance(seconds=60)
        await timers.run_due()

        assert sync.runs == 2
        assert scheduler.status().next_sync_at == clock.now_utc() + timedelta(seconds=60)

    async def test_skips_when_already_syncing(self, scheduler, sync) -> None:
        sync.is_syncing = True
        await scheduler.sync_if_ready("interval")
        assert sync.runs == 0

    async def test_skips_when_not_authenticated(self, scheduler, sync, session_state) -> None:
        session_state.is_authenticated = False
        await scheduler.sync_if_ready("interval")
        assert sync.runs == 0

    async def test_failure_is_logged_and_interval_survives(self, scheduler, timers, clock, sync, caplog) -> None:
        sync.fail_with = RuntimeError("boom")
        scheduler.start()

        clock.advance(seconds=60)
        await timers.run_due()

        assert sync.runs == 1
        assert scheduler.status().interval_sync_active
        assert "Interval sync failed" in caplog.text

    async def test_err_result_is_logged(self, scheduler, sync, caplog) -> None:
        async def refused():
            sync.runs += 1
            return Err(ErrorKind.NOT_AUTHENTICATED, "Not authenticated")

        sync.sync_all = refused  # type: ignore[method-assign]

        await scheduler.sync_if_ready("manual")

        assert "Not authenticated" in caplog.text

    async def test_ok_result_is_not_reported(self, scheduler, sync, caplog) -> None:
        await scheduler.sync_if_ready("manual")

        assert sync.runs == 1
        assert "did not run" not in caplog.text


# --- Daily rollup ---


class TestDailyRollup:
    async def test_rollup_at_midnight_for_previous_day(self, scheduler, timers, clock, rollup) -> None:
        scheduler.start()

        clock.set_now(datetime(2024, 6, 16, 0, 0, 1, tzinfo=UTC))
        await timers.run_due()

        assert rollup.days == [date(2024, 6, 15)]
        assert scheduler.status().next_rollup_at == datetime(2024, 6, 17, tzinfo=UTC)

    async def test_rollup_failure_still_rearms(self, scheduler, timers, clock, rollup) -> None:
        rollup.fail = True
        scheduler.start()

        clock.set_now(datetime(2024, 6, 16, 0, 0, 1, tzinfo=UTC))
        await timers.run_due()

        assert scheduler.status().next_rollup_at == datetime(2024, 6, 17, tzinfo=UTC)

    def test_midnight_follows_local_timezone(self, sync, session_state, rollup, maintenance, skipped) -> None:
        clock = FakeClock(datetime(2024, 3, 30, 12, 0, tzinfo=UTC), tz_name="Europe/London")
        timers = FakeTimers(clock)
        scheduler = build(timers, clock, sync, session_state, rollup, maintenance, skipped, None)

        scheduler.schedule_daily_rollup()
        first = scheduler.status().next_rollup_at

        # London midnight before BST starts is 00:00Z
        assert first == datetime(2024, 3, 31, 0, 0, tzinfo=UTC)

    async def test_dst_day_is_23_hours(self, sync, session_state, rollup, maintenance, skipped) -> None:
        clock = FakeClock(datetime(2024, 3, 31, 0, 0, 1, tzinfo=UTC), tz_name="Europe/London")
        timers = FakeTimers(clock)
        scheduler = build(timers, clock, sync, session_state, rollup, maintenance, skipped, None)
        scheduler.start()

        # End of 2024-03-31 in London is 2024-03-31T23:00Z (BST)
        assert scheduler.status().next_rollup_at == datetime(2024, 3, 31, 23, 0, tzinfo=UTC)
        scheduler.stop()


# --- Maintenance ---


class TestMaintenance:
    def test_trims_old_skips_and_vacuums_over_threshold(self, clock, maintenance, skipped, now_ms) -> None:
        day = 86_400_000
        for seq, age in ((1, 8 * day), (2, day)):
            skipped.record_skipped(
                SkippedRecord(raw_seq=seq, raw_id=str(seq), reason="missing_field", recorded_at=now_ms - age)
            )
        maintenance.size = 200 * 1024 * 1024
        maintenance.size_after_vacuum = 50 * 1024 * 1024

        out = run_maintenance(clock=clock, maintenance=maintenance, skipped=skipped)

        assert out.trimmed_skipped == 1
        assert list(skipped.skipped) == [2]
        assert out.vacuumed
        assert out.size_bytes == 50 * 1024 * 1024

    def test_small_database_is_not_vacuumed(self, clock, maintenance, skipped) -> None:
        maintenance.size = 1024

        out = run_maintenance(
            clock=clock, maintenance=maintenance, skipped=skipped, config=SchedulerConfig(vacuum_threshold_mb=1)
        )

        assert not out.vacuumed
        assert maintenance.vacuums == 0

    async def test_maintenance_timer_rearms(self, scheduler, timers, clock, maintenance) -> None:
        maintenance.size = 500 * 1024 * 1024
        scheduler.start()

        clock.advance(hours=6)
        await timers.run_due()

        assert maintenance.vacuums == 1
        assert scheduler.status().next_maintenance_at == clock.now_utc() + timedelta(hours=6)


# --- Event triggers ---


class TestTriggers:
    async def test_login_triggers_sync(self, scheduler, timers, events, sync) -> None:
        scheduler.start()

        await events.logged_in.publish(LoggedIn(user_id="u1", team_id="t1"))
        await timers.run_due()

        assert sync.runs == 1

    async def test_login_restarts_stopped_interval(self, scheduler, events) -> None:
        scheduler.start()
        await events.session_expired.publish(SessionExpired(reason="refresh failed"))
        assert not scheduler.status().interval_sync_active

        await events.logged_in.publish(LoggedIn(user_id="u1", team_id="t1"))

        assert scheduler.status().interval_sync_active

    async def test_insert_threshold_triggers_sync(
        self, timers, clock, sync, session_state, rollup, maintenance, skipped, events
    ) -> None:
        scheduler = build(
            timers,
            clock,
            sync,
            session_state,
            rollup,
            maintenance,
            skipped,
            events,
            sync_after_inserts=3,
            auto_sync=False,
        )
        scheduler.start()

        for seq in range(1, 7):
            await events.bronze_inserted.publish(BronzeInserted(raw_id=f"r{seq}", seq=seq, category="request"))
        await timers.run_due()

        assert sync.runs == 2
        assert scheduler.status().inserts_since_sync == 0

    async def test_threshold_zero_never_triggers(self, scheduler, timers, events, sync) -> None:
        scheduler.start()
        await events.bronze_inserted.publish(BronzeInserted(raw_id="r1", seq=1, category="request"))
        await timers.run_due()
        assert sync.runs == 0

    async def test_session_expired_stops_interval(self, scheduler, events, caplog) -> None:
        scheduler.start()

        await events.session_expired.publish(SessionExpired(reason="refresh failed"))

        assert not scheduler.status().interval_sync_active
        assert "refresh failed" in caplog.text
