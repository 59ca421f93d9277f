"""
PipelineScheduler - Periodic and event-triggered pipeline work.

Every recurring job is a one-shot timer that re-arms itself from inside the
task, so each job has at most one pending CancelToken.

Key behaviors:
- Interval sync runs only when not already syncing and authenticated;
  start_interval_sync() replaces any existing timer; start/stop are idempotent
- Daily rollup fires at local midnight for the day that just ended, then
  re-arms for the following midnight (DST-safe via TimePort day bounds)
- Maintenance trims old skip records and VACUUMs past the size threshold
- Triggers: LoggedIn -> sync, every N BronzeInserted -> sync,
  SessionExpired -> stop interval sync
- Task failures are logged, never raised into the timer
"""

from __future__ import annotations

import functools
import logging
from collections.abc import Callable
from datetime import UTC, date, datetime, timedelta

from src.core.events import BronzeInserted, LoggedIn, PipelineEvents, SessionExpired
from src.core.result import Err

from .models import MaintenanceOutput, SchedulerConfig, SchedulerStatus
from .ports import (
    CancelToken,
    DailyRollupPort,
    MaintenancePort,
    SessionStatePort,
    SkippedTrimPort,
    SyncRunnerPort,
    TimePort,
    TimerPort,
)

logger = logging.getLogger(__name__)

DAY_MS = 86_400_000


def perform_maintenance(
    clock: TimePort,
    maintenance: MaintenancePort,
    skipped: SkippedTrimPort,
    config: SchedulerConfig,
) -> MaintenanceOutput:
    """Trim stale skip records, then VACUUM when the database is over threshold."""
    cutoff = clock.now_ms() - config.skipped_retention_days * DAY_MS
    trimmed = skipped.trim_skipped(cutoff)

    size = maintenance.database_size_bytes()
    vacuumed = False
    if size > config.vacuum_threshold_mb * 1024 * 1024:
        logger.info("Database is %d bytes; running VACUUM", size)
        maintenance.vacuum()
        vacuumed = True
        size = maintenance.database_size_bytes()

    logger.info("Maintenance done: %d skip records trimmed, vacuum=%s", trimmed, vacuumed)
    return MaintenanceOutput(trimmed_skipped=trimmed, size_bytes=size, vacuumed=vacuumed)


class PipelineScheduler:
    """Timers and event triggers for sync, rollup and maintenance."""

    def __init__(
        self,
        timers: TimerPort,
        clock: TimePort,
        sync: SyncRunnerPort,
        session: SessionStatePort,
        rollup: DailyRollupPort,
        maintenance: MaintenancePort,
        skipped: SkippedTrimPort,
        config: SchedulerConfig | None = None,
        events: PipelineEvents | None = None,
    ) -> None:
        self._timers = timers
        self._clock = clock
        self._sync = sync
        self._session = session
        self._rollup = rollup
        self._maintenance = maintenance
        self._skipped = skipped
        self._config = config or SchedulerConfig()
        self._events = events

        self._running = False
        self._sync_token: CancelToken | None = None
        self._rollup_token: CancelToken | None = None
        self._maintenance_token: CancelToken | None = None
        self._unsubscribers: list[Callable[[], None]] = []
        self._inserts_since_sync = 0

    # --- Lifecycle ---

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        if self._running:
            return
        self._running = True
        if self._config.auto_sync:
            self.start_interval_sync()
        self.schedule_daily_rollup()
        self._arm_maintenance()
        self._subscribe()
        logger.info("Scheduler started")

    def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        self.stop_interval_sync()
        for token in (self._rollup_token, self._maintenance_token):
            if token is not None:
                token.cancel()
        self._rollup_token = None
        self._maintenance_token = None
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()
        logger.info("Scheduler stopped")

    def status(self) -> SchedulerStatus:
        return SchedulerStatus(
            running=self._running,
            interval_sync_active=self._sync_token is not None,
            next_sync_at=self._sync_token.when if self._sync_token else None,
            next_rollup_at=self._rollup_token.when if self._rollup_token else None,
            next_maintenance_at=self._maintenance_token.when if self._maintenance_token else None,
            inserts_since_sync=self._inserts_since_sync,
        )

    # --- Interval sync ---

    def start_interval_sync(self) -> None:
        self.stop_interval_sync()
        self._arm_interval()
        logger.info("Interval sync started (every %ds)", self._config.sync_interval_seconds)

    def stop_interval_sync(self) -> None:
        if self._sync_token is None:
            return
        self._sync_token.cancel()
        self._sync_token = None
        logger.info("Interval sync stopped")

    def _arm_interval(self) -> None:
        when = self._clock.now_utc() + timedelta(seconds=self._config.sync_interval_seconds)
        self._sync_token = self._timers.schedule_at(when, self._interval_tick)

    async def _interval_tick(self) -> None:
        # Re-arm first so a slow or failing sync never stops the interval
        self._arm_interval()
        await self.sync_if_ready("interval")

    async def sync_if_ready(self, reason: str) -> None:
        """Run sync_all() when no sync is running and the session is authenticated."""
        if self._sync.is_syncing:
            logger.debug("Skipping %s sync: sync in progress", reason)
            return
        if not self._session.is_authenticated:
            logger.debug("Skipping %s sync: not authenticated", reason)
            return

        self._inserts_since_sync = 0
        try:
            result = await self._sync.sync_all()
        except Exception:
            logger.exception("%s sync failed", reason.capitalize())
            return
        if isinstance(result, Err):
            logger.warning("%s sync did not run: %s", reason.capitalize(), result.message)

    # --- Daily rollup ---

    def schedule_daily_rollup(self) -> None:
        self._arm_rollup(self._clock.today_local())

    def _arm_rollup(self, day: date) -> None:
        """Arm the rollup of `day` at the local midnight that ends it."""
        _, end_ms = self._clock.local_day_bounds_ms(day)
        task = functools.partial(self._rollup_tick, day)
        midnight = datetime.fromtimestamp(end_ms / 1000, tz=UTC)
        self._rollup_token = self._timers.schedule_at(midnight, task)

    async def _rollup_tick(self, day: date) -> None:
        try:
            await self._rollup.rollup_daily(day)
        except Exception:
            logger.exception("Daily rollup for %s failed", day.isoformat())
        finally:
            if self._running:
                self._arm_rollup(day + timedelta(days=1))

    # --- Maintenance ---

    def _arm_maintenance(self) -> None:
        when = self._clock.now_utc() + timedelta(hours=self._config.maintenance_interval_hours)
        self._maintenance_token = self._timers.schedule_at(when, self._maintenance_tick)

    async def _maintenance_tick(self) -> None:
        try:
            self.run_maintenance()
        except Exception:
            logger.exception("Maintenance failed")
        finally:
            if self._running:
                self._arm_maintenance()

    def run_maintenance(self) -> MaintenanceOutput:
        return perform_maintenance(self._clock, self._maintenance, self._skipped, self._config)

    # --- Event triggers ---

    def _subscribe(self) -> None:
        if self._events is None:
            return
        self._unsubscribers = [
            self._events.logged_in.subscribe(self.on_logged_in),
            self._events.bronze_inserted.subscribe(self.on_bronze_inserted),
            self._events.session_expired.subscribe(self.on_session_expired),
        ]

    def _trigger_sync(self, reason: str) -> None:
        """Run a sync on the next timer turn instead of inside the publisher."""
        self._timers.schedule_at(self._clock.now_utc(), functools.partial(self.sync_if_ready, reason))

    def on_logged_in(self, event: LoggedIn) -> None:
        if self._running and self._config.auto_sync and self._sync_token is None:
            self.start_interval_sync()
        if self._config.sync_on_login:
            self._trigger_sync("login")

    def on_bronze_inserted(self, event: BronzeInserted) -> None:
        threshold = self._config.sync_after_inserts
        if threshold <= 0:
            return
        self._inserts_since_sync += 1
        if self._inserts_since_sync >= threshold:
            self._inserts_since_sync = 0
            self._trigger_sync("insert-triggered")

    def on_session_expired(self, event: SessionExpired) -> None:
        logger.warning("Session expired (%s); stopping interval sync", event.reason)
        self.stop_interval_sync()
