"""
Pipeline wiring.

PipelineContext owns the process-wide handles (AuthSession, SyncEngine and
its cursor, event channels) and the components built on them. Lifecycle is
explicit: create() builds, start() restores the session and arms timers,
close() stops timers, waits for runs already in flight and then releases
the HTTP client.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from src.adapters.asyncio_timers import AsyncioTimers
from src.adapters.clock import SystemClock
from src.adapters.http.remote_api import HttpxRemoteApi
from src.adapters.sqlite.migrator import SQLiteMigrator
from src.adapters.sqlite.repos import (
    SQLiteCanonicalRepo,
    SQLiteDailyAnalyticsRepo,
    SQLiteMaintenance,
    SQLitePreferenceRepo,
    SQLiteRawEventRepo,
    SQLiteRollupRepo,
    SQLiteUnitOfWork,
)
from src.adapters.state_store import JsonFileStateStore
from src.app_shell.config import MIGRATIONS_DIR
from src.components.auth_session import AuthSession
from src.components.bronze import Collector, RawStore
from src.components.gold import Aggregator
from src.components.scheduler import PipelineScheduler, SchedulerConfig
from src.components.silver import TransformConfig, Transformer
from src.components.sync import SyncConfig, SyncEngine
from src.core.events import BronzeInserted, PipelineEvents
from src.core.ports.db import (
    CanonicalRepoPort,
    DailyAnalyticsRepoPort,
    MaintenancePort,
    PreferenceRepoPort,
    RawEventRepoPort,
    RollupRepoPort,
)
from src.core.ports.remote import RemoteApiPort
from src.core.ports.state import StateStorePort
from src.core.ports.time import TimePort
from src.core.ports.timers import CancelToken, TimerPort
from src.rules.models import Rules

logger = logging.getLogger(__name__)


@dataclass
class PipelineContext:
    rules: Rules
    clock: TimePort
    events: PipelineEvents
    state: StateStorePort
    api: RemoteApiPort
    timers: TimerPort
    raw_repo: RawEventRepoPort
    canonical_repo: CanonicalRepoPort
    rollup_repo: RollupRepoPort
    daily_repo: DailyAnalyticsRepoPort
    preference_repo: PreferenceRepoPort
    maintenance: MaintenancePort
    raw_store: RawStore
    collector: Collector
    transformer: Transformer
    aggregator: Aggregator
    session: AuthSession
    sync_engine: SyncEngine
    scheduler: PipelineScheduler
    _unsubscribers: list[Any] = field(default_factory=list)
    _transform_token: CancelToken | None = None
    _started: bool = False

    @classmethod
    def create(
        cls,
        rules: Rules,
        *,
        clock: TimePort | None = None,
        api: RemoteApiPort | None = None,
        timers: TimerPort | None = None,
        state: StateStorePort | None = None,
        migrate: bool = True,
    ) -> PipelineContext:
        db_path = rules.storage.db_path
        if migrate:
            SQLiteMigrator(db_path, str(MIGRATIONS_DIR)).run_migrations()

        # Adapters
        clock = clock or SystemClock(rules.pipeline.timezone)
        events = PipelineEvents()
        state = state or JsonFileStateStore(Path(rules.storage.state_path))
        api = api or HttpxRemoteApi(
            rules.sync.base_url,
            api_key=rules.sync.api_key,
            timeout_seconds=rules.sync.request_timeout_seconds,
            health_timeout_seconds=rules.sync.health_timeout_seconds,
        )
        timers = timers or AsyncioTimers(clock)

        raw_repo = SQLiteRawEventRepo(db_path)
        canonical_repo = SQLiteCanonicalRepo(db_path)
        rollup_repo = SQLiteRollupRepo(db_path)
        daily_repo = SQLiteDailyAnalyticsRepo(db_path)
        preference_repo = SQLitePreferenceRepo(db_path)
        maintenance = SQLiteMaintenance(db_path)

        # Components
        pipeline = rules.pipeline
        raw_store = RawStore(raw_repo, clock, events.bronze_inserted)
        collector = Collector(raw_store, clock, queue_size=pipeline.collector_queue_size)
        aggregator = Aggregator(
            canonical_repo,
            rollup_repo,
            daily_repo,
            clock,
            events.daily_rollup_completed,
            unit_of_work=lambda: SQLiteUnitOfWork(db_path),
        )
        transformer = Transformer(
            raw_repo,
            canonical_repo,
            state,
            clock,
            TransformConfig(
                batch_size=pipeline.batch_size,
                max_url_length=pipeline.max_url_length,
                max_duration_ms=pipeline.max_duration_ms,
                max_size_bytes=pipeline.max_size_bytes,
                third_party_markers=tuple(pipeline.third_party_markers),
            ),
            events.silver_written,
            store=aggregator,
        )
        session = AuthSession(api, state, events.logged_in, events.session_expired)
        sync_engine = SyncEngine(
            session,
            canonical_repo,
            daily_repo,
            preference_repo,
            state,
            clock,
            SyncConfig(
                enabled=rules.sync.enabled,
                batch_size=rules.sync.batch_size,
                analytics_batch_size=rules.sync.analytics_batch_size,
            ),
            record_store=aggregator,
            completed=events.sync_completed,
        )
        scheduler = PipelineScheduler(
            timers,
            clock,
            sync_engine,
            session,
            aggregator,
            maintenance,
            canonical_repo,
            SchedulerConfig(
                auto_sync=rules.sync.enabled,
                sync_interval_seconds=rules.sync.interval_seconds,
                sync_on_login=rules.sync.sync_on_login,
                sync_after_inserts=rules.sync.sync_after_inserts,
                maintenance_interval_hours=rules.maintenance.interval_hours,
                vacuum_threshold_mb=rules.maintenance.vacuum_threshold_mb,
                skipped_retention_days=rules.maintenance.skipped_retention_days,
            ),
            events,
        )

        ctx = cls(
            rules=rules,
            clock=clock,
            events=events,
            state=state,
            api=api,
            timers=timers,
            raw_repo=raw_repo,
            canonical_repo=canonical_repo,
            rollup_repo=rollup_repo,
            daily_repo=daily_repo,
            preference_repo=preference_repo,
            maintenance=maintenance,
            raw_store=raw_store,
            collector=collector,
            transformer=transformer,
            aggregator=aggregator,
            session=session,
            sync_engine=sync_engine,
            scheduler=scheduler,
        )
        ctx._unsubscribers = [
            events.bronze_inserted.subscribe(sync_engine.handle_bronze_inserted),
        ]
        return ctx

    async def start(self, *, with_scheduler: bool = True) -> None:
        """Restore the session and start background work (needs a running loop)."""
        if self._started:
            return
        self._started = True
        await self.session.initialize()
        self.collector.start()
        self._unsubscribers.append(self.events.bronze_inserted.subscribe(self._on_bronze_inserted))
        if with_scheduler:
            self.scheduler.start()
        logger.info("Pipeline started")

    async def close(self) -> None:
        if self._started:
            self.scheduler.stop()
            if self._transform_token is not None:
                self._transform_token.cancel()
                self._transform_token = None
            # A sync or transform that already fired still holds the API client
            await self.timers.drain()
            await self.collector.stop()
            # Pick up anything the collector stored on the way out
            await self.transformer.process_all()
            self._started = False
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()
        await self.api.aclose()
        logger.info("Pipeline closed")

    def _on_bronze_inserted(self, event: BronzeInserted) -> None:
        """Coalesce bursts of inserts into one transform pass on the next timer turn."""
        if self._transform_token is not None and not self._transform_token.cancelled:
            return
        self._transform_token = self.timers.schedule_at(self.clock.now_utc(), self._run_transform)

    async def _run_transform(self) -> None:
        self._transform_token = None
        await self.transformer.process_all()
