"""
SyncEngine - Bidirectional sync with the remote backend.

Key behaviors:
- At most one sync_all() at a time; a second call returns SYNC_IN_PROGRESS
  without touching the network
- Categories run sequentially: requests, analytics, configuration; within a
  category the upload finishes before the download starts
- A failing stage (Err or exception) is recorded in errors[] and never
  aborts the remaining stages or categories
- Merge policy: requests and preferences keep the local row when one exists;
  analytics rows from the remote replace local rows
- After all categories the cursor moves to max(previous, now) and is persisted;
  a full upload batch holds it at the batch's last change stamp (one below when
  the next row shares that stamp) so the rows left behind go out next sync
- A downloaded item that fails to store is logged and counted; the stage then
  reports STORAGE_ERROR with the number of items that did merge
- is_syncing is cleared in a finally block
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any
from urllib.parse import urlparse

from pydantic import ValidationError

from src.core.entities import CanonicalRecord, DailyAnalytics, Preference
from src.core.events import BronzeInserted, EventChannel, SyncCompleted
from src.core.ports.remote import DOWNLOAD_PATH, UPLOAD_PATH
from src.core.ports.state import LAST_SYNC_KEY
from src.core.result import Err, ErrorKind, Ok, Result

from .models import (
    SYNC_CATEGORIES,
    WIRE_DATA_TYPES,
    SyncCategory,
    SyncConfig,
    SyncError,
    SyncResults,
    SyncStage,
    SyncStatus,
)
from .ports import (
    AuthenticatedApiPort,
    CanonicalRepoPort,
    DailyAnalyticsRepoPort,
    PreferenceRepoPort,
    RemoteRecordStorePort,
    StateStorePort,
    TimePort,
)

logger = logging.getLogger(__name__)


class StageFailed(Exception):
    """A sync stage returned Err (count is what the stage still got done)."""

    def __init__(self, err: Err, count: int = 0) -> None:
        super().__init__(err.message)
        self.err = err
        self.count = count


# --- Wire conversion ---


def _items(data: Any) -> list[dict[str, Any]]:
    """Download payload as a list of objects ({"items": [...]} or a bare list)."""
    if isinstance(data, dict):
        data = data.get("items", [])
    if not isinstance(data, list):
        return []
    return [item for item in data if isinstance(item, dict)]


def record_from_remote(item: dict[str, Any], now_ms: int) -> CanonicalRecord:
    """
    Build a canonical record from a downloaded item.

    Raises:
        ValidationError: item lacks required fields or has wrong types
    """
    data = {k: v for k, v in item.items() if k in CanonicalRecord.model_fields}
    if not data.get("domain") and isinstance(data.get("url"), str):
        data["domain"] = (urlparse(data["url"]).hostname or "").lower()
    data.update(raw_seq=None, created_at=now_ms, updated_at=now_ms)
    return CanonicalRecord.model_validate(data)


def analytics_from_remote(item: dict[str, Any], now_ms: int) -> DailyAnalytics:
    data = {k: v for k, v in item.items() if k in DailyAnalytics.model_fields}
    data.update(created_at=now_ms, updated_at=now_ms)
    return DailyAnalytics.model_validate(data)


def preference_from_remote(item: dict[str, Any], now_ms: int) -> Preference:
    return Preference.model_validate(
        {"key": item.get("key"), "value": item.get("value"), "created_at": now_ms, "updated_at": now_ms}
    )


# --- Engine ---


class SyncEngine:
    """Upload local changes and merge remote changes per category."""

    def __init__(
        self,
        session: AuthenticatedApiPort,
        canonical_repo: CanonicalRepoPort,
        daily_repo: DailyAnalyticsRepoPort,
        preference_repo: PreferenceRepoPort,
        state: StateStorePort,
        clock: TimePort,
        config: SyncConfig | None = None,
        record_store: RemoteRecordStorePort | None = None,
        completed: EventChannel[SyncCompleted] | None = None,
    ) -> None:
        self._session = session
        self._canonical = canonical_repo
        self._daily = daily_repo
        self._prefs = preference_repo
        self._state = state
        self._clock = clock
        self._config = config or SyncConfig()
        self._record_store = record_store
        self._completed = completed
        self._is_syncing = False
        self._queued: set[str] = set()

    @property
    def is_syncing(self) -> bool:
        return self._is_syncing

    @property
    def last_sync_timestamp(self) -> int:
        return int(self._state.get(LAST_SYNC_KEY, 0) or 0)

    def queue_sync(self, category: SyncCategory) -> None:
        """Mark a category as having local changes."""
        if category not in SYNC_CATEGORIES:
            raise ValueError(f"Unknown sync category '{category}'")
        self._queued.add(category)

    def handle_bronze_inserted(self, event: BronzeInserted) -> None:
        """BronzeInserted subscriber."""
        if event.category == "request":
            self.queue_sync("requests")

    def get_status(self) -> SyncStatus:
        return SyncStatus(
            is_syncing=self._is_syncing,
            last_sync_timestamp=self.last_sync_timestamp,
            queued=sorted(self._queued),
            is_authenticated=self._session.is_authenticated,
            auto_sync_enabled=self._config.enabled,
        )

    async def sync_all(self) -> Result[SyncResults]:
        if self._is_syncing:
            return Err(ErrorKind.SYNC_IN_PROGRESS, "Sync in progress")
        if not self._session.is_authenticated:
            return Err(ErrorKind.NOT_AUTHENTICATED, "Not authenticated")

        self._is_syncing = True
        try:
            cursor = self.last_sync_timestamp
            logger.info("Sync started (cursor=%d)", cursor)
            uploaded: dict[str, int] = {}
            downloaded: dict[str, int] = {}
            errors: list[SyncError] = []
            holds: list[int] = []

            for category in SYNC_CATEGORIES:
                uploaded[category] = await self._run_stage(category, "upload", cursor, errors, holds)
                downloaded[category] = await self._run_stage(category, "download", cursor, errors, holds)

            new_cursor = max(cursor, min([self._clock.now_ms(), *holds]))
            self._state.set_many({LAST_SYNC_KEY: new_cursor})
            self._queued.clear()

            results = SyncResults(
                uploaded=uploaded, downloaded=downloaded, errors=errors, timestamp=new_cursor
            )
            logger.info(
                "Sync completed: uploaded=%s downloaded=%s errors=%d",
                uploaded,
                downloaded,
                len(errors),
            )
            if self._completed is not None:
                await self._completed.publish(
                    SyncCompleted(
                        timestamp=new_cursor,
                        uploaded=dict(uploaded),
                        downloaded=dict(downloaded),
                        error_count=len(errors),
                    )
                )
            return Ok(results)
        finally:
            self._is_syncing = False

    async def _run_stage(
        self,
        category: SyncCategory,
        stage: SyncStage,
        cursor: int,
        errors: list[SyncError],
        holds: list[int],
    ) -> int:
        try:
            if stage == "upload":
                return await self._upload(category, cursor, holds)
            return await self._download(category, cursor)
        except StageFailed as e:
            logger.warning("Sync %s %s failed: %s", category, stage, e.err.message)
            errors.append(SyncError(category, stage, e.err.message, e.err.kind))
            return e.count
        except Exception as e:
            logger.exception("Sync %s %s raised", category, stage)
            errors.append(SyncError(category, stage, str(e) or type(e).__name__, None))
        return 0

    # --- Upload ---

    def _batch_limit(self, category: SyncCategory) -> int:
        if category == "analytics":
            return self._config.analytics_batch_size
        return self._config.batch_size

    def _local_changes(self, category: SyncCategory, cursor: int) -> list[tuple[int, dict[str, Any]]]:
        """Rows changed after cursor as (change stamp, wire item), oldest first, one past the batch."""
        limit = self._batch_limit(category) + 1
        if category == "requests":
            records = self._canonical.list_created_since(cursor, limit)
            return [(r.created_at, r.model_dump()) for r in records]
        if category == "analytics":
            rows = self._daily.list_created_since(cursor, limit)
            return [(r.created_at, r.model_dump()) for r in rows]
        prefs = self._prefs.list_updated_since(cursor, limit)
        return [(p.updated_at, p.model_dump()) for p in prefs]

    async def _upload(self, category: SyncCategory, cursor: int, holds: list[int]) -> int:
        changes = self._local_changes(category, cursor)
        if not changes:
            return 0
        batch = changes[: self._batch_limit(category)]
        pending = changes[len(batch) :]
        items = [item for _, item in batch]

        result = await self._session.send(
            "POST",
            UPLOAD_PATH,
            json={
                "dataType": WIRE_DATA_TYPES[category],
                "teamId": self._session.team_id,
                "data": items,
                "merge": True,
                "lastSyncTimestamp": cursor,
                "timestamp": self._clock.now_ms(),
            },
        )
        if isinstance(result, Err):
            raise StageFailed(result)

        if pending:
            last = batch[-1][0]
            if pending[0][0] > last:
                hold = last
            elif batch[0][0] < last:
                # Rows after the batch share its last stamp; resend that stamp next time
                hold = last - 1
            else:
                # The whole batch is one stamp, so the cursor can only move past it
                hold = last
                logger.warning(
                    "Sync %s: more than %d rows share stamp %d; skipping the rest", category, len(batch), last
                )
            holds.append(hold)
            logger.info("Sync %s upload batch full; cursor held at %d", category, hold)
        return len(items)

    # --- Download ---

    async def _download(self, category: SyncCategory, cursor: int) -> int:
        result = await self._session.send(
            "GET",
            DOWNLOAD_PATH,
            params={
                "dataType": WIRE_DATA_TYPES[category],
                "teamId": self._session.team_id,
                "limit": self._config.download_limit,
                "since": cursor or None,
            },
        )
        if isinstance(result, Err):
            raise StageFailed(result)

        items = _items(result.value.data)
        if category == "requests":
            return self._merge(category, items, record_from_remote, self._store_remote_record)
        if category == "analytics":
            return self._merge(category, items, analytics_from_remote, self._replace_analytics)
        return self._merge(category, items, preference_from_remote, self._prefs.insert_if_absent)

    def _merge(
        self,
        category: SyncCategory,
        items: list[dict[str, Any]],
        convert: Callable[[dict[str, Any], int], Any],
        store: Callable[[Any], bool],
    ) -> int:
        merged = 0
        failed = 0
        now = self._clock.now_ms()
        for item in items:
            label = item.get("id") or item.get("date") or item.get("key")
            try:
                row = convert(item, now)
            except ValidationError as e:
                logger.warning("Ignoring invalid remote %s item %s: %d errors", category, label, e.error_count())
                continue
            try:
                stored = store(row)
            except Exception:
                logger.exception("Failed to store downloaded %s item %s", category, label)
                failed += 1
                continue
            if stored:
                merged += 1

        if failed:
            err = Err(ErrorKind.STORAGE_ERROR, f"{failed} of {len(items)} downloaded {category} items not stored")
            raise StageFailed(err, merged)
        return merged

    def _store_remote_record(self, record: CanonicalRecord) -> bool:
        if self._record_store is not None:
            return self._record_store.store_remote(record)
        return self._canonical.insert_if_absent(record)

    def _replace_analytics(self, row: DailyAnalytics) -> bool:
        self._daily.replace(row)
        return True


class InMemoryPreferenceRepo:
    """In-memory preference store for testing."""

    def __init__(self) -> None:
        self.prefs: dict[str, Preference] = {}

    def get(self, key: str) -> Preference | None:
        return self.prefs.get(key)

    def set(self, key: str, value: Any, now_ms: int) -> Preference:
        existing = self.prefs.get(key)
        pref = Preference(
            key=key,
            value=value,
            created_at=existing.created_at if existing else now_ms,
            updated_at=now_ms,
        )
        self.prefs[key] = pref
        return pref

    def insert_if_absent(self, pref: Preference) -> bool:
        if pref.key in self.prefs:
            return False
        self.prefs[pref.key] = pref
        return True

    def list_updated_since(self, after_ms: int, limit: int) -> list[Preference]:
        rows = sorted(
            (p for p in self.prefs.values() if p.updated_at > after_ms),
            key=lambda p: (p.updated_at, p.key),
        )
        return rows[:limit]

    def list_all(self) -> list[Preference]:
        return sorted(self.prefs.values(), key=lambda p: p.key)
