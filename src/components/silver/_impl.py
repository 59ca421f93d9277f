"""
Transformer - Incremental validate-and-enrich layer (bronze -> silver).

Key behaviors:
- Reads raw events after a cursor (store sequence number), in order
- Only request events produce canonical records; others are counted ignored
- A stored record derived from a newer raw event is never overwritten
- Re-processing the same raw event is a no-op (no write, updated_at kept)
- Validation failures become SkippedRecords and never stop the batch
- Writes go through the record store (silver row plus gold deltas in one
  unit) when one is configured; storage errors propagate and the cursor
  stays on the last fully handled event, so the failed event is retried
- Every write publishes SilverWritten(record, previous)
"""

from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import replace
from typing import Any
from urllib.parse import urlparse

from src.core.entities import CanonicalRecord, RawEvent, SkippedRecord
from src.core.events import EventChannel, SilverWritten
from src.core.ports.db import RecordFilter
from src.core.ports.state import SILVER_CURSOR_KEY

from .models import SkipReason, TransformConfig, TransformOutput
from .ports import CanonicalRepoPort, RawEventRepoPort, RecordStorePort, StateStorePort, TimePort

logger = logging.getLogger(__name__)

SECURE_SCHEMES = frozenset({"https", "wss"})
ALLOWED_SCHEMES = frozenset({"http", "https", "ws", "wss", "data", "blob", "file", "chrome-extension"})

SLOW_REQUEST_MS = 5000
LARGE_RESPONSE_BYTES = 1_000_000


class RecordValidationError(ValueError):
    """Raw request payload cannot be normalized."""

    def __init__(self, reason: SkipReason, detail: str) -> None:
        super().__init__(detail)
        self.reason = reason
        self.detail = detail


# --- Normalization helpers ---


def _as_int(payload: dict[str, Any], *keys: str, default: int = 0) -> int:
    """First present key as int; numeric strings accepted."""
    for key in keys:
        if key not in payload or payload[key] is None:
            continue
        value = payload[key]
        if isinstance(value, bool):
            raise RecordValidationError("invalid_field", f"{key} must be numeric")
        if isinstance(value, int):
            return value
        if isinstance(value, float):
            if not math.isfinite(value):
                raise RecordValidationError("invalid_field", f"{key} must be finite")
            return int(round(value))
        if isinstance(value, str):
            try:
                number = float(value.strip())
            except ValueError:
                raise RecordValidationError("invalid_field", f"{key} must be numeric") from None
            if not math.isfinite(number):
                raise RecordValidationError("invalid_field", f"{key} must be finite")
            return int(round(number))
        raise RecordValidationError("invalid_field", f"{key} must be numeric")
    return default


def _clamp(value: int, upper: int) -> int:
    return max(0, min(value, upper))


def _first_str(payload: dict[str, Any], *keys: str) -> str | None:
    for key in keys:
        value = payload.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def status_class(status: int) -> str:
    if 100 <= status < 600:
        return f"{status // 100}xx"
    return "failed"


def registrable_part(hostname: str) -> str:
    """Last two labels of a hostname (a.b.example.com -> example.com)."""
    labels = [label for label in hostname.lower().split(".") if label]
    return ".".join(labels[-2:])


def is_third_party(hostname: str, page_host: str | None, markers: tuple[str, ...]) -> bool:
    host = hostname.lower()
    if any(marker in host for marker in markers):
        return True
    if page_host:
        return registrable_part(host) != registrable_part(page_host)
    return False


def performance_score(duration_ms: int) -> int:
    """0-100, linear from 0 ms (100) to SLOW_REQUEST_MS (0)."""
    if not duration_ms:
        return 0
    score = max(0.0, min(100.0, 100 - duration_ms / SLOW_REQUEST_MS * 100))
    return int(math.floor(score + 0.5))


def quality_score(has_payload_error: bool, status: int, from_cache: bool, size_bytes: int) -> int:
    score = 100
    if has_payload_error:
        score -= 50
    if status >= 400:
        score -= 30
    if not from_cache and size_bytes > LARGE_RESPONSE_BYTES:
        score -= 10
    return max(0, score)


def normalize_request(
    event: RawEvent,
    config: TransformConfig,
    created_at: int,
    updated_at: int,
) -> CanonicalRecord:
    """
    Derive a canonical record from a request raw event.

    Raises:
        RecordValidationError: missing url, malformed url, or non-numeric field
    """
    payload = event.payload
    url = _first_str(payload, "url")
    if url is None:
        raise RecordValidationError("missing_field", "url is required")
    url = url[: config.max_url_length]

    try:
        parsed = urlparse(url)
        hostname = parsed.hostname
    except ValueError as e:
        raise RecordValidationError("malformed_url", f"cannot parse url: {e}") from None
    scheme = parsed.scheme.lower()
    if scheme not in ALLOWED_SCHEMES or (scheme not in ("data", "blob") and not hostname):
        raise RecordValidationError("malformed_url", f"unsupported url: {url[:200]}")

    page_url = _first_str(payload, "page_url", "pageUrl", "initiator")
    page_host: str | None = None
    if page_url is not None:
        page_url = page_url[: config.max_url_length]
        try:
            page_host = urlparse(page_url).hostname
        except ValueError:
            page_host = None

    status = _as_int(payload, "status", "status_code", "statusCode")
    duration_ms = _clamp(_as_int(payload, "duration_ms", "duration"), config.max_duration_ms)
    size_bytes = _clamp(_as_int(payload, "size_bytes", "size"), config.max_size_bytes)
    timestamp = _as_int(payload, "timestamp", default=event.captured_at)

    method = _first_str(payload, "method")
    resource_type = _first_str(payload, "type", "resource_type")
    from_cache = bool(payload.get("from_cache", payload.get("fromCache", False)))
    payload_error = bool(payload.get("error"))
    domain = (hostname or scheme).lower()

    return CanonicalRecord(
        id=event.id,
        url=url,
        method=method.upper() if method else "GET",
        domain=domain,
        page_url=page_url,
        type=resource_type.lower() if resource_type else "other",
        status=status,
        status_class=status_class(status),  # type: ignore[arg-type]
        duration_ms=duration_ms,
        size_bytes=size_bytes,
        from_cache=from_cache,
        is_secure=scheme in SECURE_SCHEMES,
        is_third_party=is_third_party(domain, page_host, config.third_party_markers),
        has_error=payload_error or status >= 400,
        performance_score=performance_score(duration_ms),
        quality_score=quality_score(payload_error, status, from_cache, size_bytes),
        timestamp=timestamp,
        raw_seq=event.seq,
        created_at=created_at,
        updated_at=updated_at,
    )


# --- Transformer ---


class Transformer:
    """Bronze to silver processor driven by the raw event sequence cursor."""

    def __init__(
        self,
        raw_repo: RawEventRepoPort,
        canonical_repo: CanonicalRepoPort,
        state: StateStorePort,
        clock: TimePort,
        config: TransformConfig | None = None,
        written: EventChannel[SilverWritten] | None = None,
        store: RecordStorePort | None = None,
    ) -> None:
        self._raw = raw_repo
        self._repo = canonical_repo
        self._state = state
        self._clock = clock
        self._config = config or TransformConfig()
        self._written = written
        self._store = store
        self._lock = asyncio.Lock()

    @property
    def cursor(self) -> int:
        return int(self._state.get(SILVER_CURSOR_KEY, 0) or 0)

    async def process(self, since_cursor: int | None = None, limit: int | None = None) -> TransformOutput:
        """
        Process one batch of raw events.

        Args:
            since_cursor: Replay from this sequence number (persisted cursor untouched).
                When None, continues from the persisted cursor and advances it.
            limit: Batch size (defaults to config.batch_size)
        """
        async with self._lock:
            return await self._process_batch(since_cursor, limit or self._config.batch_size)

    async def process_all(self, limit: int | None = None) -> TransformOutput:
        """Process batches from the persisted cursor until the raw store is drained."""
        batch_size = limit or self._config.batch_size
        total = TransformOutput(cursor=self.cursor)
        async with self._lock:
            while True:
                out = await self._process_batch(None, batch_size)
                total = total.merge(out)
                if out.total < batch_size:
                    return total

    async def _process_batch(self, since_cursor: int | None, limit: int) -> TransformOutput:
        persist = since_cursor is None
        start = self.cursor if since_cursor is None else since_cursor
        events = self._raw.list_since(start, limit)

        out = TransformOutput(cursor=start)
        try:
            for event in events:
                out = await self._apply(event, out)
                out = replace(out, cursor=event.seq)
        finally:
            if persist and out.cursor != start:
                self._state.set_many({SILVER_CURSOR_KEY: out.cursor})

        if events:
            logger.info(
                "Silver batch: %d written, %d unchanged, %d superseded, %d ignored, %d skipped (cursor=%d)",
                out.processed,
                out.unchanged,
                out.superseded,
                out.ignored,
                len(out.skipped),
                out.cursor,
            )
        return out

    async def _apply(self, event: RawEvent, out: TransformOutput) -> TransformOutput:
        if event.category != "request":
            return replace(out, ignored=out.ignored + 1)

        now = self._clock.now_ms()
        existing = self._repo.get(event.id)
        if existing is not None and existing.raw_seq is not None and existing.raw_seq > event.seq:
            return replace(out, superseded=out.superseded + 1)

        try:
            record = normalize_request(
                event,
                self._config,
                created_at=existing.created_at if existing else now,
                updated_at=now,
            )
        except RecordValidationError as e:
            skipped = SkippedRecord(
                raw_seq=event.seq,
                raw_id=event.id,
                reason=e.reason,
                detail=e.detail,
                recorded_at=now,
            )
            self._repo.record_skipped(skipped)
            logger.warning("Skipping raw event %s (seq=%d): %s - %s", event.id, event.seq, e.reason, e.detail)
            return replace(out, skipped=[*out.skipped, skipped])

        if existing is not None and existing.content() == record.content():
            return replace(out, unchanged=out.unchanged + 1)

        if self._store is not None:
            self._store.store_written(record, existing)
        else:
            self._repo.upsert(record)
        if self._written is not None:
            await self._written.publish(SilverWritten(record=record, previous=existing))
        return replace(out, processed=out.processed + 1)


class InMemoryCanonicalRepo:
    """In-memory canonical record store for testing."""

    def __init__(self) -> None:
        self.records: dict[str, CanonicalRecord] = {}
        self.skipped: dict[int, SkippedRecord] = {}
        self.upserts = 0

    def get(self, record_id: str) -> CanonicalRecord | None:
        return self.records.get(record_id)

    def upsert(self, record: CanonicalRecord) -> None:
        existing = self.records.get(record.id)
        if existing is not None:
            record = record.model_copy(update={"created_at": existing.created_at})
        self.records[record.id] = record
        self.upserts += 1

    def insert_if_absent(self, record: CanonicalRecord) -> bool:
        if record.id in self.records:
            return False
        self.records[record.id] = record
        return True

    def list_created_since(self, after_ms: int, limit: int) -> list[CanonicalRecord]:
        rows = sorted(
            (r for r in self.records.values() if r.created_at > after_ms),
            key=lambda r: (r.created_at, r.id),
        )
        return rows[:limit]

    def list_in_range(self, start_ms: int, end_ms: int) -> list[CanonicalRecord]:
        rows = [r for r in self.records.values() if start_ms <= r.timestamp < end_ms]
        return sorted(rows, key=lambda r: r.timestamp)

    def query(self, flt: RecordFilter) -> list[CanonicalRecord]:
        rows = [
            r
            for r in self.records.values()
            if (flt.domain is None or r.domain == flt.domain)
            and (flt.page_url is None or r.page_url == flt.page_url)
            and (flt.type is None or r.type == flt.type)
            and (flt.start_ms is None or r.timestamp >= flt.start_ms)
            and (flt.end_ms is None or r.timestamp < flt.end_ms)
        ]
        rows.sort(key=lambda r: r.timestamp, reverse=True)
        return rows[flt.offset : flt.offset + flt.limit]

    def record_skipped(self, skipped: SkippedRecord) -> None:
        self.skipped[skipped.raw_seq] = skipped

    def list_skipped(self, limit: int = 100) -> list[SkippedRecord]:
        rows = sorted(self.skipped.values(), key=lambda s: (s.recorded_at, s.raw_seq), reverse=True)
        return rows[:limit]

    def trim_skipped(self, before_ms: int) -> int:
        stale = [seq for seq, s in self.skipped.items() if s.recorded_at < before_ms]
        for seq in stale:
            del self.skipped[seq]
        return len(stale)
