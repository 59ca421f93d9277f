"""
Domain entities for the telemetry medallion pipeline.

- Bronze: RawEvent (append-only, immutable)
- Silver: CanonicalRecord (validated/enriched request), SkippedRecord
- Gold: RollupStat (domain/resource/hour counters), DailyAnalytics
- Config: Preference (synced configuration entries)

All timestamps are integer epoch milliseconds (UTC).
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

__all__ = [
    "RAW_CATEGORIES",
    "RawCategory",
    "RawEvent",
    "CanonicalRecord",
    "SkippedRecord",
    "RollupStat",
    "DailyAnalytics",
    "Preference",
    "CANONICAL_CONTENT_FIELDS",
]

RawCategory = Literal["request", "web-vital", "security", "third-party"]
RAW_CATEGORIES: frozenset[str] = frozenset({"request", "web-vital", "security", "third-party"})

StatusClass = Literal["1xx", "2xx", "3xx", "4xx", "5xx", "failed"]


# --- Bronze ---


class RawEvent(BaseModel):
    """Captured event as written by the collector."""

    model_config = ConfigDict(frozen=True)

    seq: int
    id: str
    category: RawCategory
    payload: dict[str, Any]
    captured_at: int


# --- Silver ---


class CanonicalRecord(BaseModel):
    """Validated and enriched request record, keyed by id."""

    model_config = ConfigDict(frozen=True)

    id: str
    url: str
    method: str = "GET"
    domain: str
    page_url: str | None = None
    type: str = "other"
    status: int = 0
    status_class: StatusClass = "failed"
    duration_ms: int = 0
    size_bytes: int = 0
    from_cache: bool = False
    is_secure: bool = False
    is_third_party: bool = False
    has_error: bool = False
    performance_score: int = 0
    quality_score: int = 0
    timestamp: int
    raw_seq: int | None = None
    created_at: int
    updated_at: int

    def content(self) -> dict[str, Any]:
        """Fields derived from the source event (excludes bookkeeping timestamps)."""
        return self.model_dump(include=set(CANONICAL_CONTENT_FIELDS))


CANONICAL_CONTENT_FIELDS: tuple[str, ...] = (
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
)


class SkippedRecord(BaseModel):
    """RawEvent that failed validation."""

    raw_seq: int
    raw_id: str
    reason: str
    detail: str | None = None
    recorded_at: int


# --- Gold ---


class RollupStat(BaseModel):
    """Additive counters for one rollup bucket (domain, resource type or hour)."""

    key: str | int
    count: int = 0
    total_bytes: int = 0
    total_duration_ms: int = 0
    error_count: int = 0
    updated_at: int = 0

    @property
    def avg_duration_ms(self) -> float:
        return self.total_duration_ms / self.count if self.count else 0.0


class DailyAnalytics(BaseModel):
    """One row per calendar date, computed by the nightly rollup."""

    date: str
    total_requests: int = 0
    total_bytes: int = 0
    avg_response_time: float = 0.0
    median_response_time: float = 0.0
    p95_response_time: float = 0.0
    p99_response_time: float = 0.0
    error_rate: float = 0.0
    unique_domains: int = 0
    created_at: int
    updated_at: int


# --- Config ---


class Preference(BaseModel):
    key: str
    value: Any = None
    created_at: int
    updated_at: int = Field(default=0)
