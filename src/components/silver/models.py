"""
Silver component - Data models.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

from src.core.entities import SkippedRecord

SkipReason = Literal["missing_field", "malformed_url", "invalid_field"]

DEFAULT_THIRD_PARTY_MARKERS: tuple[str, ...] = ("google", "facebook", "twitter", "analytics", "cdn")


# --- Configuration ---


@dataclass(frozen=True)
class TransformConfig:
    """Normalization limits and batch size."""

    batch_size: int = 500
    max_url_length: int = 2048
    max_duration_ms: int = 600_000
    max_size_bytes: int = 1024 * 1024 * 1024
    third_party_markers: tuple[str, ...] = DEFAULT_THIRD_PARTY_MARKERS


# --- Input Models ---


@dataclass(frozen=True)
class TransformInput:
    """Input for one transform pass."""

    since_cursor: int | None = None
    limit: int | None = None
    drain: bool = False


# --- Output Models ---


@dataclass(frozen=True)
class TransformOutput:
    """Counters for one transform pass."""

    processed: int = 0
    unchanged: int = 0
    superseded: int = 0
    ignored: int = 0
    skipped: list[SkippedRecord] = field(default_factory=list)
    cursor: int = 0
    success: bool = True

    @property
    def total(self) -> int:
        return self.processed + self.unchanged + self.superseded + self.ignored + len(self.skipped)

    def merge(self, other: TransformOutput) -> TransformOutput:
        return TransformOutput(
            processed=self.processed + other.processed,
            unchanged=self.unchanged + other.unchanged,
            superseded=self.superseded + other.superseded,
            ignored=self.ignored + other.ignored,
            skipped=[*self.skipped, *other.skipped],
            cursor=max(self.cursor, other.cursor),
        )
