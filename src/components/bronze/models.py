"""
Bronze component - Data models.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

# --- Validation Errors ---


@dataclass(frozen=True)
class BronzeValidationError:
    """Raw event rejected before storage."""

    code: str
    message: str
    field_name: str | None = None


# --- Input Models ---


@dataclass(frozen=True)
class AppendInput:
    """Input for appending one raw event."""

    category: str
    payload: dict[str, Any]
    captured_at: int | None = None


# --- Output Models ---


@dataclass(frozen=True)
class AppendOutput:
    """Output from an append."""

    raw_id: str | None
    seq: int | None = None
    errors: list[BronzeValidationError] = field(default_factory=list)
    success: bool = True


@dataclass(frozen=True)
class CollectorStats:
    """Counters for the collector queue."""

    accepted: int
    stored: int
    dropped: int
    failed: int
    pending: int
