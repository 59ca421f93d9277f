"""
SyncEngine component - Data models.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

from src.core.result import ErrorKind

SyncCategory = Literal["requests", "analytics", "configuration"]

SYNC_CATEGORIES: tuple[SyncCategory, ...] = ("requests", "analytics", "configuration")

# dataType sent on the wire for each category
WIRE_DATA_TYPES: dict[str, str] = {
    "requests": "requests",
    "analytics": "analytics",
    "configuration": "preferences",
}

SyncStage = Literal["upload", "download"]


@dataclass(frozen=True)
class SyncConfig:
    enabled: bool = True
    batch_size: int = 1000
    analytics_batch_size: int = 100
    download_limit: int = 1000


@dataclass(frozen=True)
class SyncError:
    """One failed stage of one category."""

    category: SyncCategory
    stage: SyncStage
    message: str
    kind: ErrorKind | None = None


@dataclass(frozen=True)
class SyncResults:
    """Per-category counts and errors of one sync_all() run."""

    uploaded: dict[str, int] = field(default_factory=dict)
    downloaded: dict[str, int] = field(default_factory=dict)
    errors: list[SyncError] = field(default_factory=list)
    timestamp: int = 0


@dataclass(frozen=True)
class SyncStatus:
    is_syncing: bool
    last_sync_timestamp: int
    queued: list[str]
    is_authenticated: bool
    auto_sync_enabled: bool


@dataclass
class SyncOutput:
    results: SyncResults | None = None
    success: bool = False
    error: str | None = None
    error_kind: ErrorKind | None = None
