"""
SyncEngine component - Bidirectional sync of requests, analytics and configuration.
"""

from ._impl import (
    InMemoryPreferenceRepo,
    StageFailed,
    SyncEngine,
    analytics_from_remote,
    preference_from_remote,
    record_from_remote,
)
from .component import run_sync
from .models import (
    SYNC_CATEGORIES,
    WIRE_DATA_TYPES,
    SyncCategory,
    SyncConfig,
    SyncError,
    SyncOutput,
    SyncResults,
    SyncStatus,
)
from .ports import AuthenticatedApiPort, RemoteRecordStorePort

__all__ = [
    # Entry points
    "run_sync",
    # Services
    "SyncEngine",
    "InMemoryPreferenceRepo",
    "StageFailed",
    # Models
    "SYNC_CATEGORIES",
    "WIRE_DATA_TYPES",
    "SyncCategory",
    "SyncConfig",
    "SyncError",
    "SyncOutput",
    "SyncResults",
    "SyncStatus",
    # Ports
    "AuthenticatedApiPort",
    "RemoteRecordStorePort",
    # Helpers
    "analytics_from_remote",
    "preference_from_remote",
    "record_from_remote",
]
