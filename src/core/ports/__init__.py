# telemetry-medallion — Ports (Protocol Interfaces)
# Abstract interfaces for adapters; no implementations here

from src.core.ports.db import (
    CanonicalRepoPort,
    DailyAnalyticsRepoPort,
    MaintenancePort,
    PreferenceRepoPort,
    RawEventRepoPort,
    RecordFilter,
    RollupDelta,
    RollupDimension,
    RollupRepoPort,
    UnitOfWorkPort,
)
from src.core.ports.remote import ApiResponse, RemoteApiPort
from src.core.ports.state import StateStorePort
from src.core.ports.time import TimePort
from src.core.ports.timers import CancelToken, TimerPort, TimerTask

__all__ = [
    # Repositories
    "CanonicalRepoPort",
    "DailyAnalyticsRepoPort",
    "MaintenancePort",
    "PreferenceRepoPort",
    "RawEventRepoPort",
    "RecordFilter",
    "RollupDelta",
    "RollupDimension",
    "RollupRepoPort",
    "UnitOfWorkPort",
    # Remote
    "ApiResponse",
    "RemoteApiPort",
    # State
    "StateStorePort",
    # Time
    "TimePort",
    "CancelToken",
    "TimerPort",
    "TimerTask",
]
