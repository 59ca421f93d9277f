"""
SyncEngine component - Port interfaces.
"""

from __future__ import annotations

from typing import Any, Protocol

from src.core.entities import CanonicalRecord
from src.core.ports.db import CanonicalRepoPort, DailyAnalyticsRepoPort, PreferenceRepoPort
from src.core.ports.remote import ApiResponse
from src.core.ports.state import StateStorePort
from src.core.ports.time import TimePort
from src.core.result import Result


class AuthenticatedApiPort(Protocol):
    """Authenticated transport (AuthSession)."""

    @property
    def is_authenticated(self) -> bool:
        ...

    @property
    def team_id(self) -> str | None:
        ...

    async def send(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> Result[ApiResponse]:
        ...


class RemoteRecordStorePort(Protocol):
    """Stores downloaded records together with their rollups (Aggregator)."""

    def store_remote(self, record: CanonicalRecord) -> bool:
        """Insert unless the id exists locally; False when the local row was kept."""
        ...


__all__ = [
    "AuthenticatedApiPort",
    "CanonicalRepoPort",
    "DailyAnalyticsRepoPort",
    "PreferenceRepoPort",
    "RemoteRecordStorePort",
    "StateStorePort",
    "TimePort",
]
