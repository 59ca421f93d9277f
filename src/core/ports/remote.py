"""
Remote backend port.

Transport-level interface to the sync backend. Implementations never raise
for HTTP or network failures; they return Err with kind NETWORK_ERROR,
TIMEOUT or HTTP_ERROR (status set). Response envelopes {"data": ...} are
unwrapped before they reach callers.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

from src.core.result import Result

# --- Endpoints ---

LOGIN_PATH = "/auth/login"
REFRESH_PATH = "/auth/refresh"
LOGOUT_PATH = "/auth/logout"
VERIFY_PATH = "/auth/verify"
UPLOAD_PATH = "/sync/upload"
DOWNLOAD_PATH = "/sync/download"
HEALTH_PATH = "/health"


def team_members_path(team_id: str) -> str:
    return f"/teams/{team_id}/members"


def team_share_path(team_id: str) -> str:
    return f"/teams/{team_id}/share"


@dataclass(frozen=True)
class ApiResponse:
    """Successful (2xx) response with the unwrapped body."""

    status: int
    data: Any = None


class RemoteApiPort(Protocol):
    """HTTP transport to the sync backend."""

    async def request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: dict[str, Any] | None = None,
        token: str | None = None,
        timeout: float | None = None,
    ) -> Result[ApiResponse]:
        """Send one request; token adds an Authorization: Bearer header."""
        ...

    async def check_health(self) -> bool:
        """GET /health with the short health timeout."""
        ...

    async def aclose(self) -> None:
        ...
