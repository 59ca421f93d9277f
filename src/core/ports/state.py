"""
Key/value state port.

Durable storage for the small set of scalar values that live outside the
main tabular store: the auth token pair, user/team ids, the sync cursor and
the transformer cursor.

Well-known keys: authToken, refreshToken, userId, teamId,
lastSyncTimestamp, silverCursor.
"""

from __future__ import annotations

from typing import Any, Protocol

AUTH_TOKEN_KEY = "authToken"
REFRESH_TOKEN_KEY = "refreshToken"
USER_ID_KEY = "userId"
TEAM_ID_KEY = "teamId"
LAST_SYNC_KEY = "lastSyncTimestamp"
SILVER_CURSOR_KEY = "silverCursor"

AUTH_KEYS: tuple[str, ...] = (AUTH_TOKEN_KEY, REFRESH_TOKEN_KEY, USER_ID_KEY, TEAM_ID_KEY)


class StateStorePort(Protocol):
    """Key/value store interface."""

    def get(self, key: str, default: Any = None) -> Any:
        """Get a value, or default when missing."""
        ...

    def set_many(self, values: dict[str, Any]) -> None:
        """Set several values in one durable write."""
        ...

    def remove(self, keys: tuple[str, ...] | list[str]) -> None:
        """Remove keys (missing keys are ignored)."""
        ...
