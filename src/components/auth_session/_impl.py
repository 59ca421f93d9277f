"""
AuthSession - Token lifecycle for the sync backend.

States: ANONYMOUS -> AUTHENTICATING -> AUTHENTICATED -> (REFRESHING) ->
AUTHENTICATED | EXPIRED.

Key behaviors:
- Token pair and user/team ids are persisted in the key/value store
- send() attaches the bearer token; a 401 triggers exactly one refresh and
  exactly one retry; a second 401 returns TOKEN_EXPIRED
- Refresh failure clears all state and publishes SessionExpired
- logout() always clears local state, whatever the remote call does
- Concurrent 401s share one refresh (the lock plus stale-token check)
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from src.core.events import EventChannel, LoggedIn, SessionExpired
from src.core.ports.remote import (
    LOGIN_PATH,
    LOGOUT_PATH,
    REFRESH_PATH,
    VERIFY_PATH,
    team_members_path,
    team_share_path,
)
from src.core.ports.state import (
    AUTH_KEYS,
    AUTH_TOKEN_KEY,
    REFRESH_TOKEN_KEY,
    TEAM_ID_KEY,
    USER_ID_KEY,
)
from src.core.result import Err, ErrorKind, Ok, Result

from .models import LoginResult, SessionSnapshot, SessionState
from .ports import ApiResponse, RemoteApiPort, StateStorePort

logger = logging.getLogger(__name__)

CREDENTIAL_STATUSES = frozenset({400, 401, 403})


def _optional_str(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value)


class AuthSession:
    """Authenticated session against the remote backend."""

    def __init__(
        self,
        api: RemoteApiPort,
        store: StateStorePort,
        logged_in: EventChannel[LoggedIn] | None = None,
        session_expired: EventChannel[SessionExpired] | None = None,
    ) -> None:
        self._api = api
        self._store = store
        self._logged_in = logged_in
        self._session_expired = session_expired
        self._state = SessionState.ANONYMOUS
        self._access_token: str | None = None
        self._refresh_token: str | None = None
        self._user_id: str | None = None
        self._team_id: str | None = None
        self._refresh_lock = asyncio.Lock()

    # --- Properties ---

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_authenticated(self) -> bool:
        return self._access_token is not None and self._state in (
            SessionState.AUTHENTICATED,
            SessionState.REFRESHING,
        )

    @property
    def user_id(self) -> str | None:
        return self._user_id

    @property
    def team_id(self) -> str | None:
        return self._team_id

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            state=self._state,
            is_authenticated=self.is_authenticated,
            user_id=self._user_id,
            team_id=self._team_id,
            has_refresh_token=self._refresh_token is not None,
        )

    # --- Lifecycle ---

    async def initialize(self) -> bool:
        """
        Restore a persisted session and verify it with the backend.

        A rejected token (401/403) clears the session. A network failure keeps
        the persisted session so the pipeline can work offline.

        Returns:
            True when a session is active afterwards
        """
        token = self._store.get(AUTH_TOKEN_KEY)
        if not token:
            return False

        self._access_token = token
        self._refresh_token = self._store.get(REFRESH_TOKEN_KEY)
        self._user_id = _optional_str(self._store.get(USER_ID_KEY))
        self._team_id = _optional_str(self._store.get(TEAM_ID_KEY))
        self._state = SessionState.AUTHENTICATED

        result = await self._api.request("GET", VERIFY_PATH, token=token)
        if isinstance(result, Err):
            if result.status in (401, 403):
                logger.warning("Persisted token rejected; clearing session")
                self._clear()
                return False
            logger.warning("Could not verify persisted token (%s); keeping session", result.message)
        else:
            logger.info("Session restored for user %s", self._user_id)
        return True

    async def login(self, email: str, password: str) -> Result[LoginResult]:
        self._state = SessionState.AUTHENTICATING
        result = await self._api.request("POST", LOGIN_PATH, json={"email": email, "password": password})

        if isinstance(result, Err):
            self._state = SessionState.ANONYMOUS
            if result.kind == ErrorKind.HTTP_ERROR and result.status in CREDENTIAL_STATUSES:
                logger.warning("Login rejected for %s", email)
                return Err(ErrorKind.INVALID_CREDENTIALS, result.message, status=result.status)
            logger.warning("Login failed for %s: %s", email, result.message)
            return Err(ErrorKind.NETWORK_ERROR, result.message, status=result.status)

        data = result.value.data if isinstance(result.value.data, dict) else {}
        token = data.get("token")
        if not isinstance(token, str) or not token:
            self._state = SessionState.ANONYMOUS
            return Err(ErrorKind.HTTP_ERROR, "Malformed login response", status=result.value.status)

        user = data.get("user") if isinstance(data.get("user"), dict) else {}
        self._access_token = token
        self._refresh_token = _optional_str(data.get("refreshToken"))
        self._user_id = _optional_str(user.get("id"))
        self._team_id = _optional_str(user.get("teamId"))
        self._state = SessionState.AUTHENTICATED
        self._persist()
        logger.info("Logged in as user %s (team %s)", self._user_id, self._team_id)

        if self._logged_in is not None:
            await self._logged_in.publish(LoggedIn(user_id=self._user_id, team_id=self._team_id))
        return Ok(LoginResult(user_id=self._user_id, team_id=self._team_id, user=user))

    async def refresh(self, stale_token: str | None = None) -> Result[None]:
        """
        Exchange the refresh token for a new token pair.

        Args:
            stale_token: The access token that was rejected. When the session
                already holds a different token, another caller refreshed first.
        """
        async with self._refresh_lock:
            if stale_token is not None and self.is_authenticated and self._access_token != stale_token:
                return Ok(None)

            if not self._refresh_token:
                await self._expire("No refresh token available")
                return Err(ErrorKind.REFRESH_FAILED, "No refresh token available")

            self._state = SessionState.REFRESHING
            result = await self._api.request(
                "POST", REFRESH_PATH, json={"refreshToken": self._refresh_token}
            )

            data = result.value.data if isinstance(result, Ok) else None
            token = data.get("token") if isinstance(data, dict) else None
            if not isinstance(token, str) or not token:
                reason = result.message if isinstance(result, Err) else "Malformed refresh response"
                await self._expire(f"Token refresh failed: {reason}")
                return Err(ErrorKind.REFRESH_FAILED, reason)

            self._access_token = token
            self._refresh_token = _optional_str(data.get("refreshToken")) or self._refresh_token
            self._state = SessionState.AUTHENTICATED
            self._persist()
            logger.info("Access token refreshed")
            return Ok(None)

    async def logout(self) -> Result[None]:
        token = self._access_token
        try:
            if token:
                result = await self._api.request("POST", LOGOUT_PATH, token=token)
                if isinstance(result, Err):
                    logger.warning("Remote logout failed (%s); clearing local session", result.message)
        finally:
            self._clear()
            logger.info("Logged out")
        return Ok(None)

    # --- Authenticated calls ---

    async def send(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> Result[ApiResponse]:
        if not self.is_authenticated or self._access_token is None:
            return Err(ErrorKind.NOT_AUTHENTICATED, "Not authenticated")

        token = self._access_token
        result = await self._api.request(method, path, json=json, params=params, token=token, timeout=timeout)
        if not (isinstance(result, Err) and result.status == 401):
            return result

        logger.info("401 from %s %s; refreshing token", method, path)
        refreshed = await self.refresh(stale_token=token)
        if isinstance(refreshed, Err):
            return Err(ErrorKind.TOKEN_EXPIRED, "Session expired", status=401)

        retry = await self._api.request(
            method, path, json=json, params=params, token=self._access_token, timeout=timeout
        )
        if isinstance(retry, Err) and retry.status == 401:
            logger.warning("Token rejected again after refresh [%s %s]", method, path)
            return Err(ErrorKind.TOKEN_EXPIRED, "Token rejected after refresh", status=401)
        return retry

    async def get_team_members(self) -> Result[list[dict[str, Any]]]:
        if not self._team_id:
            return Err(ErrorKind.VALIDATION, "No team associated with this session")
        result = await self.send("GET", team_members_path(self._team_id))
        if isinstance(result, Err):
            return result

        data = result.value.data
        if isinstance(data, dict):
            data = data.get("members", [])
        return Ok([m for m in data or [] if isinstance(m, dict)])

    async def share_with_team(
        self, data_type: str, data_id: str, permissions: list[str] | None = None
    ) -> Result[Any]:
        if not self._team_id:
            return Err(ErrorKind.VALIDATION, "No team associated with this session")
        result = await self.send(
            "POST",
            team_share_path(self._team_id),
            json={"dataType": data_type, "dataId": data_id, "permissions": permissions or []},
        )
        if isinstance(result, Err):
            return result
        return Ok(result.value.data)

    # --- Internal ---

    def _persist(self) -> None:
        self._store.set_many(
            {
                AUTH_TOKEN_KEY: self._access_token,
                REFRESH_TOKEN_KEY: self._refresh_token,
                USER_ID_KEY: self._user_id,
                TEAM_ID_KEY: self._team_id,
            }
        )

    def _clear(self, state: SessionState = SessionState.ANONYMOUS) -> None:
        self._access_token = None
        self._refresh_token = None
        self._user_id = None
        self._team_id = None
        self._state = state
        self._store.remove(AUTH_KEYS)

    async def _expire(self, reason: str) -> None:
        logger.warning("Session expired: %s", reason)
        self._clear(SessionState.EXPIRED)
        if self._session_expired is not None:
            await self._session_expired.publish(SessionExpired(reason=reason))
