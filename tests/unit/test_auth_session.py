"""
Tests for AuthSession (login, refresh-then-retry, expiry, logout).
"""

from __future__ import annotations

import asyncio

import pytest

from src.components.auth_session import AuthSession, LoginInput, SessionState, run_login
from src.core.events import EventChannel, LoggedIn, SessionExpired
from src.core.ports.remote import (
    LOGIN_PATH,
    LOGOUT_PATH,
    REFRESH_PATH,
    UPLOAD_PATH,
    VERIFY_PATH,
    team_members_path,
    team_share_path,
)
from src.core.ports.state import AUTH_TOKEN_KEY, REFRESH_TOKEN_KEY, TEAM_ID_KEY, USER_ID_KEY
from src.core.result import Err, ErrorKind, Ok

LOGIN_DATA = {
    "token": "tok-1",
    "refreshToken": "ref-1",
    "user": {"id": "u1", "teamId": "t1", "email": "a@example.com"},
}


# --- Fixtures ---


@pytest.fixture
def logged_in() -> EventChannel[LoggedIn]:
    return EventChannel("logged_in")


@pytest.fixture
def expired() -> EventChannel[SessionExpired]:
    return EventChannel("session_expired")


@pytest.fixture
def session(fake_api, state, logged_in, expired) -> AuthSession:
    return AuthSession(fake_api, state, logged_in, expired)


@pytest.fixture
async def authed(session, fake_api) -> AuthSession:
    fake_api.ok("POST", LOGIN_PATH, LOGIN_DATA)
    result = await session.login("a@example.com", "pw")
    assert result.success
    fake_api.calls.clear()
    return session


# --- Login ---


class TestLogin:
    async def test_success_persists_and_publishes(self, session, fake_api, state, logged_in) -> None:
        seen: list[LoggedIn] = []
        logged_in.subscribe(seen.append)
        fake_api.ok("POST", LOGIN_PATH, LOGIN_DATA)

        result = await session.login("a@example.com", "pw")

        assert isinstance(result, Ok)
        assert result.value.user_id == "u1"
        assert result.value.team_id == "t1"
        assert session.state == SessionState.AUTHENTICATED
        assert session.is_authenticated
        assert state.get(AUTH_TOKEN_KEY) == "tok-1"
        assert state.get(REFRESH_TOKEN_KEY) == "ref-1"
        assert state.get(TEAM_ID_KEY) == "t1"
        assert seen == [LoggedIn(user_id="u1", team_id="t1")]
        assert fake_api.calls[0].json == {"email": "a@example.com", "password": "pw"}

    @pytest.mark.parametrize("status", [400, 401, 403])
    async def test_rejected_credentials(self, session, fake_api, status) -> None:
        fake_api.fail("POST", LOGIN_PATH, status, "Invalid credentials")

        result = await session.login("a@example.com", "bad")

        assert isinstance(result, Err)
        assert result.kind == ErrorKind.INVALID_CREDENTIALS
        assert session.state == SessionState.ANONYMOUS
        assert not session.is_authenticated

    async def test_server_error_is_network_error(self, session, fake_api) -> None:
        fake_api.fail("POST", LOGIN_PATH, 500)
        result = await session.login("a@example.com", "pw")
        assert result.kind == ErrorKind.NETWORK_ERROR

    async def test_transport_failure_is_network_error(self, session, fake_api) -> None:
        fake_api.on("POST", LOGIN_PATH, Err(ErrorKind.TIMEOUT, "timed out"))
        result = await session.login("a@example.com", "pw")
        assert result.kind == ErrorKind.NETWORK_ERROR

    async def test_response_without_token_is_rejected(self, session, fake_api, state) -> None:
        fake_api.ok("POST", LOGIN_PATH, {"user": {"id": "u1"}})

        result = await session.login("a@example.com", "pw")

        assert isinstance(result, Err)
        assert not session.is_authenticated
        assert state.get(AUTH_TOKEN_KEY) is None

    async def test_run_login_requires_credentials(self, session, fake_api) -> None:
        out = await run_login(LoginInput(email="", password=""), session=session)
        assert not out.success
        assert fake_api.calls == []


# --- initialize ---


class TestInitialize:
    async def test_no_persisted_token(self, session, fake_api) -> None:
        assert await session.initialize() is False
        assert fake_api.calls == []

    async def test_restores_verified_session(self, session, fake_api, state) -> None:
        state.set_many({AUTH_TOKEN_KEY: "tok-1", REFRESH_TOKEN_KEY: "ref-1", USER_ID_KEY: "u1", TEAM_ID_KEY: "t1"})

        assert await session.initialize() is True

        assert session.is_authenticated
        assert session.team_id == "t1"
        assert fake_api.calls[0].path == VERIFY_PATH
        assert fake_api.calls[0].token == "tok-1"

    async def test_rejected_token_clears_state(self, session, fake_api, state) -> None:
        state.set_many({AUTH_TOKEN_KEY: "tok-1", REFRESH_TOKEN_KEY: "ref-1"})
        fake_api.fail("GET", VERIFY_PATH, 401)

        assert await session.initialize() is False

        assert not session.is_authenticated
        assert state.get(AUTH_TOKEN_KEY) is None

    async def test_offline_keeps_session(self, session, fake_api, state) -> None:
        state.set_many({AUTH_TOKEN_KEY: "tok-1"})
        fake_api.on("GET", VERIFY_PATH, Err(ErrorKind.NETWORK_ERROR, "unreachable"))

        assert await session.initialize() is True
        assert session.is_authenticated


# --- send / refresh ---


class TestSend:
    async def test_not_authenticated_makes_no_call(self, session, fake_api) -> None:
        result = await session.send("POST", UPLOAD_PATH, json={})

        assert result.kind == ErrorKind.NOT_AUTHENTICATED
        assert fake_api.calls == []

    async def test_attaches_bearer_token(self, authed, fake_api) -> None:
        fake_api.ok("GET", "/thing", {"x": 1})

        result = await authed.send("GET", "/thing")

        assert result.value.data == {"x": 1}
        assert fake_api.calls[0].token == "tok-1"

    async def test_401_refreshes_once_and_retries_once(self, authed, fake_api, state) -> None:
        fake_api.fail("POST", UPLOAD_PATH, 401)
        fake_api.ok("POST", UPLOAD_PATH, {"ok": True})
        fake_api.ok("POST", REFRESH_PATH, {"token": "tok-2", "refreshToken": "ref-2"})

        result = await authed.send("POST", UPLOAD_PATH, json={"data": []})

        assert result.success
        assert [c.path for c in fake_api.calls] == [UPLOAD_PATH, REFRESH_PATH, UPLOAD_PATH]
        assert fake_api.calls[1].json == {"refreshToken": "ref-1"}
        assert fake_api.calls[2].token == "tok-2"
        assert state.get(AUTH_TOKEN_KEY) == "tok-2"
        assert state.get(REFRESH_TOKEN_KEY) == "ref-2"

    async def test_second_401_returns_token_expired(self, authed, fake_api) -> None:
        fake_api.fail("POST", UPLOAD_PATH, 401)
        fake_api.ok("POST", REFRESH_PATH, {"token": "tok-2"})

        result = await authed.send("POST", UPLOAD_PATH, json={})

        assert result.kind == ErrorKind.TOKEN_EXPIRED
        assert len(fake_api.calls_to(REFRESH_PATH)) == 1
        assert len(fake_api.calls_to(UPLOAD_PATH)) == 2

    async def test_refresh_failure_expires_session(self, authed, fake_api, state, expired) -> None:
        seen: list[SessionExpired] = []
        expired.subscribe(seen.append)
        fake_api.fail("POST", UPLOAD_PATH, 401)
        fake_api.fail("POST", REFRESH_PATH, 401, "refresh token revoked")

        result = await authed.send("POST", UPLOAD_PATH, json={})

        assert result.kind == ErrorKind.TOKEN_EXPIRED
        assert authed.state == SessionState.EXPIRED
        assert not authed.is_authenticated
        assert state.get(AUTH_TOKEN_KEY) is None
        assert state.get(USER_ID_KEY) is None
        assert len(seen) == 1

    async def test_non_401_errors_pass_through(self, authed, fake_api) -> None:
        fake_api.fail("POST", UPLOAD_PATH, 500, "boom")

        result = await authed.send("POST", UPLOAD_PATH, json={})

        assert result.kind == ErrorKind.HTTP_ERROR
        assert result.status == 500
        assert fake_api.calls_to(REFRESH_PATH) == []

    async def test_concurrent_401s_share_one_refresh(self, authed, fake_api) -> None:
        fake_api.fail("GET", "/a", 401)
        fake_api.ok("GET", "/a", {})
        fake_api.fail("GET", "/b", 401)
        fake_api.ok("GET", "/b", {})
        fake_api.ok("POST", REFRESH_PATH, {"token": "tok-2"})

        results = await asyncio.gather(authed.send("GET", "/a"), authed.send("GET", "/b"))

        assert all(r.success for r in results)
        assert len(fake_api.calls_to(REFRESH_PATH)) == 1

    async def test_refresh_without_refresh_token_expires(self, session, fake_api, state) -> None:
        state.set_many({AUTH_TOKEN_KEY: "tok-1"})
        await session.initialize()

        result = await session.refresh()

        assert result.kind == ErrorKind.REFRESH_FAILED
        assert session.state == SessionState.EXPIRED
        assert fake_api.calls_to(REFRESH_PATH) == []


# --- logout ---


class TestLogout:
    async def test_logout_clears_local_state(self, authed, fake_api, state) -> None:
        await authed.logout()

        assert fake_api.calls[0].path == LOGOUT_PATH
        assert fake_api.calls[0].token == "tok-1"
        assert not authed.is_authenticated
        assert state.get(AUTH_TOKEN_KEY) is None

    async def test_logout_clears_even_when_remote_fails(self, authed, fake_api, state) -> None:
        fake_api.fail("POST", LOGOUT_PATH, 500)

        result = await authed.logout()

        assert result.success
        assert authed.state == SessionState.ANONYMOUS
        assert state.get(REFRESH_TOKEN_KEY) is None


# --- Team ---


class TestTeam:
    async def test_get_team_members(self, authed, fake_api) -> None:
        fake_api.ok("GET", team_members_path("t1"), {"members": [{"id": "u1"}, {"id": "u2"}]})

        result = await authed.get_team_members()

        assert [m["id"] for m in result.value] == ["u1", "u2"]

    async def test_share_with_team(self, authed, fake_api) -> None:
        fake_api.ok("POST", team_share_path("t1"), {"shared": True})

        result = await authed.share_with_team("analytics", "2024-06-15", ["read"])

        assert result.value == {"shared": True}
        assert fake_api.calls[0].json == {
            "dataType": "analytics",
            "dataId": "2024-06-15",
            "permissions": ["read"],
        }

    async def test_team_calls_need_a_team(self, session) -> None:
        result = await session.get_team_members()
        assert result.kind == ErrorKind.VALIDATION
