"""
Tests for HttpxRemoteApi using httpx.MockTransport.
"""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from src.adapters.http.remote_api import HttpxRemoteApi
from src.core.result import Err, ErrorKind, Ok


def make_api(handler, **kwargs) -> HttpxRemoteApi:
    return HttpxRemoteApi("https://api.test/", transport=httpx.MockTransport(handler), **kwargs)


class TestRequest:
    async def test_success_unwraps_data_envelope(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"data": {"token": "t"}})

        api = make_api(handler, api_key="key-1")
        result = await api.request("post", "/auth/login", json={"email": "a"}, token="tok")
        await api.aclose()

        assert isinstance(result, Ok)
        assert result.value.status == 200
        assert result.value.data == {"token": "t"}
        request = seen[0]
        assert request.method == "POST"
        assert str(request.url) == "https://api.test/auth/login"
        assert request.headers["Authorization"] == "Bearer tok"
        assert request.headers["X-API-Key"] == "key-1"
        assert json.loads(request.content) == {"email": "a"}

    async def test_bare_body_is_passed_through(self) -> None:
        api = make_api(lambda r: httpx.Response(200, json=[1, 2]))
        result = await api.request("GET", "/x")
        assert result.value.data == [1, 2]
        await api.aclose()

    async def test_none_params_are_dropped(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={})

        api = make_api(handler)
        await api.request("GET", "/sync/download", params={"dataType": "requests", "since": None, "limit": 10})
        await api.aclose()

        assert dict(seen[0].url.params) == {"dataType": "requests", "limit": "10"}
        assert "X-API-Key" not in seen[0].headers

    async def test_http_error_carries_status_and_message(self) -> None:
        api = make_api(lambda r: httpx.Response(401, json={"error": "Token expired"}))

        result = await api.request("GET", "/auth/verify")
        await api.aclose()

        assert isinstance(result, Err)
        assert result.kind == ErrorKind.HTTP_ERROR
        assert result.status == 401
        assert result.message == "Token expired"

    async def test_non_json_error_body(self) -> None:
        api = make_api(lambda r: httpx.Response(502, text="Bad Gateway"))
        result = await api.request("GET", "/x")
        await api.aclose()
        assert result.status == 502
        assert result.message == "HTTP 502"

    async def test_transport_error_is_network_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        api = make_api(handler)
        result = await api.request("GET", "/x")
        await api.aclose()

        assert result.kind == ErrorKind.NETWORK_ERROR
        assert "refused" in result.message

    async def test_slow_response_times_out(self) -> None:
        async def handler(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(1)
            return httpx.Response(200, json={})

        api = make_api(handler)
        result = await api.request("GET", "/x", timeout=0.01)
        await api.aclose()

        assert result.kind == ErrorKind.TIMEOUT


class TestHealth:
    @pytest.mark.parametrize(("status", "expected"), [(200, True), (503, False)])
    async def test_check_health(self, status: int, expected: bool) -> None:
        api = make_api(lambda r: httpx.Response(status, json={"status": "ok"}))
        assert await api.check_health() is expected
        await api.aclose()
