"""
httpx implementation of RemoteApiPort.

Key behaviors:
- One shared httpx.AsyncClient per instance (base_url, JSON content type)
- Each call is bounded by asyncio.wait_for with a per-call timeout
- X-API-Key header when an api key is configured
- {"data": ...} envelopes are unwrapped; non-JSON bodies become text
- Transport failures -> NETWORK_ERROR, timeouts -> TIMEOUT,
  non-2xx -> HTTP_ERROR with the status code
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from src.core.ports.remote import HEALTH_PATH, ApiResponse
from src.core.result import Err, ErrorKind, Ok, Result

logger = logging.getLogger(__name__)


def _unwrap(body: Any) -> Any:
    if isinstance(body, dict) and "data" in body:
        return body["data"]
    return body


def _error_message(body: Any, status: int) -> str:
    if isinstance(body, dict):
        for key in ("message", "error"):
            value = body.get(key)
            if isinstance(value, str) and value:
                return value
    return f"HTTP {status}"


class HttpxRemoteApi:
    """Async HTTP client for the sync backend."""

    def __init__(
        self,
        base_url: str,
        *,
        api_key: str | None = None,
        timeout_seconds: float = 30.0,
        health_timeout_seconds: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self._timeout = timeout_seconds
        self._health_timeout = health_timeout_seconds
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers={"Content-Type": "application/json"},
            transport=transport,
            trust_env=False,
        )

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
        headers: dict[str, str] = {}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        if self._api_key:
            headers["X-API-Key"] = self._api_key

        clean_params = {k: v for k, v in (params or {}).items() if v is not None}
        limit = timeout if timeout is not None else self._timeout

        try:
            response = await asyncio.wait_for(
                self._client.request(
                    method.upper(),
                    path,
                    json=json,
                    params=clean_params or None,
                    headers=headers,
                ),
                timeout=limit,
            )
        except (TimeoutError, httpx.TimeoutException):
            logger.warning("Request timed out [%s %s] after %.1fs", method, path, limit)
            return Err(ErrorKind.TIMEOUT, f"Request timeout after {limit}s")
        except httpx.TransportError as e:
            logger.warning("Request failed [%s %s]: %s", method, path, e)
            return Err(ErrorKind.NETWORK_ERROR, str(e) or type(e).__name__)

        try:
            body: Any = response.json()
        except ValueError:
            body = response.text or None

        if response.is_success:
            return Ok(ApiResponse(status=response.status_code, data=_unwrap(body)))

        logger.debug("HTTP %d [%s %s]", response.status_code, method, path)
        return Err(
            ErrorKind.HTTP_ERROR,
            _error_message(body, response.status_code),
            status=response.status_code,
        )

    async def check_health(self) -> bool:
        result = await self.request("GET", HEALTH_PATH, timeout=self._health_timeout)
        return result.success

    async def aclose(self) -> None:
        await self._client.aclose()
