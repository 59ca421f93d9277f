"""
AuthSession component - Data models.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from src.core.result import ErrorKind


class SessionState(str, Enum):
    """Authentication lifecycle."""

    ANONYMOUS = "anonymous"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"
    REFRESHING = "refreshing"
    EXPIRED = "expired"


@dataclass(frozen=True)
class LoginInput:
    email: str
    password: str


@dataclass(frozen=True)
class LoginResult:
    """Identity returned by a successful login."""

    user_id: str | None
    team_id: str | None
    user: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class SessionSnapshot:
    """Read-only view of the session (no tokens)."""

    state: SessionState
    is_authenticated: bool
    user_id: str | None
    team_id: str | None
    has_refresh_token: bool


@dataclass
class LoginOutput:
    result: LoginResult | None = None
    success: bool = False
    error: str | None = None
    error_kind: ErrorKind | None = None
