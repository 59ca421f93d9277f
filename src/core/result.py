"""
Tagged result type shared by the pipeline components.

Low-level operations (remote calls, auth, sync) return ``Ok`` or ``Err``
instead of raising. Storage I/O errors are the exception: they propagate
as ``sqlite3.Error`` and are converted at the SyncEngine/Scheduler boundary.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar

T = TypeVar("T")


class ErrorKind(str, Enum):
    """Failure categories."""

    VALIDATION = "validation"
    INVALID_CREDENTIALS = "invalid_credentials"
    TOKEN_EXPIRED = "token_expired"
    REFRESH_FAILED = "refresh_failed"
    NOT_AUTHENTICATED = "not_authenticated"
    NETWORK_ERROR = "network_error"
    TIMEOUT = "timeout"
    HTTP_ERROR = "http_error"
    SYNC_IN_PROGRESS = "sync_in_progress"
    STORAGE_ERROR = "storage_error"


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Success variant carrying a payload."""

    value: T

    @property
    def success(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    """Failure variant carrying an error kind."""

    kind: ErrorKind
    message: str
    status: int | None = None

    @property
    def success(self) -> bool:
        return False


Result = Ok[T] | Err
