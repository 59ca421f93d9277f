from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import pytest

from src.adapters.clock import SystemClock, to_ms
from src.adapters.sqlite.migrator import SQLiteMigrator
from src.adapters.state_store import InMemoryStateStore
from src.core.ports.remote import ApiResponse
from src.core.result import Err, ErrorKind, Ok, Result

MIGRATIONS_DIR = str(Path(__file__).resolve().parents[1] / "migrations")


# --- Time ---


class FakeClock(SystemClock):
    """SystemClock with a settable 'now'; calendar math stays real."""

    def __init__(self, now: datetime | None = None, tz_name: str = "UTC") -> None:
        super().__init__(tz_name)
        self._now = now or datetime(2024, 6, 15, 12, 0, 0, tzinfo=UTC)

    def now_utc(self) -> datetime:
        return self._now

    def set_now(self, now: datetime) -> None:
        self._now = now

    def advance(self, **kwargs: float) -> None:
        self._now += timedelta(**kwargs)


@dataclass
class FakeToken:
    when: datetime
    task: Any
    cancelled: bool = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeTimers:
    """TimerPort that only runs tasks when the test says so."""

    def __init__(self, clock: FakeClock) -> None:
        self.clock = clock
        self.scheduled: list[FakeToken] = []

    def schedule_at(self, when: datetime, task: Any) -> FakeToken:
        token = FakeToken(when, task)
        self.scheduled.append(token)
        return token

    @property
    def pending(self) -> list[FakeToken]:
        return [t for t in self.scheduled if not t.cancelled]

    async def run_due(self) -> int:
        """Run every pending task whose time has come (tasks may re-arm)."""
        due = [t for t in self.pending if t.when <= self.clock.now_utc()]
        for token in due:
            self.scheduled.remove(token)
            await token.task()
        return len(due)

    async def drain(self) -> None:
        """Tasks only run inside run_due, so nothing is ever in flight."""


# --- Remote API ---


@dataclass
class ApiCall:
    method: str
    path: str
    json: Any = None
    params: dict[str, Any] | None = None
    token: str | None = None


@dataclass
class FakeApi:
    """Scripted RemoteApiPort: queued results per (method, path), default 200 {}."""

    calls: list[ApiCall] = field(default_factory=list)
    routes: dict[tuple[str, str], list[Result[ApiResponse]]] = field(default_factory=dict)
    healthy: bool = True
    closed: bool = False

    def on(self, method: str, path: str, *results: Result[ApiResponse]) -> None:
        self.routes.setdefault((method, path), []).extend(results)

    def ok(self, method: str, path: str, data: Any = None, status: int = 200) -> None:
        self.on(method, path, Ok(ApiResponse(status=status, data=data)))

    def fail(self, method: str, path: str, status: int, message: str = "failed") -> None:
        self.on(method, path, Err(ErrorKind.HTTP_ERROR, message, status=status))

    def calls_to(self, path: str) -> list[ApiCall]:
        return [c for c in self.calls if c.path == path]

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
        self.calls.append(ApiCall(method, path, json, params, token))
        queue = self.routes.get((method, path))
        if queue:
            # The last scripted result repeats
            return queue.pop(0) if len(queue) > 1 else queue[0]
        return Ok(ApiResponse(status=200, data={}))

    async def check_health(self) -> bool:
        return self.healthy

    async def aclose(self) -> None:
        self.closed = True


# --- Fixtures ---


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def now_ms(clock: FakeClock) -> int:
    return to_ms(clock.now_utc())


@pytest.fixture
def timers(clock: FakeClock) -> FakeTimers:
    return FakeTimers(clock)


@pytest.fixture
def state() -> InMemoryStateStore:
    return InMemoryStateStore()


@pytest.fixture
def fake_api() -> FakeApi:
    return FakeApi()


@pytest.fixture
def db_path(tmp_path: Path) -> str:
    """Temporary database with every migration applied."""
    path = str(tmp_path / "telemetry.db")
    SQLiteMigrator(path, MIGRATIONS_DIR).run_migrations()
    return path
