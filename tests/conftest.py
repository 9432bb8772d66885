from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from notesafe.core.auth.argon2_auth import Argon2Hasher, HashingPool
from notesafe.core.auth.session_control import SessionManager
from notesafe.db.session_store import InMemorySessionStore, SQLiteSessionStore


class FakeClock:
    """Controllable timezone-aware clock for session tests."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeMonotonic:
    """Controllable monotonic seconds for one-time token tests."""

    def __init__(self, start: float = 1000.0) -> None:
        self.value = start

    def __call__(self) -> float:
        return self.value

    def advance(self, seconds: float) -> None:
        self.value += seconds


@pytest.fixture()
def fast_hasher() -> Argon2Hasher:
    # Cheap costs keep the suite fast; defaults are covered separately
    return Argon2Hasher(memory_cost=1024, time_cost=1, parallelism=1)


@pytest.fixture()
def hashing_pool(fast_hasher):
    pool = HashingPool(fast_hasher, max_workers=2)
    yield pool
    pool.shutdown()


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def monotonic() -> FakeMonotonic:
    return FakeMonotonic()


@pytest.fixture()
def memory_store() -> InMemorySessionStore:
    return InMemorySessionStore()


@pytest.fixture()
def sqlite_store(tmp_path) -> SQLiteSessionStore:
    return SQLiteSessionStore(tmp_path / "data" / "sessions.db")


@pytest.fixture()
def manager(memory_store, clock) -> SessionManager:
    return SessionManager(memory_store, clock=clock)
