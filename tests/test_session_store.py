from __future__ import annotations

import sqlite3
from datetime import datetime, timedelta, timezone

import pytest

from notesafe.core.auth.exceptions import StoreReadError, StoreWriteError
from notesafe.core.auth.session_control import Session, SessionManager
from notesafe.db.session_store import SQLiteSessionStore


NOW = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


def _session(sid="a" * 64, user_id="alice", days=30):
    return Session(id=sid, user_id=user_id, created_at=NOW, expires_at=NOW + timedelta(days=days))


@pytest.fixture(params=["memory", "sqlite"])
def store(request, memory_store, sqlite_store):
    return memory_store if request.param == "memory" else sqlite_store


# =============================================================================
# Shared contract
# =============================================================================


def test_put_then_get(store):
    record = _session()
    store.put(record.id, record)

    loaded = store.get(record.id)
    assert loaded == record
    assert loaded.expires_at.tzinfo is not None


def test_get_missing_returns_none(store):
    assert store.get("f" * 64) is None


def test_duplicate_put_is_a_write_error(store):
    record = _session()
    store.put(record.id, record)
    with pytest.raises(StoreWriteError):
        store.put(record.id, record)


def test_update_expiry(store):
    record = _session()
    store.put(record.id, record)

    later = NOW + timedelta(days=45)
    store.update_expiry(record.id, later)

    assert store.get(record.id).expires_at == later


def test_update_missing_is_noop(store):
    store.update_expiry("0" * 64, NOW)
    assert store.get("0" * 64) is None


def test_delete_is_idempotent(store):
    record = _session()
    store.put(record.id, record)

    store.delete(record.id)
    store.delete(record.id)

    assert store.get(record.id) is None


def test_delete_all_counts_per_user(store):
    for i in range(3):
        store.put(f"{i:064d}", _session(sid=f"{i:064d}", user_id="alice"))
    store.put("b" * 64, _session(sid="b" * 64, user_id="bob"))

    assert store.delete_all("alice") == 3
    assert store.delete_all("alice") == 0
    assert store.get("b" * 64) is not None


def test_returned_records_are_copies(memory_store):
    record = _session()
    memory_store.put(record.id, record)

    loaded = memory_store.get(record.id)
    loaded.expires_at = NOW
    record.expires_at = NOW

    assert memory_store.get(record.id).expires_at == NOW + timedelta(days=30)


# =============================================================================
# SQLite specifics
# =============================================================================


def test_sqlite_persists_across_instances(tmp_path):
    db_path = tmp_path / "sessions.db"
    record = _session()
    SQLiteSessionStore(db_path).put(record.id, record)

    assert SQLiteSessionStore(db_path).get(record.id) == record


def test_sqlite_never_stores_raw_token(tmp_path, clock):
    db_path = tmp_path / "sessions.db"
    manager = SessionManager(SQLiteSessionStore(db_path), clock=clock)
    token = manager.generate_session_token()
    manager.create_session(token, "alice")

    with sqlite3.connect(db_path) as conn:
        rows = conn.execute("SELECT * FROM sessions").fetchall()
    assert rows
    assert all(token not in str(value) for row in rows for value in row)


def test_sqlite_full_lifecycle(sqlite_store, clock):
    manager = SessionManager(sqlite_store, clock=clock)
    token = manager.generate_session_token()
    session = manager.create_session(token, "alice")

    clock.advance(days=20)
    assert manager.validate(token).session.expires_at == clock.now + timedelta(days=30)
    assert sqlite_store.get(session.id).expires_at == clock.now + timedelta(days=30)

    clock.advance(days=31)
    assert not manager.validate(token)
    assert sqlite_store.get(session.id) is None


def test_sqlite_errors_are_mapped(tmp_path):
    db_path = tmp_path / "sessions.db"
    store = SQLiteSessionStore(db_path)
    with sqlite3.connect(db_path) as conn:
        conn.execute("DROP TABLE sessions")

    with pytest.raises(StoreReadError):
        store.get("a" * 64)
    with pytest.raises(StoreWriteError):
        store.put("a" * 64, _session())
    with pytest.raises(StoreWriteError):
        store.update_expiry("a" * 64, NOW)
    with pytest.raises(StoreWriteError):
        store.delete("a" * 64)
    with pytest.raises(StoreWriteError):
        store.delete_all("alice")


def test_sqlite_lookup_failure_fails_closed(tmp_path, clock):
    db_path = tmp_path / "sessions.db"
    store = SQLiteSessionStore(db_path)
    manager = SessionManager(store, clock=clock)
    token = manager.generate_session_token()
    manager.create_session(token, "alice")

    with sqlite3.connect(db_path) as conn:
        conn.execute("DROP TABLE sessions")

    assert not manager.validate(token)


# =============================================================================
# PostgreSQL store against a scripted connection
# =============================================================================


_COLUMNS = ("id", "user_id", "created_at", "expires_at")


class _FakeCursor:
    """Returns tuple rows unless opened with RealDictCursor, like psycopg2."""

    def __init__(self, conn, cursor_factory=None):
        self._conn = conn
        self._as_dict = cursor_factory is not None and cursor_factory.__name__ == "RealDictCursor"
        self.rowcount = 0

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def execute(self, query, params):
        if self._conn.error is not None:
            raise self._conn.error
        self._conn.queries.append((" ".join(query.split()), params))
        self.rowcount = self._conn.rowcount

    def fetchone(self):
        row = self._conn.row
        if row is None or not self._as_dict:
            return row
        return dict(zip(_COLUMNS, row))


class _FakeConnection:
    def __init__(self, row=None, rowcount=0, error=None):
        self.row = row
        self.rowcount = rowcount
        self.error = error
        self.queries = []
        self.committed = False
        self.closed = False

    def __enter__(self):
        return self

    def __exit__(self, exc_type, *exc):
        self.committed = exc_type is None
        return False

    def cursor(self, cursor_factory=None):
        return _FakeCursor(self, cursor_factory)

    def close(self):
        self.closed = True


@pytest.fixture()
def pg():
    psycopg2 = pytest.importorskip("psycopg2")
    from notesafe.db.postgres_store import PostgresSessionStore

    conn = _FakeConnection()
    return psycopg2, conn, PostgresSessionStore(connection_factory=lambda: conn)


def test_postgres_requires_dsn_or_factory():
    pytest.importorskip("psycopg2")
    from notesafe.db.postgres_store import PostgresSessionStore

    with pytest.raises(ValueError):
        PostgresSessionStore()


def test_postgres_put_uses_parameters(pg):
    _, conn, store = pg
    record = _session()

    store.put(record.id, record)

    query, params = conn.queries[-1]
    assert query.startswith("INSERT INTO sessions")
    assert "%s" in query
    assert params == (record.id, "alice", record.created_at, record.expires_at)
    assert conn.committed and conn.closed


def test_postgres_get_maps_row(pg):
    _, conn, store = pg
    record = _session()
    # Plain connections hand back tuples; the store must ask for dict rows
    conn.row = (record.id, record.user_id, record.created_at, record.expires_at)

    assert store.get(record.id) == record

    conn.row = None
    assert store.get(record.id) is None


def test_postgres_pooled_connections_are_released(clock):
    pytest.importorskip("psycopg2")
    from notesafe.db.postgres_store import PostgresSessionStore

    conn = _FakeConnection()
    released = []
    store = PostgresSessionStore(connection_factory=lambda: conn, release=released.append)
    manager = SessionManager(store, clock=clock)
    token = manager.generate_session_token()
    session = manager.create_session(token, "alice")
    conn.row = (session.id, session.user_id, session.created_at, session.expires_at)

    result = manager.validate(token)

    assert result.session.id == session.id
    assert released == [conn, conn]
    assert not conn.closed


def test_postgres_delete_all_returns_rowcount(pg):
    _, conn, store = pg
    conn.rowcount = 4
    assert store.delete_all("alice") == 4


def test_postgres_errors_are_mapped(pg):
    psycopg2, conn, store = pg
    conn.error = psycopg2.OperationalError("connection lost")

    with pytest.raises(StoreReadError):
        store.get("a" * 64)
    with pytest.raises(StoreWriteError):
        store.put("a" * 64, _session())
    with pytest.raises(StoreWriteError):
        store.update_expiry("a" * 64, NOW)
    with pytest.raises(StoreWriteError):
        store.delete("a" * 64)
    with pytest.raises(StoreWriteError):
        store.initialize_db()
    assert conn.closed
