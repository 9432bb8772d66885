"""
Session Stores
==============

SessionStore implementations keyed by token digest.

- InMemorySessionStore: lock-guarded dict, for single-process use and tests
- SQLiteSessionStore: one connection per operation, ISO-8601 timestamps
"""

from __future__ import annotations

import sqlite3
import threading
from contextlib import closing
from dataclasses import replace
from datetime import datetime
from pathlib import Path
from typing import Dict, Final, Optional

from notesafe.core.auth.exceptions import StoreReadError, StoreWriteError
from notesafe.core.auth.session_control import Session, SessionStore


class InMemorySessionStore(SessionStore):
    """Process-local session store."""

    __slots__ = ("_records", "_lock")

    def __init__(self) -> None:
        self._records: Dict[str, Session] = {}
        self._lock = threading.Lock()

    def put(self, session_id: str, record: Session) -> None:
        with self._lock:
            if session_id in self._records:
                raise StoreWriteError("Session id already exists")
            self._records[session_id] = replace(record)

    def get(self, session_id: str) -> Optional[Session]:
        with self._lock:
            record = self._records.get(session_id)
            return replace(record) if record is not None else None

    def update_expiry(self, session_id: str, new_expiry: datetime) -> None:
        with self._lock:
            record = self._records.get(session_id)
            if record is not None:
                record.expires_at = new_expiry

    def delete(self, session_id: str) -> None:
        with self._lock:
            self._records.pop(session_id, None)

    def delete_all(self, user_id: str) -> int:
        with self._lock:
            doomed = [sid for sid, rec in self._records.items() if rec.user_id == user_id]
            for sid in doomed:
                del self._records[sid]
            return len(doomed)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


class SQLiteSessionStore(SessionStore):
    """
    Session store with SQLite backend.

    Usage:
        store = SQLiteSessionStore(config.paths.session_db)
        manager = SessionManager(store)

    Security Notes:
        - The id column holds the token digest; raw tokens never hit disk
        - All statements use parameterized queries
    """

    __slots__ = ("_db_path",)

    _SCHEMA: Final[str] = """
    CREATE TABLE IF NOT EXISTS sessions (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        created_at TEXT NOT NULL,
        expires_at TEXT NOT NULL
    );

    CREATE INDEX IF NOT EXISTS idx_sessions_user ON sessions(user_id);
    CREATE INDEX IF NOT EXISTS idx_sessions_expires ON sessions(expires_at);
    """

    def __init__(self, db_path: Path | str) -> None:
        """
        Initialize the session store.

        Args:
            db_path: Path to SQLite database
        """
        self._db_path = Path(db_path)
        self.initialize_db()

    def _get_connection(self) -> sqlite3.Connection:
        """Get a database connection."""
        conn = sqlite3.connect(self._db_path, timeout=5.0)
        conn.row_factory = sqlite3.Row
        return conn

    def initialize_db(self) -> None:
        """Initialize the database schema."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

        try:
            with closing(self._get_connection()) as conn, conn:
                conn.executescript(self._SCHEMA)
        except sqlite3.Error as exc:
            raise StoreWriteError(f"Cannot initialize session schema: {exc}") from exc

    def put(self, session_id: str, record: Session) -> None:
        try:
            with closing(self._get_connection()) as conn, conn:
                conn.execute("""
                    INSERT INTO sessions (id, user_id, created_at, expires_at)
                    VALUES (?, ?, ?, ?)
                """, (
                    session_id,
                    record.user_id,
                    record.created_at.isoformat(),
                    record.expires_at.isoformat(),
                ))
        except sqlite3.Error as exc:
            raise StoreWriteError(f"Cannot store session: {exc}") from exc

    def get(self, session_id: str) -> Optional[Session]:
        try:
            with closing(self._get_connection()) as conn:
                row = conn.execute("""
                    SELECT id, user_id, created_at, expires_at
                    FROM sessions WHERE id = ?
                """, (session_id,)).fetchone()
        except sqlite3.Error as exc:
            raise StoreReadError(f"Cannot read session: {exc}") from exc

        if not row:
            return None
        return self._row_to_session(row)

    def update_expiry(self, session_id: str, new_expiry: datetime) -> None:
        try:
            with closing(self._get_connection()) as conn, conn:
                conn.execute("""
                    UPDATE sessions SET expires_at = ? WHERE id = ?
                """, (new_expiry.isoformat(), session_id))
        except sqlite3.Error as exc:
            raise StoreWriteError(f"Cannot update session expiry: {exc}") from exc

    def delete(self, session_id: str) -> None:
        try:
            with closing(self._get_connection()) as conn, conn:
                conn.execute("DELETE FROM sessions WHERE id = ?", (session_id,))
        except sqlite3.Error as exc:
            raise StoreWriteError(f"Cannot delete session: {exc}") from exc

    def delete_all(self, user_id: str) -> int:
        try:
            with closing(self._get_connection()) as conn, conn:
                result = conn.execute("DELETE FROM sessions WHERE user_id = ?", (user_id,))
                return result.rowcount
        except sqlite3.Error as exc:
            raise StoreWriteError(f"Cannot delete user sessions: {exc}") from exc

    def _row_to_session(self, row: sqlite3.Row) -> Session:
        """Convert a database row to a Session object."""
        return Session(
            id=row["id"],
            user_id=row["user_id"],
            created_at=datetime.fromisoformat(row["created_at"]),
            expires_at=datetime.fromisoformat(row["expires_at"]),
        )
