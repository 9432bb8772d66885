"""
PostgreSQL Session Store
========================

SessionStore backed by PostgreSQL through psycopg2.

The sessions table is keyed by the token digest; the raw bearer token
is never written.
"""

from __future__ import annotations

from datetime import datetime
from typing import Callable, Final, Optional

import psycopg2
import psycopg2.extras

from notesafe.core.auth.exceptions import StoreReadError, StoreWriteError
from notesafe.core.auth.session_control import Session, SessionStore


class PostgresSessionStore(SessionStore):
    """
    Session store for a PostgreSQL database.

    Usage:
        store = PostgresSessionStore(os.environ["DATABASE_URL"])
        store.initialize_db()

    A connection factory may be supplied instead of a DSN. To draw from
    a psycopg2 pool, pass its getconn and putconn:

        pool = psycopg2.pool.ThreadedConnectionPool(1, 10, dsn)
        store = PostgresSessionStore(
            connection_factory=pool.getconn, release=pool.putconn
        )

    Rows are always read through RealDictCursor, whatever cursor
    factory the connection was created with.
    """

    __slots__ = ("_connect", "_release")

    _SCHEMA: Final[str] = """
    CREATE TABLE IF NOT EXISTS sessions (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        created_at TIMESTAMPTZ NOT NULL,
        expires_at TIMESTAMPTZ NOT NULL
    );
    CREATE INDEX IF NOT EXISTS idx_sessions_user ON sessions(user_id);
    """

    def __init__(
        self,
        dsn: Optional[str] = None,
        *,
        connection_factory: Optional[Callable[[], "psycopg2.extensions.connection"]] = None,
        release: Optional[Callable[["psycopg2.extensions.connection"], None]] = None,
        sslmode: str = "require",
    ) -> None:
        if connection_factory is None:
            if not dsn:
                raise ValueError("Either dsn or connection_factory is required")

            def connection_factory():
                return psycopg2.connect(
                    dsn,
                    sslmode=sslmode,
                    cursor_factory=psycopg2.extras.RealDictCursor,
                )

        self._connect = connection_factory
        self._release = release

    def _execute(self, query: str, params: tuple, *, fetch: bool = False):
        conn = self._connect()
        try:
            with conn:
                with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
                    cur.execute(query, params)
                    if fetch:
                        return cur.fetchone()
                    return cur.rowcount
        finally:
            if self._release is not None:
                self._release(conn)
            else:
                conn.close()

    def initialize_db(self) -> None:
        try:
            self._execute(self._SCHEMA, ())
        except psycopg2.Error as exc:
            raise StoreWriteError(f"Cannot initialize session schema: {exc}") from exc

    def put(self, session_id: str, record: Session) -> None:
        try:
            self._execute(
                "INSERT INTO sessions (id, user_id, created_at, expires_at) "
                "VALUES (%s, %s, %s, %s)",
                (session_id, record.user_id, record.created_at, record.expires_at),
            )
        except psycopg2.Error as exc:
            raise StoreWriteError(f"Cannot store session: {exc}") from exc

    def get(self, session_id: str) -> Optional[Session]:
        try:
            row = self._execute(
                "SELECT id, user_id, created_at, expires_at FROM sessions WHERE id = %s",
                (session_id,),
                fetch=True,
            )
        except psycopg2.Error as exc:
            raise StoreReadError(f"Cannot read session: {exc}") from exc

        if not row:
            return None
        return Session(
            id=row["id"],
            user_id=row["user_id"],
            created_at=row["created_at"],
            expires_at=row["expires_at"],
        )

    def update_expiry(self, session_id: str, new_expiry: datetime) -> None:
        try:
            self._execute(
                "UPDATE sessions SET expires_at = %s WHERE id = %s",
                (new_expiry, session_id),
            )
        except psycopg2.Error as exc:
            raise StoreWriteError(f"Cannot update session expiry: {exc}") from exc

    def delete(self, session_id: str) -> None:
        try:
            self._execute("DELETE FROM sessions WHERE id = %s", (session_id,))
        except psycopg2.Error as exc:
            raise StoreWriteError(f"Cannot delete session: {exc}") from exc

    def delete_all(self, user_id: str) -> int:
        try:
            return self._execute("DELETE FROM sessions WHERE user_id = %s", (user_id,))
        except psycopg2.Error as exc:
            raise StoreWriteError(f"Cannot delete user sessions: {exc}") from exc
