"""
Database module - Session persistence.

Security Considerations:
- Sessions are keyed by token digest; raw tokens are never stored
- All queries are parameterized

PostgresSessionStore lives in notesafe.db.postgres_store and needs the
"postgres" extra.
"""

from notesafe.db.session_store import InMemorySessionStore, SQLiteSessionStore

__all__ = ["InMemorySessionStore", "SQLiteSessionStore"]
