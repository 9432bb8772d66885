"""
Session Control
================

Secure session management with sliding expiration.

Security Features:
- Only token digests are stored; raw tokens stay with the client
- Absolute expiry with sliding renewal for active users
- Fail-closed validation: any lookup problem means "not authenticated"
- Single and bulk invalidation

Lifecycle:
    Active -> (renewed, still Active) -> Expired (detected lazily) -> Deleted
"""

from __future__ import annotations

import abc
import logging
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any, Callable, Optional

from notesafe.core.auth.exceptions import (
    SessionError,
    SessionExpired,
    SessionNotFound,
    StoreError,
)
from notesafe.core.auth.tokens import TokenMinter
from notesafe.security.audit import AuditEventType, AuditSeverity, TamperAwareAuditLog
from notesafe.security.constants import (
    SESSION_LIFETIME_SECONDS,
    SESSION_RENEW_THRESHOLD_SECONDS,
    SESSION_RENEWAL_RETRIES,
)

if TYPE_CHECKING:
    from notesafe.core.config import SessionConfig


_log = logging.getLogger("notesafe.auth.sessions")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _short(session_id: str) -> str:
    """Abbreviated digest for log lines."""
    return session_id[:12]


@dataclass
class Session:
    """
    User session representation.

    The id is the SHA-256 digest of the bearer token, never the token.
    """
    id: str
    user_id: str
    created_at: datetime
    expires_at: datetime

    def __repr__(self) -> str:
        return (
            f"Session(id={_short(self.id)!r}..., user_id={self.user_id!r}, "
            f"expires_at={self.expires_at.isoformat()})"
        )

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """Check if the session has expired."""
        return (now or _utcnow()) >= self.expires_at


@dataclass(frozen=True)
class SessionValidationResult:
    """
    Outcome of validating a bearer token.

    Both fields are None when the token does not map to a live session;
    callers cannot tell a missing session from an expired one.
    """
    session: Optional[Session] = None
    user: Any = None

    @classmethod
    def empty(cls) -> SessionValidationResult:
        return cls()

    def __bool__(self) -> bool:
        return self.session is not None


class SessionStore(abc.ABC):
    """
    Storage contract required by SessionManager.

    Implementations map session identifiers to Session records and must
    raise StoreReadError / StoreWriteError on backend failures.
    """

    @abc.abstractmethod
    def put(self, session_id: str, record: Session) -> None:
        """Persist a new session record."""

    @abc.abstractmethod
    def get(self, session_id: str) -> Optional[Session]:
        """Return the record or None when absent."""

    @abc.abstractmethod
    def update_expiry(self, session_id: str, new_expiry: datetime) -> None:
        """Move a session's expiry."""

    @abc.abstractmethod
    def delete(self, session_id: str) -> None:
        """Remove one record; absent records are not an error."""

    @abc.abstractmethod
    def delete_all(self, user_id: str) -> int:
        """Remove every record owned by a user and return how many went."""


class SessionManager:
    """
    Session lifecycle orchestration over a SessionStore.

    Usage:
        manager = SessionManager(SQLiteSessionStore(db_path))

        # After successful authentication
        token = manager.generate_session_token()
        manager.create_session(token, user_id)   # send token to the client

        # On every request
        result = manager.validate(token)
        if not result:
            reject()

        # Logout / password change
        manager.invalidate(result.session.id)
        manager.invalidate_all(user_id)

    Concurrency:
        Two validations racing to renew the same session both write
        now + lifetime; last write wins with the same outcome.
    """

    __slots__ = (
        "_store", "_minter", "_lifetime", "_renew_threshold",
        "_renewal_retries", "_user_loader", "_clock", "_audit",
    )

    def __init__(
        self,
        store: SessionStore,
        minter: Optional[TokenMinter] = None,
        *,
        lifetime: timedelta = timedelta(seconds=SESSION_LIFETIME_SECONDS),
        renew_threshold: timedelta = timedelta(seconds=SESSION_RENEW_THRESHOLD_SECONDS),
        renewal_retries: int = SESSION_RENEWAL_RETRIES,
        user_loader: Optional[Callable[[str], Any]] = None,
        clock: Callable[[], datetime] = _utcnow,
        audit: Optional[TamperAwareAuditLog] = None,
    ) -> None:
        """
        Initialize the session manager.

        Args:
            store: Backend holding session records
            minter: Token generator / digester (default: TokenMinter())
            lifetime: Expiry distance set at creation and on renewal
            renew_threshold: Renew when less than this much time is left
            renewal_retries: Extra attempts for a failed renewal write
            user_loader: Resolves a user id to the user object returned
                with the session; returning None rejects the session
            clock: Source of timezone-aware "now"
            audit: Optional audit log for lifecycle events
        """
        if not timedelta(0) < renew_threshold < lifetime:
            raise ValueError("renew_threshold must be positive and shorter than lifetime")
        if renewal_retries < 0:
            raise ValueError("renewal_retries cannot be negative")

        self._store = store
        self._minter = minter or TokenMinter()
        self._lifetime = lifetime
        self._renew_threshold = renew_threshold
        self._renewal_retries = renewal_retries
        self._user_loader = user_loader
        self._clock = clock
        self._audit = audit

    @classmethod
    def from_config(
        cls,
        store: SessionStore,
        config: SessionConfig,
        **kwargs: Any,
    ) -> SessionManager:
        """Build a manager using the lifetimes from a SessionConfig."""
        return cls(
            store,
            lifetime=timedelta(seconds=config.lifetime_seconds),
            renew_threshold=timedelta(seconds=config.renew_threshold_seconds),
            renewal_retries=config.renewal_retries,
            **kwargs,
        )

    @property
    def lifetime(self) -> timedelta:
        return self._lifetime

    @property
    def renew_threshold(self) -> timedelta:
        return self._renew_threshold

    def generate_session_token(self) -> str:
        """Mint a new bearer token (caller must securely transmit this)."""
        return self._minter.generate_token()

    def create_session(self, raw_token: str, user_id: str) -> Session:
        """
        Create a new session for a user.

        Args:
            raw_token: Bearer token already handed to (or about to be sent
                to) the client
            user_id: Owning user

        Returns:
            The stored Session

        Raises:
            StoreWriteError: If the session cannot be persisted
        """
        if not raw_token:
            raise ValueError("Session token cannot be empty")

        now = self._clock()
        session = Session(
            id=self._minter.derive_identifier(raw_token),
            user_id=user_id,
            created_at=now,
            expires_at=now + self._lifetime,
        )
        self._store.put(session.id, session)

        _log.info("Session %s created for user %s", _short(session.id), user_id)
        self._record("SESSION_CREATED", "Session created", user_id, session.id)
        return session

    def validate(self, raw_token: str) -> SessionValidationResult:
        """
        Validate a bearer token, renewing the session when it nears expiry.

        Never raises for an unknown, expired or unreadable session; all of
        those produce the empty result.
        """
        empty = SessionValidationResult.empty()
        if not raw_token or not isinstance(raw_token, str):
            return empty

        now = self._clock()
        try:
            session = self._load_live(raw_token, now)
        except SessionError:
            # Missing and expired look the same to the caller
            return empty
        except (StoreError, UnicodeError) as exc:
            _log.warning("Session lookup failed, denying access: %s", type(exc).__name__)
            return empty

        user: Any = session.user_id
        if self._user_loader is not None:
            try:
                user = self._user_loader(session.user_id)
            except StoreError as exc:
                _log.warning("User lookup failed, denying access: %s", type(exc).__name__)
                return empty
            if user is None:
                _log.info("Session %s belongs to unknown user", _short(session.id))
                return empty

        if session.expires_at < now + self._renew_threshold:
            session = self._renew(session, now)

        return SessionValidationResult(session=session, user=user)

    def _load_live(self, raw_token: str, now: datetime) -> Session:
        """
        Fetch the session behind a token, deleting it if it has expired.

        Raises:
            SessionNotFound: If no record exists
            SessionExpired: If the record is past its expiry
            StoreReadError: If the lookup fails
        """
        session = self._store.get(self._minter.derive_identifier(raw_token))
        if session is None:
            raise SessionNotFound("No such session")

        if session.is_expired(now):
            try:
                self._store.delete(session.id)
            except StoreError as exc:
                _log.error(
                    "Could not delete expired session %s: %s",
                    _short(session.id), type(exc).__name__,
                )
            _log.info("Session %s expired", _short(session.id))
            self._record("SESSION_EXPIRED", "Session expired", session.user_id, session.id)
            raise SessionExpired("Session expired")

        return session

    def _renew(self, session: Session, now: datetime) -> Session:
        """Slide the expiry forward; on persistent failure keep the old one."""
        new_expiry = now + self._lifetime
        last_error: Optional[StoreError] = None

        for _ in range(1 + self._renewal_retries):
            try:
                self._store.update_expiry(session.id, new_expiry)
            except StoreError as exc:
                last_error = exc
                continue
            _log.debug("Session %s renewed until %s", _short(session.id), new_expiry.isoformat())
            self._record("SESSION_RENEWED", "Session renewed", session.user_id, session.id)
            return replace(session, expires_at=new_expiry)

        # The old expiry is still in the future, so the session stays valid
        _log.warning(
            "Renewal of session %s failed after %d attempt(s): %s",
            _short(session.id), 1 + self._renewal_retries, type(last_error).__name__,
        )
        return session

    def require(self, raw_token: str) -> SessionValidationResult:
        """
        Like validate(), but raise when the token is not authenticated.

        Raises:
            SessionNotFound: For unknown and expired sessions alike
        """
        result = self.validate(raw_token)
        if not result:
            raise SessionNotFound("Not authenticated")
        return result

    def invalidate(self, session_id: str) -> None:
        """
        Invalidate a session (logout). Idempotent.

        Raises:
            StoreWriteError: If the store rejects the delete
        """
        self._store.delete(session_id)
        _log.info("Session %s invalidated", _short(session_id))

    def invalidate_all(self, user_id: str) -> int:
        """
        Invalidate all sessions for a user (logout everywhere).

        A raised StoreWriteError means invalidation is not guaranteed;
        callers may retry.

        Returns:
            Number of sessions removed
        """
        count = self._store.delete_all(user_id)
        _log.info("Invalidated %d session(s) for user %s", count, user_id)
        self._record(
            "SESSIONS_REVOKED", "All sessions revoked", user_id, None, {"count": count}
        )
        return count

    def _record(
        self,
        event: str,
        description: str,
        user_id: Optional[str],
        session_id: Optional[str],
        details: Optional[dict] = None,
    ) -> None:
        if self._audit is None:
            return
        severity = AuditSeverity.WARNING if event == "SESSIONS_REVOKED" else AuditSeverity.INFO
        try:
            self._audit.log(
                AuditEventType[event],
                severity,
                description,
                user_id=user_id,
                session_id=session_id,
                details=details,
            )
        except OSError as exc:
            _log.error("Audit write failed for %s: %s", event, exc)
