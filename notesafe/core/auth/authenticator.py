"""
Authentication Flows
====================

Login, logout and credential rotation built from the hasher, the
session manager and the one-time token store.

User records live elsewhere; callers pass in the user id and the
stored password hash they already loaded.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from notesafe.core.auth.argon2_auth import Argon2Hasher, HashingPool
from notesafe.core.auth.csrf import EphemeralTokenStore
from notesafe.core.auth.exceptions import InvalidCredentials
from notesafe.core.auth.session_control import Session, SessionManager, SessionStore
from notesafe.security.audit import AuditEventType, AuditSeverity, TamperAwareAuditLog

if TYPE_CHECKING:
    from notesafe.core.config import SecureConfig


_log = logging.getLogger("notesafe.auth")


@dataclass(frozen=True)
class LoginResult:
    """
    Successful login.

    Attributes:
        token: Raw bearer token for the client (never store it)
        session: Stored session record
        rehash: New encoded hash when the stored one used outdated
            parameters; the caller should persist it
    """
    token: str
    session: Session
    rehash: Optional[str] = None

    def __repr__(self) -> str:
        return f"LoginResult(session={self.session!r}, rehash={self.rehash is not None})"


class Authenticator:
    """
    Credential and session flows for request handlers.

    Usage:
        auth = Authenticator(pool, sessions, csrf_tokens)

        result = auth.login(user.id, user.password_hash, submitted_password)
        set_cookie("session", result.token)
        if result.rehash:
            users.update_password_hash(user.id, result.rehash)

        auth.logout(cookie_token)
        new_hash = auth.change_password(user.id, new_password)
    """

    __slots__ = ("_pool", "_sessions", "_csrf", "_audit")

    def __init__(
        self,
        pool: HashingPool,
        sessions: SessionManager,
        csrf: Optional[EphemeralTokenStore] = None,
        audit: Optional[TamperAwareAuditLog] = None,
    ) -> None:
        self._pool = pool
        self._sessions = sessions
        self._csrf = csrf
        self._audit = audit

    @classmethod
    def from_config(
        cls,
        config: SecureConfig,
        store: SessionStore,
        audit: Optional[TamperAwareAuditLog] = None,
    ) -> Authenticator:
        """
        Wire hasher, pool, session manager and token store from config.

        The returned token store is not started; call
        auth.csrf.start() and stop it on shutdown.
        """
        hashing = config.hashing
        hasher = Argon2Hasher(
            memory_cost=hashing.memory_cost,
            time_cost=hashing.time_cost,
            parallelism=hashing.parallelism,
            hash_length=hashing.hash_length,
            salt_length=hashing.salt_length,
        )
        pool = HashingPool(hasher, max_workers=hashing.workers)
        sessions = SessionManager.from_config(store, config.session, audit=audit)
        csrf = EphemeralTokenStore(
            ttl=config.tokens.ttl_seconds,
            sweep_interval=config.tokens.sweep_interval_seconds,
        )
        return cls(pool, sessions, csrf, audit)

    @property
    def sessions(self) -> SessionManager:
        return self._sessions

    @property
    def csrf(self) -> Optional[EphemeralTokenStore]:
        return self._csrf

    def close(self) -> None:
        """Stop the token sweeper and the hashing pool."""
        if self._csrf is not None:
            self._csrf.stop()
        self._pool.shutdown()

    def login(self, user_id: str, stored_hash: str, password: str) -> LoginResult:
        """
        Verify a password and open a session.

        Raises:
            InvalidCredentials: If the password does not match
            MalformedCredential: If the stored hash is corrupt
            StoreWriteError: If the session cannot be persisted
        """
        self._reject_unless(self._pool.submit_verify(stored_hash, password).result(), user_id)

        rehash: Optional[str] = None
        if self._pool.hasher.needs_rehash(stored_hash):
            rehash = self._pool.submit_hash(password).result()
            _log.info("Password hash for user %s upgraded to current parameters", user_id)

        return self._open_session(user_id, rehash)

    async def login_async(self, user_id: str, stored_hash: str, password: str) -> LoginResult:
        """
        Coroutine form of login(); hashing runs on the pool, not the loop.

        Session store calls are still made inline.
        """
        self._reject_unless(await self._pool.verify_async(stored_hash, password), user_id)

        rehash: Optional[str] = None
        if self._pool.hasher.needs_rehash(stored_hash):
            rehash = await self._pool.hash_async(password)
            _log.info("Password hash for user %s upgraded to current parameters", user_id)

        return self._open_session(user_id, rehash)

    def _reject_unless(self, matched: bool, user_id: str) -> None:
        if matched:
            return
        _log.info("Login failed for user %s", user_id)
        self._record(AuditEventType.LOGIN_FAILURE, AuditSeverity.WARNING, "Login failed", user_id)
        raise InvalidCredentials("Invalid credentials")

    def _open_session(self, user_id: str, rehash: Optional[str]) -> LoginResult:
        token = self._sessions.generate_session_token()
        session = self._sessions.create_session(token, user_id)
        self._record(AuditEventType.LOGIN_SUCCESS, AuditSeverity.INFO, "Login succeeded", user_id, session.id)
        return LoginResult(token=token, session=session, rehash=rehash)

    def logout(self, raw_token: str) -> bool:
        """
        End the session behind a bearer token.

        Returns:
            True if a live session was closed, False if there was none
        """
        result = self._sessions.validate(raw_token)
        if not result:
            return False

        self._sessions.invalidate(result.session.id)
        self._record(
            AuditEventType.LOGOUT, AuditSeverity.INFO, "Logged out",
            result.session.user_id, result.session.id,
        )
        return True

    def change_password(self, user_id: str, new_password: str) -> str:
        """
        Hash a new password and revoke every session of the user.

        Returns:
            Encoded hash for the caller to persist

        Raises:
            StoreWriteError: If revocation failed; sessions may survive
        """
        return self._revoke_for(user_id, self._pool.submit_hash(new_password).result())

    async def change_password_async(self, user_id: str, new_password: str) -> str:
        """Coroutine form of change_password()."""
        return self._revoke_for(user_id, await self._pool.hash_async(new_password))

    def _revoke_for(self, user_id: str, encoded: str) -> str:
        self._sessions.invalidate_all(user_id)
        self._record(AuditEventType.PASSWORD_CHANGED, AuditSeverity.WARNING, "Password changed", user_id)
        return encoded

    def issue_csrf_token(self) -> str:
        return self._require_csrf().issue()

    def check_csrf_token(self, token: str) -> bool:
        return self._require_csrf().consume(token)

    def _require_csrf(self) -> EphemeralTokenStore:
        if self._csrf is None:
            raise RuntimeError("No one-time token store configured")
        return self._csrf

    def _record(
        self,
        event_type: AuditEventType,
        severity: AuditSeverity,
        description: str,
        user_id: str,
        session_id: Optional[str] = None,
    ) -> None:
        if self._audit is None:
            return
        try:
            self._audit.log(event_type, severity, description, user_id=user_id, session_id=session_id)
        except OSError as exc:
            _log.error("Audit write failed for %s: %s", event_type.value, exc)
