"""
NoteSafe Authentication Module
==============================

Provides:
- Argon2id password hashing with a dedicated worker pool
- Opaque bearer tokens stored only as SHA-256 digests
- Session lifecycle with sliding renewal
- Single-use anti-forgery tokens with background eviction

Security Properties:
- Memory-hard password hashing
- Constant-time verification
- Fail-closed session validation
- Atomic one-time token consumption
"""

from notesafe.core.auth.argon2_auth import (
    Argon2Hasher,
    HashingPool,
    hash_password,
    verify_password,
)
from notesafe.core.auth.authenticator import Authenticator, LoginResult
from notesafe.core.auth.csrf import EphemeralTokenStore
from notesafe.core.auth.exceptions import (
    AuthError,
    EntropyFailure,
    InvalidCredentials,
    MalformedCredential,
    SessionExpired,
    SessionNotFound,
    StoreReadError,
    StoreWriteError,
)
from notesafe.core.auth.session_control import (
    Session,
    SessionManager,
    SessionStore,
    SessionValidationResult,
)
from notesafe.core.auth.tokens import TokenMinter

__all__ = [
    "Argon2Hasher",
    "HashingPool",
    "hash_password",
    "verify_password",
    "Authenticator",
    "LoginResult",
    "EphemeralTokenStore",
    "AuthError",
    "EntropyFailure",
    "InvalidCredentials",
    "MalformedCredential",
    "SessionExpired",
    "SessionNotFound",
    "StoreReadError",
    "StoreWriteError",
    "Session",
    "SessionManager",
    "SessionStore",
    "SessionValidationResult",
    "TokenMinter",
]
