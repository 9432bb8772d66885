"""
Authentication Errors
=====================

Error taxonomy shared by the hashing, token, session and store layers.

Cryptographic and parsing errors are never recovered silently; store
errors are distinguishable from each other so callers can decide whether
to retry.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base exception for the credential and session subsystem."""
    pass


class MalformedCredential(AuthError, ValueError):
    """Raised when an encoded password hash cannot be parsed."""
    pass


class EntropyFailure(AuthError):
    """Raised when the system random source cannot deliver bytes."""
    pass


class StoreError(AuthError):
    """Base exception for session store failures."""
    pass


class StoreReadError(StoreError):
    """Raised when a session store lookup fails."""
    pass


class StoreWriteError(StoreError):
    """Raised when a session store mutation fails."""
    pass


class SessionError(AuthError):
    """Base exception for session errors."""
    pass


class SessionNotFound(SessionError):
    """Raised when no live session matches a token."""
    pass


class SessionExpired(SessionError):
    """Raised when a session has passed its expiry."""
    pass


class InvalidCredentials(AuthError):
    """Raised when a password does not match the stored hash."""
    pass
