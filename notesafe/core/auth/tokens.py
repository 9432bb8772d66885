"""
Opaque Tokens
=============

Random bearer tokens and the one-way identifiers derived from them.

A token is 160 random bits rendered in lowercase base32 without
padding (32 characters). Only its SHA-256 digest is ever stored, so a
leaked session table cannot be replayed as live sessions, and lookups
stay simple equality matches.
"""

from __future__ import annotations

import base64
import hashlib
import secrets
from typing import Final

from notesafe.core.auth.exceptions import EntropyFailure
from notesafe.security.constants import TOKEN_BYTES

# Digest length in hex characters
IDENTIFIER_LENGTH: Final[int] = 64


class TokenMinter:
    """
    Generates bearer tokens and derives their storage identifiers.

    Usage:
        minter = TokenMinter()
        token = minter.generate_token()          # hand to the client
        session_id = minter.derive_identifier(token)  # store this
    """

    __slots__ = ("_nbytes",)

    def __init__(self, nbytes: int = TOKEN_BYTES) -> None:
        if nbytes < 16:
            raise ValueError("Tokens need at least 16 random bytes")
        self._nbytes = nbytes

    def generate_token(self) -> str:
        """
        Generate a cryptographically secure token.

        Raises:
            EntropyFailure: If the random source fails
        """
        try:
            raw = secrets.token_bytes(self._nbytes)
        except (OSError, NotImplementedError) as exc:
            raise EntropyFailure("Random source unavailable for token generation") from exc
        return base64.b32encode(raw).decode("ascii").rstrip("=").lower()

    @staticmethod
    def derive_identifier(token: str) -> str:
        """Hash a token for storage (lowercase hex SHA-256)."""
        return hashlib.sha256(token.encode("utf-8")).hexdigest()


_default_minter = TokenMinter()


def generate_token() -> str:
    return _default_minter.generate_token()


def derive_identifier(token: str) -> str:
    return TokenMinter.derive_identifier(token)
