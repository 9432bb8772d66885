"""
Argon2id Password Hashing
=========================

Implements secure password hashing using Argon2id.

Security Properties:
- Memory-hard (resistant to GPU/ASIC attacks)
- Time-hard (configurable iterations)
- Fresh random salt per hash
- Self-describing, versioned encoding
- Constant-time verification

Encoding:
    $argon2id$v=19$m=<memory_kib>,t=<iterations>,p=<parallelism>$<salt>$<key>

Salt and key use standard base64 without padding. Verification always
reads the cost parameters from the encoded string, so hashes created
under older settings keep verifying after the defaults change.

Hashing is deliberately slow; use HashingPool to keep it off any
latency-sensitive thread or event loop.

References:
- RFC 9106: Argon2 Memory-Hard Function
- OWASP Password Storage Cheat Sheet
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import ctypes
import logging
import re
import secrets
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Final, Optional

from argon2.exceptions import HashingError
from argon2.low_level import Type, hash_secret_raw

from notesafe.core.auth.exceptions import EntropyFailure, MalformedCredential
from notesafe.security.constants import (
    ARGON2_ALGORITHM,
    ARGON2_HASH_LENGTH,
    ARGON2_MEMORY_COST,
    ARGON2_PARALLELISM,
    ARGON2_SALT_LENGTH,
    ARGON2_TIME_COST,
    ARGON2_VERSION,
    HASHING_WORKERS,
    MIN_SALT_LENGTH,
)


_SUPPORTED_VERSIONS: Final[frozenset[int]] = frozenset({0x10, ARGON2_VERSION})
_PARAMS_RE: Final[re.Pattern[str]] = re.compile(r"^m=(\d+),t=(\d+),p=(\d+)$")
_VERSION_RE: Final[re.Pattern[str]] = re.compile(r"^v=(\d+)$")

# Upper bounds of the argon2 reference implementation
_MAX_COST: Final[int] = 0xFFFFFFFF
_MAX_LANES: Final[int] = 0xFFFFFF

_log = logging.getLogger("notesafe.auth.hashing")


@dataclass(frozen=True, slots=True)
class EncodedHash:
    """
    Parsed form of an encoded password hash.

    Attributes:
        algorithm: Algorithm tag (always "argon2id")
        version: Argon2 version number
        memory_cost: Memory usage in KiB
        time_cost: Number of iterations
        parallelism: Degree of parallelism
        salt: Raw salt bytes
        key: Raw derived key bytes
        canonical: False when a base64 segment carried stray padding bits
    """
    algorithm: str
    version: int
    memory_cost: int
    time_cost: int
    parallelism: int
    salt: bytes
    key: bytes
    canonical: bool = True

    def __repr__(self) -> str:
        """Safe representation without salt or key."""
        return (
            f"EncodedHash(algorithm={self.algorithm!r}, v={self.version}, "
            f"m={self.memory_cost}, t={self.time_cost}, p={self.parallelism})"
        )


def _b64encode(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii").rstrip("=")


def _b64decode(segment: str, what: str) -> tuple[bytes, bool]:
    if not segment:
        raise MalformedCredential(f"Empty {what} segment")
    try:
        data = base64.b64decode(segment + "=" * (-len(segment) % 4), validate=True)
    except (binascii.Error, ValueError) as exc:
        raise MalformedCredential(f"Invalid base64 in {what} segment") from exc
    # Only the unused low bits of the last character can differ here
    return data, _b64encode(data) == segment


def parse_encoded(encoded: str) -> EncodedHash:
    """
    Parse an encoded Argon2id hash string.

    Args:
        encoded: String in the $argon2id$v=..$m=..,t=..,p=..$salt$key format

    Returns:
        EncodedHash with every embedded parameter

    Raises:
        MalformedCredential: If the structure, tag, version or any
            segment is not recognised
    """
    if not isinstance(encoded, str):
        raise MalformedCredential("Encoded hash must be a string")

    parts = encoded.split("$")
    if len(parts) != 6 or parts[0] != "":
        raise MalformedCredential("Invalid hash format")

    _, algorithm, version_part, params_part, salt_part, key_part = parts

    if algorithm != ARGON2_ALGORITHM:
        raise MalformedCredential(f"Unsupported hash algorithm: {algorithm!r}")

    version_match = _VERSION_RE.match(version_part)
    if not version_match:
        raise MalformedCredential("Invalid version segment")
    version = int(version_match.group(1))
    if version not in _SUPPORTED_VERSIONS:
        raise MalformedCredential(f"Unsupported argon2 version: {version}")

    params_match = _PARAMS_RE.match(params_part)
    if not params_match:
        raise MalformedCredential("Invalid parameter segment")
    memory_cost, time_cost, parallelism = (int(g) for g in params_match.groups())
    if memory_cost < 1 or time_cost < 1 or parallelism < 1:
        raise MalformedCredential("Cost parameters must be positive")
    if memory_cost > _MAX_COST or time_cost > _MAX_COST or parallelism > _MAX_LANES:
        raise MalformedCredential("Cost parameters out of range")

    salt, salt_canonical = _b64decode(salt_part, "salt")
    key, key_canonical = _b64decode(key_part, "key")

    return EncodedHash(
        algorithm=algorithm,
        version=version,
        memory_cost=memory_cost,
        time_cost=time_cost,
        parallelism=parallelism,
        salt=salt,
        key=key,
        canonical=salt_canonical and key_canonical,
    )


def constant_time_equals(a: bytes, b: bytes) -> bool:
    """
    Compare two byte strings without a data-dependent early exit.

    Every byte pair is visited and folded into one accumulator, so the
    running time depends only on the length.
    """
    if len(a) != len(b):
        return False

    result = 0
    for x, y in zip(a, b):
        result |= x ^ y
    return result == 0


def _secure_zero_memory(data: bytearray) -> None:
    """
    Overwrite a mutable password buffer.

    Best-effort only: the immutable copies Python hands to the KDF may
    survive until garbage collection.
    """
    if data:
        ctypes.memset(ctypes.addressof((ctypes.c_char * len(data)).from_buffer(data)), 0, len(data))


class Argon2Hasher:
    """
    Argon2id password hasher with secure defaults.

    Usage:
        hasher = Argon2Hasher()

        encoded = hasher.hash("user_password")
        store(encoded)

        is_valid = hasher.verify(stored_encoded, "user_password")

    Security Notes:
        - The hasher holds no mutable state; one instance may be shared
          by any number of threads
        - Parameters embedded in a stored hash always win over the
          instance defaults during verification
    """

    __slots__ = (
        "_memory_cost", "_time_cost", "_parallelism",
        "_hash_length", "_salt_length",
    )

    def __init__(
        self,
        memory_cost: int = ARGON2_MEMORY_COST,
        time_cost: int = ARGON2_TIME_COST,
        parallelism: int = ARGON2_PARALLELISM,
        hash_length: int = ARGON2_HASH_LENGTH,
        salt_length: int = ARGON2_SALT_LENGTH,
    ) -> None:
        """
        Initialize the Argon2id hasher.

        Args:
            memory_cost: Memory usage in KiB (default: 65536 = 64 MiB)
            time_cost: Number of iterations (default: 3)
            parallelism: Degree of parallelism (default: 2)
            hash_length: Output key length in bytes (default: 32)
            salt_length: Salt length in bytes (default: 16)
        """
        if parallelism < 1:
            raise ValueError("parallelism must be at least 1")
        if memory_cost < 8 * parallelism:
            raise ValueError("memory_cost must be at least 8 KiB per lane")
        if time_cost < 1:
            raise ValueError("time_cost must be at least 1")
        if hash_length < 16:
            raise ValueError("hash_length must be at least 16 bytes")
        if salt_length < MIN_SALT_LENGTH:
            raise ValueError(f"salt_length must be at least {MIN_SALT_LENGTH} bytes")

        self._memory_cost = memory_cost
        self._time_cost = time_cost
        self._parallelism = parallelism
        self._hash_length = hash_length
        self._salt_length = salt_length

    @property
    def parameters(self) -> dict[str, int]:
        """Get current hashing parameters."""
        return {
            "memory_cost": self._memory_cost,
            "time_cost": self._time_cost,
            "parallelism": self._parallelism,
            "hash_length": self._hash_length,
            "salt_length": self._salt_length,
        }

    def hash(self, password: str) -> str:
        """
        Hash a password using Argon2id.

        Args:
            password: The password to hash

        Returns:
            Encoded hash string for storage

        Raises:
            ValueError: If the password is empty
            EntropyFailure: If the random source fails
        """
        if not password:
            raise ValueError("Password cannot be empty")

        try:
            salt = secrets.token_bytes(self._salt_length)
        except (OSError, NotImplementedError) as exc:
            raise EntropyFailure("Random source unavailable for salt generation") from exc

        password_bytes = bytearray(password.encode("utf-8"))
        try:
            key = hash_secret_raw(
                secret=bytes(password_bytes),
                salt=salt,
                time_cost=self._time_cost,
                memory_cost=self._memory_cost,
                parallelism=self._parallelism,
                hash_len=self._hash_length,
                type=Type.ID,
                version=ARGON2_VERSION,
            )
        finally:
            _secure_zero_memory(password_bytes)

        return (
            f"${ARGON2_ALGORITHM}$v={ARGON2_VERSION}"
            f"$m={self._memory_cost},t={self._time_cost},p={self._parallelism}"
            f"${_b64encode(salt)}${_b64encode(key)}"
        )

    def verify(self, encoded: str, password: str) -> bool:
        """
        Verify a password against an encoded hash.

        Args:
            encoded: The encoded hash string from storage
            password: The password to verify

        Returns:
            True if the password matches, False otherwise

        Raises:
            MalformedCredential: If the encoded string cannot be parsed
        """
        parsed = parse_encoded(encoded)
        if not password:
            return False

        password_bytes = bytearray(password.encode("utf-8"))
        try:
            derived = hash_secret_raw(
                secret=bytes(password_bytes),
                salt=parsed.salt,
                time_cost=parsed.time_cost,
                memory_cost=parsed.memory_cost,
                parallelism=parsed.parallelism,
                hash_len=len(parsed.key),
                type=Type.ID,
                version=parsed.version,
            )
        except HashingError as exc:
            # Parameters parsed cleanly but argon2 refuses them (e.g. salt too short)
            raise MalformedCredential(f"Unusable hash parameters: {exc}") from exc
        finally:
            _secure_zero_memory(password_bytes)

        matches = constant_time_equals(derived, parsed.key)
        # An altered spelling of the stored hash is a tampered hash
        return matches and parsed.canonical

    def needs_rehash(self, encoded: str) -> bool:
        """
        Check if a hash was created with parameters other than the current ones.

        Raises:
            MalformedCredential: If the encoded string cannot be parsed
        """
        parsed = parse_encoded(encoded)
        return (
            parsed.version != ARGON2_VERSION
            or parsed.memory_cost != self._memory_cost
            or parsed.time_cost != self._time_cost
            or parsed.parallelism != self._parallelism
            or len(parsed.key) != self._hash_length
            or len(parsed.salt) != self._salt_length
        )

    def __repr__(self) -> str:
        return (
            f"Argon2Hasher(m={self._memory_cost}, t={self._time_cost}, "
            f"p={self._parallelism})"
        )


class HashingPool:
    """
    Dedicated worker pool for password hashing.

    Hashing and verification are CPU and memory bound; running them here
    keeps request threads and asyncio event loops responsive. Abandoning
    a returned future is harmless since the hasher shares no state.

    Usage:
        with HashingPool(Argon2Hasher()) as pool:
            encoded = pool.submit_hash("secret").result()

        # from a coroutine
        ok = await pool.verify_async(encoded, "secret")
    """

    __slots__ = ("_hasher", "_executor")

    def __init__(
        self,
        hasher: Optional[Argon2Hasher] = None,
        max_workers: int = HASHING_WORKERS,
    ) -> None:
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self._hasher = hasher or Argon2Hasher()
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix="notesafe-hash",
        )

    @property
    def hasher(self) -> Argon2Hasher:
        return self._hasher

    def submit_hash(self, password: str) -> Future[str]:
        return self._executor.submit(self._hasher.hash, password)

    def submit_verify(self, encoded: str, password: str) -> Future[bool]:
        return self._executor.submit(self._hasher.verify, encoded, password)

    async def hash_async(self, password: str) -> str:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, self._hasher.hash, password)

    async def verify_async(self, encoded: str, password: str) -> bool:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            self._executor, self._hasher.verify, encoded, password
        )

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting work; optionally wait for in-flight hashes."""
        self._executor.shutdown(wait=wait, cancel_futures=not wait)
        _log.debug("Hashing pool shut down")

    def __enter__(self) -> HashingPool:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()


# Convenience functions
_default_hasher: Optional[Argon2Hasher] = None


def _get_hasher() -> Argon2Hasher:
    """Get or create default hasher instance."""
    global _default_hasher
    if _default_hasher is None:
        _default_hasher = Argon2Hasher()
    return _default_hasher


def hash_password(password: str) -> str:
    """
    Hash a password using Argon2id with secure defaults.

    Returns:
        Encoded hash string for storage
    """
    return _get_hasher().hash(password)


def verify_password(encoded: str, password: str) -> bool:
    """
    Verify a password against a stored hash.

    Returns:
        True if password matches, False otherwise
    """
    return _get_hasher().verify(encoded, password)
