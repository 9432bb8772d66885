"""
Security Constants
==================

Defines security-related constants used throughout the application.
These values follow security best practices and should not be modified
without careful security review.
"""

from typing import Final

# Password Hashing (Argon2id)
ARGON2_ALGORITHM: Final[str] = "argon2id"
ARGON2_VERSION: Final[int] = 19
ARGON2_MEMORY_COST: Final[int] = 65536  # 64 MiB in KiB
ARGON2_TIME_COST: Final[int] = 3  # iterations
ARGON2_PARALLELISM: Final[int] = 2  # lanes
ARGON2_HASH_LENGTH: Final[int] = 32  # 256 bits
ARGON2_SALT_LENGTH: Final[int] = 16  # 128 bits
MIN_SALT_LENGTH: Final[int] = 16
HASHING_WORKERS: Final[int] = 4

# Opaque Tokens
TOKEN_BYTES: Final[int] = 20  # 160 bits

# Session Security
SESSION_LIFETIME_SECONDS: Final[int] = 30 * 24 * 60 * 60  # 30 days
SESSION_RENEW_THRESHOLD_SECONDS: Final[int] = 15 * 24 * 60 * 60  # 15 days
SESSION_RENEWAL_RETRIES: Final[int] = 1

# One-time (anti-forgery) Tokens
EPHEMERAL_TOKEN_TTL_SECONDS: Final[int] = 30 * 60  # 30 minutes
EPHEMERAL_SWEEP_INTERVAL_SECONDS: Final[int] = 10 * 60  # 10 minutes
