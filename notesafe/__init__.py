"""
NoteSafe - Credential and Session Security
==========================================

Password hashing, opaque session tokens with sliding expiry, and
single-use anti-forgery tokens for the NoteSafe backend.

Security Notice:
- No secrets are logged
- Only token digests are stored
- Fail-closed session validation
"""

from notesafe.core.config import SecureConfig
from notesafe.core.logging import configure_logging, get_secure_logger

__version__ = "0.1.0"
__author__ = "NoteSafe Team"

__all__ = ["SecureConfig", "configure_logging", "get_secure_logger", "__version__"]
