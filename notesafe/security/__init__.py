"""
Security module - Constants and audit trail.

Security Considerations:
- Use only approved algorithms (Argon2id, SHA-256)
- Follow fail-closed design principles
- No custom cryptography implementations
"""

from notesafe.security.audit import (
    AuditEvent,
    AuditEventType,
    AuditSeverity,
    TamperAwareAuditLog,
)
from notesafe.security.constants import (
    ARGON2_MEMORY_COST,
    EPHEMERAL_TOKEN_TTL_SECONDS,
    SESSION_LIFETIME_SECONDS,
    SESSION_RENEW_THRESHOLD_SECONDS,
)

__all__ = [
    "AuditEvent",
    "AuditEventType",
    "AuditSeverity",
    "TamperAwareAuditLog",
    "ARGON2_MEMORY_COST",
    "EPHEMERAL_TOKEN_TTL_SECONDS",
    "SESSION_LIFETIME_SECONDS",
    "SESSION_RENEW_THRESHOLD_SECONDS",
]
