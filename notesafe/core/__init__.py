"""
Core module - Contains configuration, logging, and authentication components.
"""

from notesafe.core.config import SecureConfig
from notesafe.core.logging import SecureLogFilter, configure_logging, get_secure_logger

__all__ = ["SecureConfig", "SecureLogFilter", "configure_logging", "get_secure_logger"]
