"""
Core module - Contains configuration, logging, errors and domain models.
"""

from credguard.core.config import SecureConfig
from credguard.core.logging import get_secure_logger, SecureLogFilter

__all__ = ["SecureConfig", "get_secure_logger", "SecureLogFilter"]
