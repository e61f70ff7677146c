"""
CredGuard - Credential Security Core
====================================

Encrypts stored secrets, enforces password policy, keeps secret history
for reuse prevention, drives scheduled and automatic rotation, and
screens secrets for breach exposure and similarity.

Security Notice:
- No secrets are logged
- Secret fields are stored only as envelopes
- Fail-fast on missing or placeholder key material in production
"""

from credguard.core.config import SecureConfig
from credguard.core.logging import get_secure_logger

__version__ = "0.1.0"

__all__ = ["SecureConfig", "get_secure_logger", "__version__"]
