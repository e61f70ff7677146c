"""
Password Generation
===================

Generates secrets that satisfy a password policy's character classes.
All randomness comes from the OS CSPRNG via the secrets module.
"""

from __future__ import annotations

import secrets
import string
from typing import Final

from credguard.core.constants import MAX_PASSWORD_LENGTH, SPECIAL_CHARACTERS
from credguard.core.models import PasswordPolicyConfig

LOWERCASE: Final[str] = string.ascii_lowercase
UPPERCASE: Final[str] = string.ascii_uppercase
DIGITS: Final[str] = string.digits

_rng = secrets.SystemRandom()


def generate_password(
    length: int = 16,
    *,
    uppercase: bool = True,
    lowercase: bool = True,
    digits: bool = True,
    special: bool = True,
) -> str:
    """
    Generate a random password with at least one character per enabled class.

    Args:
        length: Total length
        uppercase: Include A-Z
        lowercase: Include a-z
        digits: Include 0-9
        special: Include punctuation

    Returns:
        The generated password

    Raises:
        ValueError: If no class is enabled or length is out of range
    """
    pools = [
        pool for enabled, pool in (
            (lowercase, LOWERCASE),
            (uppercase, UPPERCASE),
            (digits, DIGITS),
            (special, SPECIAL_CHARACTERS),
        ) if enabled
    ]
    if not pools:
        raise ValueError("At least one character class must be enabled")
    if length < len(pools) or length > MAX_PASSWORD_LENGTH:
        raise ValueError(
            f"Length must be between {len(pools)} and {MAX_PASSWORD_LENGTH}"
        )

    alphabet = "".join(pools)
    chars = [secrets.choice(pool) for pool in pools]
    chars.extend(secrets.choice(alphabet) for _ in range(length - len(chars)))
    _rng.shuffle(chars)
    return "".join(chars)


def generate_for_policy(config: PasswordPolicyConfig, length: int = 16) -> str:
    """Generate a password that satisfies every rule of a policy."""
    # The secure default requires every class; a policy that requires none
    # still gets a mixed alphabet.
    any_required = (
        config.require_uppercase or config.require_lowercase
        or config.require_numbers or config.require_special
    )
    return generate_password(
        max(length, config.min_length),
        uppercase=config.require_uppercase or not any_required,
        lowercase=config.require_lowercase or not any_required,
        digits=config.require_numbers or not any_required,
        special=config.require_special or not any_required,
    )
