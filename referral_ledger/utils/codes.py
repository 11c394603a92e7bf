"""
Code generation.

Random referral and gift codes drawn from a CSPRNG.
"""

import secrets

from referral_ledger.config.constants import (
    CODE_ALPHABET,
    GIFT_CODE_LENGTH,
    REFERRAL_CODE_LENGTH,
)


def generate_code(length: int) -> str:
    """
    Generate an uppercase alphanumeric code.

    Args:
        length: Number of characters

    Returns:
        Random code
    """
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


def generate_referral_code() -> str:
    """Generate a candidate referral code."""
    return generate_code(REFERRAL_CODE_LENGTH)


def generate_gift_code() -> str:
    """Generate a candidate gift code."""
    return generate_code(GIFT_CODE_LENGTH)
