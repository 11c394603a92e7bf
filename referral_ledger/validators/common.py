"""
Common validators for ledger input.

Each validator returns a tuple of (is_valid, parsed_value, error_message).
"""

import re
from decimal import Decimal, InvalidOperation

from referral_ledger.config.constants import (
    AMOUNT_QUANTUM,
    GIFT_CODE_PATTERN,
    REFERRAL_CODE_PATTERN,
    TRANSACTION_ID_MAX_LENGTH,
)

_REFERRAL_CODE_RE = re.compile(REFERRAL_CODE_PATTERN)
_GIFT_CODE_RE = re.compile(GIFT_CODE_PATTERN)


def normalize_code(value: str | None) -> str:
    """
    Normalize a user-entered code.

    Args:
        value: Raw code

    Returns:
        Trimmed, uppercased code ("" for None)

    Examples:
        >>> normalize_code("  abc123 ")
        'ABC123'
    """
    if value is None:
        return ""
    return value.strip().upper()


def validate_referral_code(value: str | None) -> tuple[bool, str | None, str | None]:
    """
    Validate referral code format.

    Args:
        value: Raw code

    Returns:
        Tuple of (is_valid, normalized_code, error_message)

    Examples:
        >>> validate_referral_code("ab12cd")
        (True, 'AB12CD', None)
        >>> validate_referral_code("a!")
        (False, None, 'Referral code must be 3-20 letters or digits')
    """
    code = normalize_code(value)
    if not code:
        return False, None, "Referral code cannot be empty"
    if not _REFERRAL_CODE_RE.match(code):
        return False, None, "Referral code must be 3-20 letters or digits"
    return True, code, None


def validate_gift_code(value: str | None) -> tuple[bool, str | None, str | None]:
    """
    Validate gift code format.

    Args:
        value: Raw code

    Returns:
        Tuple of (is_valid, normalized_code, error_message)
    """
    code = normalize_code(value)
    if not code:
        return False, None, "Gift code cannot be empty"
    if not _GIFT_CODE_RE.match(code):
        return False, None, "Gift code must be exactly 8 letters or digits"
    return True, code, None


def validate_amount(
    value: Decimal | int | str,
    allow_zero: bool = False,
    max_amount: Decimal | None = None,
) -> tuple[bool, Decimal | None, str | None]:
    """
    Validate a monetary amount.

    Floats are refused: they cannot represent most decimal amounts exactly.

    Args:
        value: Amount as Decimal, int or numeric string
        allow_zero: Accept zero
        max_amount: Optional inclusive upper bound

    Returns:
        Tuple of (is_valid, amount, error_message)

    Examples:
        >>> validate_amount("10.5")
        (True, Decimal('10.5'), None)
        >>> validate_amount(0)
        (False, None, 'Amount must be positive')
    """
    if isinstance(value, bool) or isinstance(value, float):
        return False, None, "Amount must be a Decimal, int or string"

    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return False, None, "Amount is not a number"

    if not amount.is_finite():
        return False, None, "Amount is not a number"

    if amount < 0 or (amount == 0 and not allow_zero):
        return False, None, "Amount must be positive"

    if amount.as_tuple().exponent < AMOUNT_QUANTUM.as_tuple().exponent:
        return False, None, "Amount has more than 8 decimal places"

    if max_amount is not None and amount > max_amount:
        return False, None, f"Amount exceeds maximum of {max_amount}"

    return True, amount, None


def validate_transaction_id(value: str | None) -> tuple[bool, str | None, str | None]:
    """
    Validate an external payment transaction ID.

    Case is preserved; only surrounding whitespace is dropped.

    Args:
        value: Raw transaction ID

    Returns:
        Tuple of (is_valid, transaction_id, error_message)
    """
    transaction_id = (value or "").strip()
    if not transaction_id:
        return False, None, "Transaction ID cannot be empty"
    if len(transaction_id) > TRANSACTION_ID_MAX_LENGTH:
        return False, None, (
            f"Transaction ID must be at most {TRANSACTION_ID_MAX_LENGTH} characters"
        )
    return True, transaction_id, None
