"""
Exception handling utilities.

Defines the ledger error codes, the exception hierarchy raised by services
and the categories used to decide how an error is handled.
"""

from enum import Enum

from sqlalchemy.exc import DBAPIError, OperationalError


class ErrorCode(str, Enum):
    """Stable machine-readable error codes."""

    # Input validation
    INVALID_AMOUNT = "INVALID_AMOUNT"
    INVALID_CODE_FORMAT = "INVALID_CODE_FORMAT"
    INVALID_DURATION = "INVALID_DURATION"
    INVALID_TRANSACTION_ID = "INVALID_TRANSACTION_ID"

    # Lookups
    USER_NOT_FOUND = "USER_NOT_FOUND"
    REFERRAL_CODE_NOT_FOUND = "REFERRAL_CODE_NOT_FOUND"
    PRODUCT_NOT_FOUND = "PRODUCT_NOT_FOUND"
    DEPOSIT_NOT_FOUND = "DEPOSIT_NOT_FOUND"
    GIFT_NOT_FOUND = "GIFT_NOT_FOUND"
    GIFT_CODE_NOT_FOUND = "GIFT_CODE_NOT_FOUND"

    # Referral lifecycle
    SELF_REFERRAL = "SELF_REFERRAL"
    ALREADY_REFERRED = "ALREADY_REFERRED"
    REFERRER_LIMIT_REACHED = "REFERRER_LIMIT_REACHED"
    SUSPICIOUS_ACTIVITY = "SUSPICIOUS_ACTIVITY"
    NO_PENDING_REFERRAL = "NO_PENDING_REFERRAL"
    EXPIRED = "EXPIRED"
    ALREADY_ACCEPTED = "ALREADY_ACCEPTED"

    # First-deposit bonus
    REFERRAL_NOT_ACCEPTED = "REFERRAL_NOT_ACCEPTED"
    NOT_FIRST_DEPOSIT = "NOT_FIRST_DEPOSIT"
    BONUS_ALREADY_PAID = "BONUS_ALREADY_PAID"

    # Daily gifts
    GIFT_NOT_OWNED = "GIFT_NOT_OWNED"
    ALREADY_COLLECTED = "ALREADY_COLLECTED"

    # Gift codes
    GIFT_CODE_EXISTS = "GIFT_CODE_EXISTS"
    INSUFFICIENT_USES_REMAINING = "INSUFFICIENT_USES_REMAINING"
    ALREADY_REDEEMED = "ALREADY_REDEEMED"

    # Balance and deposits
    INSUFFICIENT_FUNDS = "INSUFFICIENT_FUNDS"
    DEPOSIT_ALREADY_PROCESSED = "DEPOSIT_ALREADY_PROCESSED"
    DUPLICATE_TRANSACTION = "DUPLICATE_TRANSACTION"

    # Infrastructure
    LOCK_TIMEOUT = "LOCK_TIMEOUT"
    STORAGE_ERROR = "STORAGE_ERROR"


class LedgerError(Exception):
    """
    Base class for all ledger errors.

    Args:
        code: Error code
        message: Human readable message
        persist: Commit the work done so far before reporting the error.
            Used when the failure itself is a state change, e.g. a
            referral found expired on accept.
    """

    def __init__(
        self, code: ErrorCode, message: str | None = None, *, persist: bool = False
    ) -> None:
        self.code = code
        self.message = message or code.value
        self.persist = persist
        super().__init__(self.message)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.code.value!r}, {self.message!r})"


class ValidationError(LedgerError):
    """Input rejected before any state was read."""


class ConflictError(LedgerError):
    """Operation rejected by the current state."""


class InsufficientFundsError(ConflictError):
    """Debit would take the balance below zero."""

    def __init__(self, message: str | None = None) -> None:
        super().__init__(ErrorCode.INSUFFICIENT_FUNDS, message)


class ConcurrencyTimeoutError(LedgerError):
    """Per-user lock was not acquired within the bounded wait."""

    def __init__(self, keys: tuple[int, ...], timeout: float) -> None:
        self.keys = keys
        self.timeout = timeout
        super().__init__(
            ErrorCode.LOCK_TIMEOUT,
            f"Could not lock users {list(keys)} within {timeout}s",
        )


class StorageError(LedgerError):
    """Underlying database failure; the transaction was rolled back."""

    def __init__(self, message: str | None = None) -> None:
        super().__init__(ErrorCode.STORAGE_ERROR, message)


# Exception categories based on handling strategy

# Expected outcomes - reported to the caller as failed results
EXPECTED_OUTCOMES = (
    ValidationError,
    ConflictError,
)

# Retryable - transient, safe to retry the whole operation
RETRYABLE = (
    ConcurrencyTimeoutError,
    OperationalError,  # Lock contention, connection drops
    DBAPIError,
)


def is_expected(exc: BaseException) -> bool:
    """
    Check if exception is an expected business outcome.

    Args:
        exc: Exception to check

    Returns:
        True if exception should become a failed result
    """
    return isinstance(exc, EXPECTED_OUTCOMES)


def is_retryable(exc: BaseException) -> bool:
    """
    Check if exception is transient.

    Args:
        exc: Exception to check

    Returns:
        True if the operation may be retried
    """
    if isinstance(exc, StorageError):
        return isinstance(exc.__cause__, RETRYABLE)
    return isinstance(exc, RETRYABLE)
