"""
Model enums.

Status and type values stored as plain strings in the database.
"""

from enum import Enum


class ReferralStatus(str, Enum):
    """Referral acceptance lifecycle states."""

    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    EXPIRED = "EXPIRED"

    @property
    def is_terminal(self) -> bool:
        return self is not ReferralStatus.PENDING


class InvitationStatus(str, Enum):
    """Reporting status of an accepted referral relationship."""

    ACTIVE = "ACTIVE"


class DepositStatus(str, Enum):
    """Deposit request status."""

    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class InvestmentStatus(str, Enum):
    """User investment status."""

    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class GiftSource(str, Enum):
    """Origin of a daily gift."""

    INVESTMENT_RETURN = "INVESTMENT_RETURN"


class TransactionType(str, Enum):
    """Audit transaction type."""

    DEPOSIT = "DEPOSIT"
    REFERRAL = "REFERRAL"
    GIFT_CODE = "GIFT_CODE"
    DAILY_INCOME = "DAILY_INCOME"
    INVESTMENT = "INVESTMENT"


class TransactionCategory(str, Enum):
    """Audit transaction category."""

    DEPOSIT_APPROVED = "DEPOSIT_APPROVED"
    REFERRAL_BONUS = "REFERRAL_BONUS"
    GIFT_CODE_REDEMPTION = "GIFT_CODE_REDEMPTION"
    INVESTMENT_RETURN = "INVESTMENT_RETURN"
    PURCHASE = "PURCHASE"


class TransactionStatus(str, Enum):
    """Audit transaction status."""

    COMPLETED = "COMPLETED"
