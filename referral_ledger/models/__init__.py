"""
Database models.

Importing this package registers every table on Base.metadata.
"""

from referral_ledger.models.base import Base
from referral_ledger.models.daily_gift import DailyGift
from referral_ledger.models.deposit_request import DepositRequest
from referral_ledger.models.enums import (
    DepositStatus,
    GiftSource,
    InvestmentStatus,
    InvitationStatus,
    ReferralStatus,
    TransactionCategory,
    TransactionStatus,
    TransactionType,
)
from referral_ledger.models.gift_code import GiftCode, GiftCodeRedemption
from referral_ledger.models.investment import InvestmentProduct, UserInvestment
from referral_ledger.models.referral_acceptance import ReferralAcceptance
from referral_ledger.models.referral_bonus import ReferralBonus
from referral_ledger.models.referral_invitation import ReferralInvitation
from referral_ledger.models.transaction import Transaction
from referral_ledger.models.user import User

__all__ = [
    "Base",
    "DailyGift",
    "DepositRequest",
    "DepositStatus",
    "GiftCode",
    "GiftCodeRedemption",
    "GiftSource",
    "InvestmentProduct",
    "InvestmentStatus",
    "InvitationStatus",
    "ReferralAcceptance",
    "ReferralBonus",
    "ReferralInvitation",
    "ReferralStatus",
    "Transaction",
    "TransactionCategory",
    "TransactionStatus",
    "TransactionType",
    "User",
]
