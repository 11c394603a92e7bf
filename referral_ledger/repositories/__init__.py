"""
Repositories.

Data access layer, one repository per model.
"""

from referral_ledger.repositories.daily_gift_repository import DailyGiftRepository
from referral_ledger.repositories.deposit_repository import DepositRequestRepository
from referral_ledger.repositories.gift_code_repository import (
    GiftCodeRedemptionRepository,
    GiftCodeRepository,
)
from referral_ledger.repositories.investment_repository import (
    InvestmentProductRepository,
    UserInvestmentRepository,
)
from referral_ledger.repositories.referral_acceptance_repository import (
    ReferralAcceptanceRepository,
)
from referral_ledger.repositories.referral_bonus_repository import (
    ReferralBonusRepository,
)
from referral_ledger.repositories.referral_invitation_repository import (
    ReferralInvitationRepository,
)
from referral_ledger.repositories.transaction_repository import TransactionRepository
from referral_ledger.repositories.user_repository import UserRepository

__all__ = [
    "DailyGiftRepository",
    "DepositRequestRepository",
    "GiftCodeRedemptionRepository",
    "GiftCodeRepository",
    "InvestmentProductRepository",
    "ReferralAcceptanceRepository",
    "ReferralBonusRepository",
    "ReferralInvitationRepository",
    "TransactionRepository",
    "UserInvestmentRepository",
    "UserRepository",
]
