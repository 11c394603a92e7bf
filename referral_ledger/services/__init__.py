"""
Business services.

Referral lifecycle, reward ledger and the flows that drive them.
"""

from referral_ledger.services.balance_store import BalanceStore
from referral_ledger.services.base_service import BaseService, ServiceResult
from referral_ledger.services.daily_accrual_scheduler import (
    AccrualSummary,
    DailyAccrualScheduler,
)
from referral_ledger.services.deposit_service import DepositApproval, DepositService
from referral_ledger.services.income_service import IncomeBreakdown, IncomeService
from referral_ledger.services.investment_service import InvestmentService
from referral_ledger.services.referral import ReferralLifecycle, ReferralRegistry
from referral_ledger.services.reward import BonusOutcome, RewardLedger

__all__ = [
    "AccrualSummary",
    "BalanceStore",
    "BaseService",
    "BonusOutcome",
    "DailyAccrualScheduler",
    "DepositApproval",
    "DepositService",
    "IncomeBreakdown",
    "IncomeService",
    "InvestmentService",
    "ReferralLifecycle",
    "ReferralRegistry",
    "RewardLedger",
    "ServiceResult",
]
