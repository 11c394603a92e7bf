"""Reward services."""

from referral_ledger.services.reward.daily_gifts import DailyGiftProcessor
from referral_ledger.services.reward.first_deposit_bonus import (
    BonusOutcome,
    FirstDepositBonusProcessor,
    calculate_bonus,
)
from referral_ledger.services.reward.gift_codes import GiftCodeProcessor
from referral_ledger.services.reward.ledger import RewardLedger

__all__ = [
    "BonusOutcome",
    "DailyGiftProcessor",
    "FirstDepositBonusProcessor",
    "GiftCodeProcessor",
    "RewardLedger",
    "calculate_bonus",
]
