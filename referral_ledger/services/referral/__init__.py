"""Referral services."""

from referral_ledger.services.referral.lifecycle import ReferralLifecycle
from referral_ledger.services.referral.registry import ReferralRegistry

__all__ = ["ReferralLifecycle", "ReferralRegistry"]
