"""
Income service.

Per-source breakdown of what a user has earned.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from referral_ledger.repositories.daily_gift_repository import DailyGiftRepository
from referral_ledger.repositories.gift_code_repository import (
    GiftCodeRedemptionRepository,
)
from referral_ledger.repositories.user_repository import UserRepository
from referral_ledger.services.base_service import BaseService
from referral_ledger.utils.datetime_utils import utc_today


@dataclass
class IncomeBreakdown:
    """Earnings by source. total excludes uncollected daily income."""

    referral_earnings: Decimal = Decimal("0")
    gift_code_earnings: Decimal = Decimal("0")
    daily_income_collected: Decimal = Decimal("0")
    daily_income_available: Decimal = Decimal("0")
    total: Decimal = Decimal("0")


class IncomeService(BaseService):
    """Read-only income reporting."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)
        self.users = UserRepository(session)
        self.redemptions = GiftCodeRedemptionRepository(session)
        self.gifts = DailyGiftRepository(session)

    async def get_breakdown(
        self, user_id: int, today: date | None = None
    ) -> IncomeBreakdown | None:
        """
        Get a user's income breakdown.

        Args:
            user_id: User ID
            today: Cut-off for available gifts (UTC today by default)

        Returns:
            IncomeBreakdown, or None if the user does not exist
        """
        user = await self.users.get_by_id(user_id)
        if user is None:
            return None

        breakdown = IncomeBreakdown(
            referral_earnings=user.referral_earnings,
            gift_code_earnings=await self.redemptions.total_for_user(user_id),
            daily_income_collected=user.total_daily_income_collected,
            daily_income_available=await self.gifts.available_total(
                user_id, today or utc_today()
            ),
        )
        breakdown.total = (
            breakdown.referral_earnings
            + breakdown.gift_code_earnings
            + breakdown.daily_income_collected
        )
        return breakdown
