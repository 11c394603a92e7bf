"""
Referral bonus repository.

Data access layer for ReferralBonus model.
"""

from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from referral_ledger.models.referral_bonus import ReferralBonus
from referral_ledger.repositories.base import BaseRepository


class ReferralBonusRepository(BaseRepository[ReferralBonus]):
    """Referral bonus repository."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize referral bonus repository."""
        super().__init__(ReferralBonus, session)

    async def is_paid(self, referrer_id: int, referred_user_id: int) -> bool:
        """Check if the bonus for this pair was already recorded."""
        return await self.exists(
            referrer_id=referrer_id, referred_user_id=referred_user_id
        )

    async def total_for_referrer(self, referrer_id: int) -> Decimal:
        """Sum of bonuses paid to a referrer."""
        stmt = select(
            func.coalesce(func.sum(ReferralBonus.bonus_amount), 0)
        ).where(ReferralBonus.referrer_id == referrer_id)
        result = await self.session.execute(stmt)
        return Decimal(str(result.scalar() or 0))
