"""
Daily gift repository.

Data access layer for DailyGift model.
"""

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from referral_ledger.models.daily_gift import DailyGift
from referral_ledger.repositories.base import BaseRepository


class DailyGiftRepository(BaseRepository[DailyGift]):
    """Daily gift repository."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize daily gift repository."""
        super().__init__(DailyGift, session)

    async def mark_collected(
        self, gift_id: int, user_id: int, collected_at: datetime
    ) -> int:
        """
        Flip is_collected for an uncollected gift of this user.

        The is_collected = false predicate is the guard against double
        collection; a second caller updates zero rows.

        Returns:
            Number of rows updated
        """
        stmt = (
            update(DailyGift)
            .where(
                DailyGift.id == gift_id,
                DailyGift.user_id == user_id,
                DailyGift.is_collected.is_(False),
            )
            .values(is_collected=True, collected_at=collected_at)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount

    async def get_available(self, user_id: int, today: date) -> list[DailyGift]:
        """Uncollected gifts dated today or earlier, oldest first."""
        stmt = (
            select(DailyGift)
            .where(
                DailyGift.user_id == user_id,
                DailyGift.is_collected.is_(False),
                DailyGift.gift_date <= today,
            )
            .order_by(DailyGift.gift_date, DailyGift.id)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def available_total(self, user_id: int, today: date) -> Decimal:
        """Sum of uncollected gifts dated today or earlier."""
        stmt = select(func.coalesce(func.sum(DailyGift.amount), 0)).where(
            DailyGift.user_id == user_id,
            DailyGift.is_collected.is_(False),
            DailyGift.gift_date <= today,
        )
        result = await self.session.execute(stmt)
        return Decimal(str(result.scalar() or 0))
