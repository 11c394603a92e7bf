"""
Investment repositories.

Data access layer for InvestmentProduct and UserInvestment models.
"""

from datetime import date
from decimal import Decimal

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from referral_ledger.models.enums import InvestmentStatus
from referral_ledger.models.investment import InvestmentProduct, UserInvestment
from referral_ledger.repositories.base import BaseRepository


class InvestmentProductRepository(BaseRepository[InvestmentProduct]):
    """Investment product repository."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize investment product repository."""
        super().__init__(InvestmentProduct, session)

    async def get_active(self, product_id: int) -> InvestmentProduct | None:
        """Get a product if it is on sale."""
        return await self.get_by(id=product_id, is_active=True)


class UserInvestmentRepository(BaseRepository[UserInvestment]):
    """User investment repository."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize user investment repository."""
        super().__init__(UserInvestment, session)

    def _earning_on(self, on_date: date):
        return (
            UserInvestment.status == InvestmentStatus.ACTIVE.value,
            UserInvestment.daily_return > 0,
            UserInvestment.start_date <= on_date,
            UserInvestment.end_date > on_date,
        )

    async def daily_return_total(self, user_id: int, on_date: date) -> Decimal:
        """
        Sum daily returns of the user's positions earning on a date.

        Args:
            user_id: User ID
            on_date: Accrual date

        Returns:
            Total daily return (0 if none)
        """
        stmt = select(
            func.coalesce(func.sum(UserInvestment.daily_return), 0)
        ).where(UserInvestment.user_id == user_id, *self._earning_on(on_date))
        result = await self.session.execute(stmt)
        return Decimal(str(result.scalar() or 0))

    async def users_earning_on(self, on_date: date) -> list[int]:
        """IDs of users with at least one position earning on a date."""
        stmt = (
            select(UserInvestment.user_id)
            .where(*self._earning_on(on_date))
            .distinct()
            .order_by(UserInvestment.user_id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def complete_ended(self, on_date: date) -> int:
        """
        Mark ACTIVE positions whose end date has been reached COMPLETED.

        Returns:
            Number of positions completed
        """
        stmt = (
            update(UserInvestment)
            .where(
                UserInvestment.status == InvestmentStatus.ACTIVE.value,
                UserInvestment.end_date <= on_date,
            )
            .values(status=InvestmentStatus.COMPLETED.value)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount
