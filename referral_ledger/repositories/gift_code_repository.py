"""
Gift code repositories.

Data access layer for GiftCode and GiftCodeRedemption models.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from referral_ledger.models.gift_code import GiftCode, GiftCodeRedemption
from referral_ledger.repositories.base import BaseRepository


class GiftCodeRepository(BaseRepository[GiftCode]):
    """Gift code repository."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize gift code repository."""
        super().__init__(GiftCode, session)

    async def get_by_code(self, code: str) -> GiftCode | None:
        """Get gift code by its normalized code."""
        return await self.get_by(code=code)

    async def consume_use(self, gift_code_id: int, now: datetime) -> int:
        """
        Take one use of a code that is active, unexpired and not exhausted.

        The conditions are re-checked by the UPDATE itself, so two
        concurrent redemptions of the last use cannot both succeed.

        Returns:
            Number of rows updated
        """
        stmt = (
            update(GiftCode)
            .where(
                GiftCode.id == gift_code_id,
                GiftCode.is_active.is_(True),
                GiftCode.expires_at > now,
                GiftCode.current_uses < GiftCode.max_uses,
            )
            .values(current_uses=GiftCode.current_uses + 1)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount

    async def deactivate_expired(self, now: datetime) -> int:
        """
        Flip active codes past their expiry to inactive.

        Returns:
            Number of codes deactivated
        """
        stmt = (
            update(GiftCode)
            .where(GiftCode.is_active.is_(True), GiftCode.expires_at <= now)
            .values(is_active=False)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount


class GiftCodeRedemptionRepository(BaseRepository[GiftCodeRedemption]):
    """Gift code redemption repository."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize gift code redemption repository."""
        super().__init__(GiftCodeRedemption, session)

    async def has_redeemed(self, user_id: int, gift_code_id: int) -> bool:
        """Check if the user already redeemed this code."""
        return await self.exists(user_id=user_id, gift_code_id=gift_code_id)

    async def get_history(
        self, user_id: int, limit: int = 50
    ) -> list[tuple[GiftCodeRedemption, str]]:
        """
        Get a user's redemptions with their codes, newest first.

        Returns:
            List of (redemption, code) tuples
        """
        stmt = (
            select(GiftCodeRedemption, GiftCode.code)
            .join(GiftCode, GiftCode.id == GiftCodeRedemption.gift_code_id)
            .where(GiftCodeRedemption.user_id == user_id)
            .order_by(GiftCodeRedemption.redeemed_at.desc(), GiftCodeRedemption.id.desc())
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return [(row[0], row[1]) for row in result.all()]

    async def total_for_user(self, user_id: int) -> Decimal:
        """Sum of amounts redeemed by a user."""
        stmt = select(
            func.coalesce(func.sum(GiftCodeRedemption.amount), 0)
        ).where(GiftCodeRedemption.user_id == user_id)
        result = await self.session.execute(stmt)
        return Decimal(str(result.scalar() or 0))
