"""
Referral acceptance repository.

Data access layer for ReferralAcceptance model.
"""

from datetime import datetime

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from referral_ledger.models.enums import ReferralStatus
from referral_ledger.models.referral_acceptance import ReferralAcceptance
from referral_ledger.repositories.base import BaseRepository


class ReferralAcceptanceRepository(BaseRepository[ReferralAcceptance]):
    """Referral acceptance repository with lifecycle queries."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize referral acceptance repository."""
        super().__init__(ReferralAcceptance, session)

    async def get_pending_for_update(
        self, referred_user_id: int
    ) -> ReferralAcceptance | None:
        """
        Get the user's PENDING row with a row lock.

        Args:
            referred_user_id: Referred user ID

        Returns:
            Locked PENDING row or None
        """
        stmt = (
            select(ReferralAcceptance)
            .where(
                ReferralAcceptance.referred_user_id == referred_user_id,
                ReferralAcceptance.status == ReferralStatus.PENDING.value,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_status(
        self, referred_user_id: int, status: ReferralStatus
    ) -> ReferralAcceptance | None:
        """Get the user's row in the given state (at most one PENDING/ACCEPTED)."""
        stmt = (
            select(ReferralAcceptance)
            .where(
                ReferralAcceptance.referred_user_id == referred_user_id,
                ReferralAcceptance.status == status.value,
            )
            .order_by(ReferralAcceptance.id.desc())
            .limit(1)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def has_open(self, referred_user_id: int) -> bool:
        """Check for a PENDING or ACCEPTED row."""
        stmt = select(func.count()).select_from(ReferralAcceptance).where(
            ReferralAcceptance.referred_user_id == referred_user_id,
            ReferralAcceptance.status.in_(
                (ReferralStatus.PENDING.value, ReferralStatus.ACCEPTED.value)
            ),
        )
        result = await self.session.execute(stmt)
        return (result.scalar() or 0) > 0

    async def transition(
        self,
        acceptance_id: int,
        from_status: ReferralStatus,
        to_status: ReferralStatus,
        processed_at: datetime,
    ) -> int:
        """
        Move a row between states if it is still in from_status.

        Args:
            acceptance_id: Row ID
            from_status: Required current state
            to_status: New state
            processed_at: Transition timestamp

        Returns:
            Number of rows updated
        """
        stmt = (
            update(ReferralAcceptance)
            .where(
                ReferralAcceptance.id == acceptance_id,
                ReferralAcceptance.status == from_status.value,
            )
            .values(status=to_status.value, processed_at=processed_at)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount

    async def expire_created_before(self, cutoff: datetime, now: datetime) -> int:
        """
        Bulk-expire PENDING rows created before cutoff.

        Returns:
            Number of rows expired
        """
        stmt = (
            update(ReferralAcceptance)
            .where(
                ReferralAcceptance.status == ReferralStatus.PENDING.value,
                ReferralAcceptance.created_at < cutoff,
            )
            .values(status=ReferralStatus.EXPIRED.value, processed_at=now)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount

    async def count_accepted_by_referrer(self, referrer_id: int) -> int:
        """Count ACCEPTED referrals of a referrer."""
        return await self.count(
            referrer_id=referrer_id, status=ReferralStatus.ACCEPTED.value
        )

    async def count_created_since(self, referrer_id: int, since: datetime) -> int:
        """Count rows naming this referrer created at or after since."""
        stmt = select(func.count()).select_from(ReferralAcceptance).where(
            ReferralAcceptance.referrer_id == referrer_id,
            ReferralAcceptance.created_at >= since,
        )
        result = await self.session.execute(stmt)
        return result.scalar() or 0
