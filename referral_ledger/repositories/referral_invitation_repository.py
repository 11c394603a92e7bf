"""
Referral invitation repository.

Data access layer for ReferralInvitation model.
"""

from sqlalchemy.ext.asyncio import AsyncSession

from referral_ledger.models.referral_invitation import ReferralInvitation
from referral_ledger.repositories.base import BaseRepository


class ReferralInvitationRepository(BaseRepository[ReferralInvitation]):
    """Referral invitation repository."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize referral invitation repository."""
        super().__init__(ReferralInvitation, session)

    async def get_by_referrer(self, referrer_id: int) -> list[ReferralInvitation]:
        """
        Get accepted relationships of a referrer.

        Args:
            referrer_id: Referrer user ID

        Returns:
            List of invitations, oldest first
        """
        return await self.find_by(referrer_id=referrer_id)
