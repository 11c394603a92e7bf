"""
Deposit request repository.

Data access layer for DepositRequest model.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from referral_ledger.models.deposit_request import DepositRequest
from referral_ledger.models.enums import DepositStatus
from referral_ledger.repositories.base import BaseRepository


class DepositRequestRepository(BaseRepository[DepositRequest]):
    """Deposit request repository."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize deposit request repository."""
        super().__init__(DepositRequest, session)

    async def count_approved(self, user_id: int) -> int:
        """Count a user's APPROVED deposits, as seen by this transaction."""
        return await self.count(user_id=user_id, status=DepositStatus.APPROVED.value)

    async def close(
        self,
        deposit_id: int,
        status: DepositStatus,
        processed_at: datetime,
        processed_by: str,
        amount: Decimal | None = None,
        admin_notes: str | None = None,
    ) -> int:
        """
        Move a PENDING deposit to APPROVED or REJECTED.

        Args:
            deposit_id: Deposit ID
            status: Target status
            processed_at: Processing timestamp
            processed_by: Admin or system actor
            amount: Corrected amount, if the admin changed it
            admin_notes: Optional note

        Returns:
            Number of rows updated (0 if not PENDING any more)
        """
        values = {
            "status": status.value,
            "processed_at": processed_at,
            "processed_by": processed_by,
        }
        if amount is not None:
            values["amount"] = amount
        if admin_notes is not None:
            values["admin_notes"] = admin_notes

        stmt = (
            update(DepositRequest)
            .where(
                DepositRequest.id == deposit_id,
                DepositRequest.status == DepositStatus.PENDING.value,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount
