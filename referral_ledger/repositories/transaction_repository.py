"""
Transaction repository.

Append-only audit log.
"""

from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from referral_ledger.config.constants import SYSTEM_ACTOR
from referral_ledger.models.enums import (
    TransactionCategory,
    TransactionStatus,
    TransactionType,
)
from referral_ledger.models.transaction import Transaction
from referral_ledger.repositories.base import BaseRepository


class TransactionRepository(BaseRepository[Transaction]):
    """Transaction repository."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize transaction repository."""
        super().__init__(Transaction, session)

    async def append(
        self,
        user_id: int,
        type: TransactionType,
        category: TransactionCategory,
        amount: Decimal,
        description: str | None = None,
        related_user_id: int | None = None,
        processed_by: str = SYSTEM_ACTOR,
    ) -> Transaction:
        """
        Append a COMPLETED audit entry in the current transaction.

        Args:
            user_id: User whose balance changed
            type: Transaction type
            category: Transaction category
            amount: Signed amount (negative for debits)
            description: Free text
            related_user_id: Counterparty (e.g. the referred user)
            processed_by: Actor

        Returns:
            Created entry
        """
        return await self.create(
            user_id=user_id,
            type=type.value,
            category=category.value,
            amount=amount,
            description=description,
            related_user_id=related_user_id,
            status=TransactionStatus.COMPLETED.value,
            processed_by=processed_by,
        )

    async def sum_by_category(
        self, user_id: int, category: TransactionCategory
    ) -> Decimal:
        """Sum COMPLETED amounts of one category for a user."""
        stmt = select(func.coalesce(func.sum(Transaction.amount), 0)).where(
            Transaction.user_id == user_id,
            Transaction.category == category.value,
            Transaction.status == TransactionStatus.COMPLETED.value,
        )
        result = await self.session.execute(stmt)
        return Decimal(str(result.scalar() or 0))

    async def get_by_user(
        self, user_id: int, category: TransactionCategory | None = None
    ) -> list[Transaction]:
        """Get a user's audit entries, oldest first."""
        filters = {"user_id": user_id}
        if category:
            filters["category"] = category.value
        return await self.find_by(**filters)
