"""
Transaction model.

Append-only audit entry written alongside every balance mutation.
"""

from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import DECIMAL, DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from referral_ledger.models.base import Base
from referral_ledger.models.enums import TransactionStatus


class Transaction(Base):
    """Transaction - audit log of balance changes."""

    __tablename__ = "transactions"
    __table_args__ = (
        Index('idx_transactions_user_category', 'user_id', 'category'),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    type: Mapped[str] = mapped_column(String(30), nullable=False)
    category: Mapped[str] = mapped_column(String(50), nullable=False)
    # Signed: debits are negative
    amount: Mapped[Decimal] = mapped_column(DECIMAL(18, 8), nullable=False)
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)
    related_user_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=TransactionStatus.COMPLETED.value
    )
    processed_by: Mapped[str | None] = mapped_column(String(100), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC), nullable=False
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<Transaction(id={self.id}, user_id={self.user_id}, "
            f"category={self.category}, amount={self.amount})>"
        )
