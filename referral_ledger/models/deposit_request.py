"""
DepositRequest model.

A user deposit awaiting admin approval. Approval credits the balance and
may trigger the first-deposit referral bonus.
"""

from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import DECIMAL, CheckConstraint, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from referral_ledger.models.base import Base
from referral_ledger.models.enums import DepositStatus


class DepositRequest(Base):
    """Deposit request - PENDING until approved or rejected."""

    __tablename__ = "deposit_requests"
    __table_args__ = (
        CheckConstraint(
            'amount > 0', name='check_deposit_request_amount_positive'
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    amount: Mapped[Decimal] = mapped_column(DECIMAL(18, 8), nullable=False)
    # External payment reference; each one can back only one request
    transaction_id: Mapped[str | None] = mapped_column(
        String(100), nullable=True, unique=True
    )
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=DepositStatus.PENDING.value, index=True
    )
    admin_notes: Mapped[str | None] = mapped_column(String(500), nullable=True)
    processed_by: Mapped[str | None] = mapped_column(String(100), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC), nullable=False
    )
    processed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<DepositRequest(id={self.id}, user_id={self.user_id}, "
            f"amount={self.amount}, status={self.status})>"
        )
