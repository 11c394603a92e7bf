"""
DailyGift model.

Accrued daily return awaiting collection. At most one row per
(user, date, source); collection flips is_collected exactly once.
"""

from datetime import UTC, date, datetime
from decimal import Decimal

from sqlalchemy import (
    DECIMAL,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from referral_ledger.models.base import Base
from referral_ledger.models.enums import GiftSource


class DailyGift(Base):
    """Daily gift - one accrual per user per day per source."""

    __tablename__ = "daily_gifts"
    __table_args__ = (
        UniqueConstraint(
            'user_id', 'gift_date', 'source',
            name='uq_daily_gifts_user_date_source'
        ),
        CheckConstraint('amount > 0', name='check_daily_gift_amount_positive'),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    amount: Mapped[Decimal] = mapped_column(DECIMAL(18, 8), nullable=False)
    gift_date: Mapped[date] = mapped_column(Date, nullable=False)
    source: Mapped[str] = mapped_column(
        String(30), nullable=False, default=GiftSource.INVESTMENT_RETURN.value
    )
    is_collected: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC), nullable=False
    )
    collected_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<DailyGift(id={self.id}, user_id={self.user_id}, "
            f"gift_date={self.gift_date}, amount={self.amount}, "
            f"is_collected={self.is_collected})>"
        )
