"""
Investment models.

InvestmentProduct is the catalogue entry, UserInvestment a purchased position
that yields a fixed daily return until its end date.
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
    Index,
    Integer,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column

from referral_ledger.models.base import Base
from referral_ledger.models.enums import InvestmentStatus


class InvestmentProduct(Base):
    """Investment product - purchasable plan."""

    __tablename__ = "investment_products"
    __table_args__ = (
        CheckConstraint('price > 0', name='check_product_price_positive'),
        CheckConstraint(
            'daily_return_rate >= 0', name='check_product_rate_non_negative'
        ),
        CheckConstraint('duration_days > 0', name='check_product_duration_positive'),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    price: Mapped[Decimal] = mapped_column(DECIMAL(18, 8), nullable=False)
    # Fraction of price paid per day, e.g. 0.02 for 2%
    daily_return_rate: Mapped[Decimal] = mapped_column(DECIMAL(10, 6), nullable=False)
    duration_days: Mapped[int] = mapped_column(Integer, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC), nullable=False
    )


class UserInvestment(Base):
    """User investment - active position producing daily gifts."""

    __tablename__ = "user_investments"
    __table_args__ = (
        CheckConstraint('amount > 0', name='check_investment_amount_positive'),
        CheckConstraint(
            'daily_return >= 0', name='check_investment_daily_return_non_negative'
        ),
        Index('idx_user_investments_user_status', 'user_id', 'status'),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    product_id: Mapped[int] = mapped_column(
        ForeignKey("investment_products.id", ondelete="RESTRICT"), nullable=False
    )
    amount: Mapped[Decimal] = mapped_column(DECIMAL(18, 8), nullable=False)
    daily_return: Mapped[Decimal] = mapped_column(DECIMAL(18, 8), nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=InvestmentStatus.ACTIVE.value
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC), nullable=False
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<UserInvestment(id={self.id}, user_id={self.user_id}, "
            f"daily_return={self.daily_return}, status={self.status})>"
        )
