"""
User model.

Represents a platform account with its balance and referral counters.
"""

from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import (
    DECIMAL,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column

from referral_ledger.models.base import Base


class User(Base):
    """User model - account holder, referrer and referred user."""

    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint(
            'balance >= 0', name='check_user_balance_non_negative'
        ),
        CheckConstraint(
            'referral_earnings >= 0',
            name='check_user_referral_earnings_non_negative'
        ),
        CheckConstraint(
            'total_daily_income_collected >= 0',
            name='check_user_daily_income_non_negative'
        ),
        CheckConstraint(
            'total_referrals >= 0',
            name='check_user_total_referrals_non_negative'
        ),
    )

    # Primary key
    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )

    username: Mapped[str | None] = mapped_column(
        String(255), nullable=True, index=True
    )
    # Issued once, never reassigned
    referral_code: Mapped[str | None] = mapped_column(
        String(20), nullable=True, unique=True, index=True
    )

    # Set at most once, on referral acceptance
    referred_by_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )

    # Balances
    balance: Mapped[Decimal] = mapped_column(
        DECIMAL(18, 8), default=Decimal("0"), nullable=False
    )
    referral_earnings: Mapped[Decimal] = mapped_column(
        DECIMAL(18, 8), default=Decimal("0"), nullable=False
    )
    total_daily_income_collected: Mapped[Decimal] = mapped_column(
        DECIMAL(18, 8), default=Decimal("0"), nullable=False
    )

    # Referral counters
    total_referrals: Mapped[int] = mapped_column(
        Integer, default=0, nullable=False
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean, default=True, nullable=False
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
        nullable=False
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<User(id={self.id}, referral_code={self.referral_code!r}, "
            f"balance={self.balance})>"
        )
