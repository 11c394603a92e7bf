"""
Gift code models.

GiftCode is a shared redeemable code with a global use limit.
GiftCodeRedemption records one redemption per (user, code).
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
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from referral_ledger.models.base import Base


class GiftCode(Base):
    """Gift code - redeemable by many users up to max_uses."""

    __tablename__ = "gift_codes"
    __table_args__ = (
        CheckConstraint('amount > 0', name='check_gift_code_amount_positive'),
        CheckConstraint('max_uses > 0', name='check_gift_code_max_uses_positive'),
        CheckConstraint(
            'current_uses >= 0 AND current_uses <= max_uses',
            name='check_gift_code_uses_in_range'
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    code: Mapped[str] = mapped_column(String(20), nullable=False, unique=True, index=True)
    amount: Mapped[Decimal] = mapped_column(DECIMAL(18, 8), nullable=False)
    max_uses: Mapped[int] = mapped_column(Integer, nullable=False, default=1000)
    current_uses: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_by: Mapped[str | None] = mapped_column(String(100), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC), nullable=False
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<GiftCode(code={self.code!r}, amount={self.amount}, "
            f"uses={self.current_uses}/{self.max_uses})>"
        )


class GiftCodeRedemption(Base):
    """Gift code redemption - one per user per code."""

    __tablename__ = "gift_code_redemptions"
    __table_args__ = (
        UniqueConstraint(
            'user_id', 'gift_code_id',
            name='uq_gift_code_redemptions_user_code'
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    gift_code_id: Mapped[int] = mapped_column(
        ForeignKey("gift_codes.id", ondelete="CASCADE"), nullable=False, index=True
    )
    amount: Mapped[Decimal] = mapped_column(DECIMAL(18, 8), nullable=False)

    redeemed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC), nullable=False
    )
