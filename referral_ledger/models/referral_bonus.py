"""
ReferralBonus model.

Witness row for the first-deposit bonus. The unique pair is what makes the
payout happen at most once per relationship.
"""

from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import (
    DECIMAL,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from referral_ledger.models.base import Base


class ReferralBonus(Base):
    """Referral bonus - one per (referrer, referred user)."""

    __tablename__ = "referral_bonuses"
    __table_args__ = (
        UniqueConstraint(
            'referrer_id', 'referred_user_id',
            name='uq_referral_bonuses_pair'
        ),
        CheckConstraint(
            'bonus_amount >= 0', name='check_referral_bonus_non_negative'
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    referrer_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    referred_user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    deposit_id: Mapped[int | None] = mapped_column(
        ForeignKey("deposit_requests.id", ondelete="SET NULL"), nullable=True
    )

    deposit_amount: Mapped[Decimal] = mapped_column(DECIMAL(18, 8), nullable=False)
    bonus_amount: Mapped[Decimal] = mapped_column(DECIMAL(18, 8), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC), nullable=False
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<ReferralBonus(referrer_id={self.referrer_id}, "
            f"referred_user_id={self.referred_user_id}, "
            f"bonus_amount={self.bonus_amount})>"
        )
