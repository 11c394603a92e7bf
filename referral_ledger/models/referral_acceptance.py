"""
ReferralAcceptance model.

One row per (referred user, referrer) attempt. A partial unique index keeps
at most one PENDING or ACCEPTED row per referred user.
"""

from datetime import UTC, datetime

from sqlalchemy import (
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from referral_ledger.models.base import Base
from referral_ledger.models.enums import ReferralStatus

_OPEN_STATUSES = text("status IN ('PENDING', 'ACCEPTED')")


class ReferralAcceptance(Base):
    """Referral acceptance - lifecycle record of a referral relationship."""

    __tablename__ = "referral_acceptances"
    __table_args__ = (
        UniqueConstraint(
            'referred_user_id', 'referrer_id',
            name='uq_referral_acceptances_pair'
        ),
        Index(
            'uq_referral_acceptances_open',
            'referred_user_id',
            unique=True,
            postgresql_where=_OPEN_STATUSES,
            sqlite_where=_OPEN_STATUSES,
        ),
        Index('idx_referral_acceptances_status_created', 'status', 'created_at'),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    referred_user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    referrer_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    # Normalized code as entered
    referral_code: Mapped[str] = mapped_column(String(20), nullable=False)

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ReferralStatus.PENDING.value
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC), nullable=False
    )
    processed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<ReferralAcceptance(id={self.id}, "
            f"referred_user_id={self.referred_user_id}, "
            f"referrer_id={self.referrer_id}, status={self.status})>"
        )
