"""
First-deposit referral bonus.

Pays the referrer a share of the referred user's first approved deposit.
The ReferralBonus row for (referrer, referred user) is the witness that the
bonus was paid; it is inserted before the credit, so a second attempt finds
the witness and credits nothing.
"""

from dataclasses import dataclass
from decimal import ROUND_DOWN, Decimal

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from referral_ledger.config.constants import AMOUNT_QUANTUM
from referral_ledger.config.settings import settings
from referral_ledger.models.enums import (
    ReferralStatus,
    TransactionCategory,
    TransactionType,
)
from referral_ledger.repositories.deposit_repository import DepositRequestRepository
from referral_ledger.repositories.referral_acceptance_repository import (
    ReferralAcceptanceRepository,
)
from referral_ledger.repositories.referral_bonus_repository import (
    ReferralBonusRepository,
)
from referral_ledger.repositories.transaction_repository import TransactionRepository
from referral_ledger.services.balance_store import BalanceStore
from referral_ledger.utils.datetime_utils import utc_now
from referral_ledger.utils.exceptions import ErrorCode, ValidationError
from referral_ledger.validators.common import validate_amount


@dataclass
class BonusOutcome:
    """Result of a bonus attempt: credited, or skipped with a reason."""

    credited: bool
    amount: Decimal = Decimal("0")
    referrer_id: int | None = None
    reason: ErrorCode | None = None

    @classmethod
    def skipped(
        cls, reason: ErrorCode, referrer_id: int | None = None
    ) -> "BonusOutcome":
        return cls(credited=False, referrer_id=referrer_id, reason=reason)


def calculate_bonus(deposit_amount: Decimal, rate: Decimal | None = None) -> Decimal:
    """
    Bonus for a deposit, truncated to the balance scale.

    Args:
        deposit_amount: Approved deposit amount
        rate: Bonus share (settings.referral_bonus_rate by default)

    Returns:
        Bonus amount

    Examples:
        >>> calculate_bonus(Decimal("100"), Decimal("0.10"))
        Decimal('10.00000000')
    """
    if rate is None:
        rate = settings.referral_bonus_rate
    return (deposit_amount * rate).quantize(AMOUNT_QUANTUM, rounding=ROUND_DOWN)


class FirstDepositBonusProcessor:
    """Eligibility check and single-shot payment of the referral bonus."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self.acceptances = ReferralAcceptanceRepository(session)
        self.deposits = DepositRequestRepository(session)
        self.bonuses = ReferralBonusRepository(session)
        self.transactions = TransactionRepository(session)
        self.balances = BalanceStore(session)

    async def apply(
        self,
        user_id: int,
        deposit_amount: Decimal,
        deposit_id: int | None = None,
    ) -> BonusOutcome:
        """
        Pay the bonus if the deposit qualifies.

        Must run in the transaction that approved the deposit, with the
        referrer's lock held.

        Args:
            user_id: Depositing (referred) user
            deposit_amount: Approved amount
            deposit_id: Approved deposit, recorded on the witness

        Returns:
            BonusOutcome; ineligible deposits are skipped, not errors

        Raises:
            ValidationError: INVALID_AMOUNT, or USER_NOT_FOUND if the referrer
                row is gone
        """
        is_valid, amount, error = validate_amount(deposit_amount)
        if not is_valid:
            raise ValidationError(ErrorCode.INVALID_AMOUNT, error)

        accepted = await self.acceptances.get_by_status(user_id, ReferralStatus.ACCEPTED)
        if accepted is None:
            return BonusOutcome.skipped(ErrorCode.REFERRAL_NOT_ACCEPTED)
        referrer_id = accepted.referrer_id

        approved = await self.deposits.count_approved(user_id)
        if approved != 1:
            return BonusOutcome.skipped(ErrorCode.NOT_FIRST_DEPOSIT, referrer_id)

        if await self.bonuses.is_paid(referrer_id, user_id):
            return BonusOutcome.skipped(ErrorCode.BONUS_ALREADY_PAID, referrer_id)

        bonus = calculate_bonus(amount)
        witness_id = await self.bonuses.insert_ignore(
            referrer_id=referrer_id,
            referred_user_id=user_id,
            deposit_id=deposit_id,
            deposit_amount=amount,
            bonus_amount=bonus,
            created_at=utc_now(),
        )
        if witness_id is None:
            return BonusOutcome.skipped(ErrorCode.BONUS_ALREADY_PAID, referrer_id)

        rows = await self.balances.credit(
            referrer_id, bonus, counters=("referral_earnings",)
        )
        if rows == 0:
            raise ValidationError(
                ErrorCode.USER_NOT_FOUND, f"Referrer {referrer_id} not found"
            )

        await self.transactions.append(
            user_id=referrer_id,
            type=TransactionType.REFERRAL,
            category=TransactionCategory.REFERRAL_BONUS,
            amount=bonus,
            description=f"Referral bonus for first deposit of user {user_id}",
            related_user_id=user_id,
        )

        logger.info(
            "Referral bonus credited",
            extra={
                "referrer_id": referrer_id,
                "referred_user_id": user_id,
                "deposit_amount": str(amount),
                "bonus": str(bonus),
            },
        )
        return BonusOutcome(credited=True, amount=bonus, referrer_id=referrer_id)
