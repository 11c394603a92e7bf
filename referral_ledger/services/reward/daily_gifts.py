"""
Daily investment-return gifts.

Accrual materializes one INVESTMENT_RETURN gift per user per date, the
sum of the user's earning positions. Collection moves the gift into the
balance; the is_collected = false predicate on the UPDATE is what stops a
second collect.
"""

from datetime import date
from decimal import Decimal

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from referral_ledger.models.daily_gift import DailyGift
from referral_ledger.models.enums import (
    GiftSource,
    TransactionCategory,
    TransactionType,
)
from referral_ledger.repositories.daily_gift_repository import DailyGiftRepository
from referral_ledger.repositories.investment_repository import UserInvestmentRepository
from referral_ledger.repositories.transaction_repository import TransactionRepository
from referral_ledger.services.balance_store import BalanceStore
from referral_ledger.utils.datetime_utils import utc_now
from referral_ledger.utils.exceptions import ConflictError, ErrorCode, ValidationError


class DailyGiftProcessor:
    """Accrues and collects daily gifts."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self.gifts = DailyGiftRepository(session)
        self.investments = UserInvestmentRepository(session)
        self.transactions = TransactionRepository(session)
        self.balances = BalanceStore(session)

    async def accrue(self, user_id: int, gift_date: date) -> int | None:
        """
        Create the user's gift for a date unless it exists.

        Args:
            user_id: User ID
            gift_date: Accrual date

        Returns:
            New gift id, or None if nothing was owed or the gift exists
        """
        total = await self.investments.daily_return_total(user_id, gift_date)
        if total <= 0:
            return None

        gift_id = await self.gifts.insert_ignore(
            user_id=user_id,
            amount=total,
            gift_date=gift_date,
            source=GiftSource.INVESTMENT_RETURN.value,
            is_collected=False,
            created_at=utc_now(),
        )
        if gift_id is not None:
            logger.debug(
                "Daily gift accrued",
                extra={"user_id": user_id, "gift_date": str(gift_date), "amount": str(total)},
            )
        return gift_id

    async def collect(self, user_id: int, gift_id: int) -> Decimal:
        """
        Collect a gift into the owner's balance.

        Args:
            user_id: Requesting user
            gift_id: Gift to collect

        Returns:
            Credited amount

        Raises:
            ValidationError: GIFT_NOT_FOUND, GIFT_NOT_OWNED
            ConflictError: ALREADY_COLLECTED
        """
        gift = await self.gifts.get_by_id(gift_id)
        if gift is None:
            raise ValidationError(ErrorCode.GIFT_NOT_FOUND)
        if gift.user_id != user_id:
            raise ValidationError(
                ErrorCode.GIFT_NOT_OWNED, "Gift belongs to another user"
            )

        amount = gift.amount
        if not await self.gifts.mark_collected(gift_id, user_id, utc_now()):
            raise ConflictError(ErrorCode.ALREADY_COLLECTED)

        rows = await self.balances.credit(
            user_id, amount, counters=("total_daily_income_collected",)
        )
        if rows == 0:
            raise ValidationError(ErrorCode.USER_NOT_FOUND)

        await self.transactions.append(
            user_id=user_id,
            type=TransactionType.DAILY_INCOME,
            category=TransactionCategory.INVESTMENT_RETURN,
            amount=amount,
            description=f"Daily income for {gift.gift_date}",
        )
        logger.info(
            "Daily gift collected",
            extra={"user_id": user_id, "gift_id": gift_id, "amount": str(amount)},
        )
        return amount

    async def available(self, user_id: int, today: date) -> list[DailyGift]:
        """Uncollected gifts up to today."""
        return await self.gifts.get_available(user_id, today)

    async def available_total(self, user_id: int, today: date) -> Decimal:
        """Sum of uncollected gifts up to today."""
        return await self.gifts.available_total(user_id, today)
