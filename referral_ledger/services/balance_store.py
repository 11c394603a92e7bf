"""
Balance store.

Atomic balance mutations. Every call is a single conditional UPDATE
executed in the caller's transaction; the caller holds the user's lock and
writes the matching audit entry in the same transaction.
"""

from collections.abc import Iterable
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from referral_ledger.repositories.user_repository import UserRepository
from referral_ledger.utils.exceptions import (
    ErrorCode,
    InsufficientFundsError,
    ValidationError,
)
from referral_ledger.validators.common import validate_amount


class BalanceStore:
    """Credit and debit of user balances."""

    def __init__(self, session: AsyncSession) -> None:
        """
        Initialize balance store.

        Args:
            session: Async database session
        """
        self.session = session
        self.users = UserRepository(session)

    @staticmethod
    def _checked(amount: Decimal) -> Decimal:
        is_valid, value, error = validate_amount(amount, allow_zero=True)
        if not is_valid:
            raise ValidationError(ErrorCode.INVALID_AMOUNT, error)
        return value

    async def credit(
        self,
        user_id: int,
        amount: Decimal,
        counters: Iterable[str] = (),
    ) -> int:
        """
        Add amount to the balance and to the named cumulative counters.

        Args:
            user_id: User to credit
            amount: Non-negative Decimal
            counters: "referral_earnings" and/or "total_daily_income_collected"

        Returns:
            Rows affected (0 if the user does not exist)

        Raises:
            ValidationError: If amount is negative or not a Decimal/int
        """
        return await self.users.add_to_balance(
            user_id, self._checked(amount), counters
        )

    async def debit(self, user_id: int, amount: Decimal) -> int:
        """
        Subtract amount if the balance covers it.

        Args:
            user_id: User to debit
            amount: Non-negative Decimal

        Returns:
            Rows affected (always 1 on return)

        Raises:
            ValidationError: If amount is invalid or the user does not exist
            InsufficientFundsError: If the balance is lower than amount
        """
        amount = self._checked(amount)
        rows = await self.users.subtract_from_balance(user_id, amount)
        if rows == 0:
            if not await self.users.exists(id=user_id):
                raise ValidationError(ErrorCode.USER_NOT_FOUND)
            raise InsufficientFundsError(
                f"Balance of user {user_id} is below {amount}"
            )
        return rows

    async def get_balance(self, user_id: int) -> Decimal | None:
        """Current balance, or None if the user does not exist."""
        return await self.users.get_balance(user_id)

    async def increment_referrals(self, user_id: int) -> int:
        """Increase the referrer's total_referrals counter."""
        return await self.users.increment_referrals(user_id)
