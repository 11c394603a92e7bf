"""
User repository.

Data access layer for User model. Balance and counter changes are single
UPDATE statements with in-place arithmetic, never read-modify-write in
Python.
"""

from collections.abc import Iterable
from decimal import Decimal

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from referral_ledger.models.user import User
from referral_ledger.repositories.base import BaseRepository

# Cumulative counters that may move together with the balance
CREDIT_COUNTERS = frozenset({"referral_earnings", "total_daily_income_collected"})


class UserRepository(BaseRepository[User]):
    """User repository with specific queries."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize user repository."""
        super().__init__(User, session)

    async def get_by_referral_code(self, referral_code: str) -> User | None:
        """
        Get user by referral code.

        Args:
            referral_code: Normalized referral code

        Returns:
            User or None
        """
        return await self.get_by(referral_code=referral_code)

    async def get_balance(self, user_id: int) -> Decimal | None:
        """Read the committed balance straight from the row."""
        stmt = select(User.balance).where(User.id == user_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def add_to_balance(
        self,
        user_id: int,
        amount: Decimal,
        counters: Iterable[str] = (),
    ) -> int:
        """
        Atomically add to balance and optional cumulative counters.

        Args:
            user_id: User ID
            amount: Non-negative amount
            counters: Names from CREDIT_COUNTERS to increase by the same amount

        Returns:
            Number of rows updated (0 if user does not exist)
        """
        values = {"balance": User.balance + amount}
        for name in counters:
            if name not in CREDIT_COUNTERS:
                raise ValueError(f"Unknown balance counter: {name}")
            values[name] = getattr(User, name) + amount

        stmt = (
            update(User)
            .where(User.id == user_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount

    async def subtract_from_balance(self, user_id: int, amount: Decimal) -> int:
        """
        Atomically subtract from balance if funds suffice.

        Args:
            user_id: User ID
            amount: Non-negative amount

        Returns:
            Number of rows updated (0 if user missing or balance too low)
        """
        stmt = (
            update(User)
            .where(User.id == user_id, User.balance >= amount)
            .values(balance=User.balance - amount)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount

    async def increment_referrals(self, user_id: int) -> int:
        """Increase total_referrals by one."""
        stmt = (
            update(User)
            .where(User.id == user_id)
            .values(total_referrals=User.total_referrals + 1)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount

    async def set_referred_by(self, user_id: int, referrer_id: int) -> int:
        """
        Set referred_by only if it was never set.

        Returns:
            Number of rows updated
        """
        stmt = (
            update(User)
            .where(User.id == user_id, User.referred_by_id.is_(None))
            .values(referred_by_id=referrer_id)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount

    async def set_referral_code(self, user_id: int, referral_code: str) -> int:
        """
        Assign a referral code only if the user has none.

        Returns:
            Number of rows updated
        """
        stmt = (
            update(User)
            .where(User.id == user_id, User.referral_code.is_(None))
            .values(referral_code=referral_code)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount

    async def referral_code_taken(self, referral_code: str) -> bool:
        """Check if a referral code is already assigned."""
        return await self.exists(referral_code=referral_code)
