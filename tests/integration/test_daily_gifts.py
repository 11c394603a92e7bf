"""
Integration tests for daily investment-return gifts.

Tests cover:
- Accrual sums earning positions into one gift per day
- Accrual idempotency
- Collection, including concurrent double-collect
- Ownership and not-found failures
"""

import asyncio
from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from referral_ledger.models import DailyGift
from referral_ledger.services.reward.ledger import RewardLedger
from referral_ledger.utils.concurrency_guard import ConcurrencyGuard
from referral_ledger.utils.datetime_utils import utc_today
from referral_ledger.utils.exceptions import ErrorCode


async def _gift_count(session_maker, user_id):
    async with session_maker() as session:
        return await session.scalar(
            select(func.count()).select_from(DailyGift).where(DailyGift.user_id == user_id)
        )


class TestAccrue:
    """Test gift accrual."""

    @pytest.mark.asyncio
    async def test_sums_positions_into_one_gift(
        self, session, session_maker, guard, make_user, make_investment
    ):
        user_id = await make_user()
        await make_investment(user_id, daily_return=Decimal("2"))
        await make_investment(user_id, daily_return=Decimal("1.5"))

        result = await RewardLedger(session, guard).accrue_daily_gift(user_id)

        assert result.data is not None
        async with session_maker() as check:
            gift = await check.get(DailyGift, result.data)
        assert gift.amount == Decimal("3.5")
        assert gift.is_collected is False
        assert gift.gift_date == utc_today()

    @pytest.mark.asyncio
    async def test_accrue_is_idempotent(
        self, session, session_maker, guard, make_user, make_investment
    ):
        user_id = await make_user()
        await make_investment(user_id)
        ledger = RewardLedger(session, guard)

        first = await ledger.accrue_daily_gift(user_id)
        second = await ledger.accrue_daily_gift(user_id)

        assert first.data is not None
        assert second.success is True
        assert second.data is None
        assert await _gift_count(session_maker, user_id) == 1

    @pytest.mark.asyncio
    async def test_nothing_owed(self, session, session_maker, guard, make_user, make_investment):
        user_id = await make_user()
        # Position ended yesterday
        await make_investment(
            user_id, start_date=utc_today() - timedelta(days=30), duration_days=30
        )

        result = await RewardLedger(session, guard).accrue_daily_gift(user_id)

        assert result.success is True
        assert result.data is None
        assert await _gift_count(session_maker, user_id) == 0

    @pytest.mark.asyncio
    async def test_future_position_not_accrued(self, session, guard, make_user, make_investment):
        user_id = await make_user()
        await make_investment(user_id, start_date=utc_today() + timedelta(days=1))

        result = await RewardLedger(session, guard).accrue_daily_gift(user_id)

        assert result.data is None


class TestCollect:
    """Test gift collection."""

    @pytest.fixture
    def accrued_gift(self, session_maker, guard, make_user, make_investment):
        """Create a user with one accrued gift; returns (user_id, gift_id)."""
        async def _accrued_gift(daily_return: Decimal = Decimal("2")) -> tuple[int, int]:
            user_id = await make_user()
            await make_investment(user_id, daily_return=daily_return)
            async with session_maker() as session:
                result = await RewardLedger(session, guard).accrue_daily_gift(user_id)
            return user_id, result.data

        return _accrued_gift

    @pytest.mark.asyncio
    async def test_collect_credits_balance(self, session, guard, accrued_gift, fetch_user):
        user_id, gift_id = await accrued_gift(Decimal("2"))
        ledger = RewardLedger(session, guard)

        result = await ledger.collect_gift(user_id, gift_id)

        assert result.unwrap() == Decimal("2")
        user = await fetch_user(user_id)
        assert user.balance == Decimal("2")
        assert user.total_daily_income_collected == Decimal("2")
        assert await ledger.available_daily_income(user_id) == Decimal("0")
        assert await ledger.list_available_gifts(user_id) == []
        await session.rollback()

    @pytest.mark.asyncio
    async def test_second_collect_fails(self, session, guard, accrued_gift, fetch_user):
        user_id, gift_id = await accrued_gift()
        ledger = RewardLedger(session, guard)

        await ledger.collect_gift(user_id, gift_id)
        second = await ledger.collect_gift(user_id, gift_id)

        assert second.error_code is ErrorCode.ALREADY_COLLECTED
        assert (await fetch_user(user_id)).balance == Decimal("2")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("shared_guard", [True, False])
    async def test_concurrent_collect_credits_once(
        self, session_maker, guard, accrued_gift, fetch_user, shared_guard
    ):
        user_id, gift_id = await accrued_gift(Decimal("7.25"))

        async def attempt():
            async with session_maker() as session:
                lock_map = guard if shared_guard else ConcurrencyGuard(timeout=5)
                return await RewardLedger(session, lock_map).collect_gift(user_id, gift_id)

        results = await asyncio.gather(*(attempt() for _ in range(6)))

        assert sum(r.success for r in results) == 1
        assert {r.error_code for r in results if not r.success} == {
            ErrorCode.ALREADY_COLLECTED
        }
        assert (await fetch_user(user_id)).balance == Decimal("7.25")

    @pytest.mark.asyncio
    async def test_not_owned(self, session, guard, accrued_gift, make_user, fetch_user):
        owner_id, gift_id = await accrued_gift()
        other_id = await make_user()

        result = await RewardLedger(session, guard).collect_gift(other_id, gift_id)

        assert result.error_code is ErrorCode.GIFT_NOT_OWNED
        assert (await fetch_user(other_id)).balance == Decimal("0")
        assert (await fetch_user(owner_id)).balance == Decimal("0")

    @pytest.mark.asyncio
    async def test_not_found(self, session, guard, make_user):
        user_id = await make_user()

        result = await RewardLedger(session, guard).collect_gift(user_id, 9999)

        assert result.error_code is ErrorCode.GIFT_NOT_FOUND

    @pytest.mark.asyncio
    async def test_available_lists_uncollected(self, session, guard, accrued_gift):
        user_id, gift_id = await accrued_gift(Decimal("3"))
        ledger = RewardLedger(session, guard)

        gifts = await ledger.list_available_gifts(user_id)
        gift_ids = [g.id for g in gifts]
        total = await ledger.available_daily_income(user_id)
        await session.rollback()

        assert gift_ids == [gift_id]
        assert total == Decimal("3")
