"""
Integration tests for gift-code redemption and administration.

Tests cover:
- Redemption credits balance and records the redemption
- One redemption per user per code
- Global max_uses under concurrency
- Expired, inactive, unknown and malformed codes
- Code creation and expiry sweep
"""

import asyncio
from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy import select

from referral_ledger.models import GiftCode, GiftCodeRedemption
from referral_ledger.repositories import GiftCodeRepository
from referral_ledger.services.reward.ledger import RewardLedger
from referral_ledger.utils.concurrency_guard import ConcurrencyGuard
from referral_ledger.utils.datetime_utils import utc_now
from referral_ledger.utils.exceptions import ErrorCode


async def _code(session_maker, code):
    async with session_maker() as session:
        return (await session.execute(
            select(GiftCode).where(GiftCode.code == code)
        )).scalar_one()


class TestRedeem:
    """Test gift code redemption."""

    @pytest.mark.asyncio
    async def test_redeem_credits_amount(
        self, session, session_maker, guard, make_user, make_gift_code, fetch_user
    ):
        user_id = await make_user(balance=Decimal("1"))
        await make_gift_code("GIFT2024", amount=Decimal("5"))

        result = await RewardLedger(session, guard).redeem_gift_code(user_id, " gift2024 ")

        assert result.unwrap() == Decimal("5")
        assert (await fetch_user(user_id)).balance == Decimal("6")
        assert (await _code(session_maker, "GIFT2024")).current_uses == 1

    @pytest.mark.asyncio
    async def test_double_redeem_rejected(
        self, session, session_maker, guard, make_user, make_gift_code, fetch_user
    ):
        user_id = await make_user()
        await make_gift_code("TWICE123")
        ledger = RewardLedger(session, guard)

        assert (await ledger.redeem_gift_code(user_id, "TWICE123")).success
        second = await ledger.redeem_gift_code(user_id, "TWICE123")

        assert second.error_code is ErrorCode.ALREADY_REDEEMED
        assert (await fetch_user(user_id)).balance == Decimal("5")
        assert (await _code(session_maker, "TWICE123")).current_uses == 1

    @pytest.mark.asyncio
    async def test_concurrent_same_user_redeems_once(
        self, session_maker, make_user, make_gift_code, fetch_user
    ):
        user_id = await make_user()
        await make_gift_code("RACE1234")

        async def attempt():
            async with session_maker() as session:
                return await RewardLedger(
                    session, ConcurrencyGuard(timeout=5)
                ).redeem_gift_code(user_id, "RACE1234")

        results = await asyncio.gather(*(attempt() for _ in range(5)))

        assert sum(r.success for r in results) == 1
        assert (await fetch_user(user_id)).balance == Decimal("5")

    @pytest.mark.asyncio
    async def test_last_use_goes_to_one_user(
        self, session_maker, guard, make_user, make_gift_code, fetch_user
    ):
        """Two users racing for a max_uses=1 code: one wins."""
        first, second = await make_user(), await make_user()
        await make_gift_code("LAST0001", max_uses=1)

        async def attempt(user_id):
            async with session_maker() as session:
                return await RewardLedger(session, guard).redeem_gift_code(
                    user_id, "LAST0001"
                )

        results = await asyncio.gather(attempt(first), attempt(second))

        assert sum(r.success for r in results) == 1
        loser = next(r for r in results if not r.success)
        assert loser.error_code is ErrorCode.INSUFFICIENT_USES_REMAINING
        balances = [(await fetch_user(uid)).balance for uid in (first, second)]
        assert sorted(balances) == [Decimal("0"), Decimal("5")]
        assert (await _code(session_maker, "LAST0001")).current_uses == 1

    @pytest.mark.asyncio
    async def test_exhausted_code(self, session, guard, make_user, make_gift_code):
        user_id = await make_user()
        await make_gift_code("USEDUP01", max_uses=3, current_uses=3)

        result = await RewardLedger(session, guard).redeem_gift_code(user_id, "USEDUP01")

        assert result.error_code is ErrorCode.INSUFFICIENT_USES_REMAINING

    @pytest.mark.asyncio
    async def test_expired_code(self, session, guard, make_user, make_gift_code, fetch_user):
        user_id = await make_user()
        await make_gift_code("OLDCODE1", expires_in=timedelta(minutes=-1))

        result = await RewardLedger(session, guard).redeem_gift_code(user_id, "OLDCODE1")

        assert result.error_code is ErrorCode.EXPIRED
        assert (await fetch_user(user_id)).balance == Decimal("0")

    @pytest.mark.asyncio
    async def test_inactive_code(self, session, guard, make_user, make_gift_code):
        user_id = await make_user()
        await make_gift_code("OFFCODE1", is_active=False)

        result = await RewardLedger(session, guard).redeem_gift_code(user_id, "OFFCODE1")

        assert result.error_code is ErrorCode.GIFT_CODE_NOT_FOUND

    @pytest.mark.asyncio
    async def test_unknown_code(self, session, guard, make_user):
        user_id = await make_user()

        result = await RewardLedger(session, guard).redeem_gift_code(user_id, "NOSUCH00")

        assert result.error_code is ErrorCode.GIFT_CODE_NOT_FOUND

    @pytest.mark.asyncio
    @pytest.mark.parametrize("raw", ["", "SHORT", "TOOLONGCODE", "BAD-CODE"])
    async def test_malformed_code(self, session, guard, make_user, raw):
        user_id = await make_user()

        result = await RewardLedger(session, guard).redeem_gift_code(user_id, raw)

        assert result.error_code is ErrorCode.INVALID_CODE_FORMAT

    @pytest.mark.asyncio
    async def test_history_and_total(self, session, guard, make_user, make_gift_code):
        user_id = await make_user()
        await make_gift_code("HIST0001", amount=Decimal("2"))
        await make_gift_code("HIST0002", amount=Decimal("3"))
        ledger = RewardLedger(session, guard)
        await ledger.redeem_gift_code(user_id, "HIST0001")
        await ledger.redeem_gift_code(user_id, "HIST0002")

        history = await ledger.redemption_history(user_id)
        total = await ledger.total_gift_earnings(user_id)
        await session.rollback()

        assert {code for _, code in history} == {"HIST0001", "HIST0002"}
        assert all(isinstance(r, GiftCodeRedemption) for r, _ in history)
        assert total == Decimal("5")


class TestCreateCode:
    """Test gift code administration."""

    @pytest.mark.asyncio
    async def test_create_with_explicit_code(self, session, guard):
        result = await RewardLedger(session, guard).create_gift_code(
            Decimal("10"), duration_minutes=60, code="promo001", max_uses=5,
            created_by="admin",
        )

        gift_code = result.unwrap()
        assert gift_code.code == "PROMO001"
        assert gift_code.max_uses == 5
        assert gift_code.current_uses == 0
        assert gift_code.is_active is True

    @pytest.mark.asyncio
    async def test_create_generates_code(self, session, guard, make_user):
        ledger = RewardLedger(session, guard)

        gift_code = (await ledger.create_gift_code(Decimal("1"), 30)).unwrap()
        user_id = await make_user()
        redeemed = await ledger.redeem_gift_code(user_id, gift_code.code)

        assert len(gift_code.code) == 8
        assert redeemed.unwrap() == Decimal("1")

    @pytest.mark.asyncio
    async def test_duplicate_code(self, session, guard, make_gift_code):
        await make_gift_code("DUPE0001")

        result = await RewardLedger(session, guard).create_gift_code(
            Decimal("1"), 60, code="DUPE0001"
        )

        assert result.error_code is ErrorCode.GIFT_CODE_EXISTS

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("amount", "minutes", "code"),
        [
            (Decimal("0"), 60, ErrorCode.INVALID_AMOUNT),
            (Decimal("100001"), 60, ErrorCode.INVALID_AMOUNT),
            (Decimal("1"), 0, ErrorCode.INVALID_DURATION),
            (Decimal("1"), 43201, ErrorCode.INVALID_DURATION),
        ],
    )
    async def test_invalid_parameters(self, session, guard, amount, minutes, code):
        result = await RewardLedger(session, guard).create_gift_code(
            amount, minutes, code="VALID001"
        )

        assert result.error_code is code

    @pytest.mark.asyncio
    async def test_deactivate_expired(self, session, session_maker, make_gift_code):
        await make_gift_code("EXPIRED1", expires_in=timedelta(minutes=-5))
        await make_gift_code("CURRENT1")

        count = await RewardLedger(session).deactivate_expired_codes()

        assert count == 1
        assert (await _code(session_maker, "EXPIRED1")).is_active is False
        assert (await _code(session_maker, "CURRENT1")).is_active is True


class TestConditionalUpdates:
    """Test conditional updates against codes already loaded in the session."""

    @pytest.mark.asyncio
    async def test_consume_use_with_loaded_code(self, session, make_gift_code):
        gift_code_id = await make_gift_code("LOADED01")
        codes = GiftCodeRepository(session)

        loaded = await codes.get_by_code("LOADED01")
        assert loaded is not None

        assert await codes.consume_use(gift_code_id, utc_now()) == 1
        await session.commit()

        refreshed = await codes.get_by_code("LOADED01")
        assert refreshed.current_uses == 1

    @pytest.mark.asyncio
    async def test_deactivate_expired_with_loaded_codes(
        self, session, session_maker, make_gift_code
    ):
        await make_gift_code("STALE001", expires_in=timedelta(minutes=-1))
        await make_gift_code("FRESH001")
        codes = GiftCodeRepository(session)

        assert await codes.get_by_code("STALE001") is not None
        assert await codes.get_by_code("FRESH001") is not None

        assert await codes.deactivate_expired(utc_now()) == 1
        await session.commit()

        assert (await _code(session_maker, "STALE001")).is_active is False
        assert (await _code(session_maker, "FRESH001")).is_active is True
