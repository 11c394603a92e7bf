"""
Integration tests for the first-deposit referral bonus.

Tests cover:
- Bonus paid once on the first approved deposit
- No bonus on later deposits or without an accepted referral
- Single payment under concurrent attempts
"""

import asyncio
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from referral_ledger.models import DepositRequest, ReferralBonus, Transaction
from referral_ledger.models.enums import DepositStatus, TransactionCategory
from referral_ledger.services.deposit_service import DepositService
from referral_ledger.services.referral.lifecycle import ReferralLifecycle
from referral_ledger.services.reward.first_deposit_bonus import calculate_bonus
from referral_ledger.services.reward.ledger import RewardLedger
from referral_ledger.utils.concurrency_guard import ConcurrencyGuard
from referral_ledger.utils.datetime_utils import utc_now
from referral_ledger.utils.exceptions import ErrorCode


@pytest.fixture
def referred_pair(session_maker, guard, make_user):
    """Create a referrer and an accepted referred user; returns (referrer, user)."""
    async def _referred_pair(code: str = "BONUS1") -> tuple[int, int]:
        referrer_id = await make_user(referral_code=code)
        user_id = await make_user()
        async with session_maker() as session:
            result = await ReferralLifecycle(session, guard).accept_automatically(
                user_id, code
            )
        assert result.success
        return referrer_id, user_id

    return _referred_pair


async def _approve(session_maker, guard, user_id, amount):
    async with session_maker() as session:
        service = DepositService(session, guard)
        deposit_id = (await service.create_deposit_request(user_id, amount)).unwrap()
        return await service.approve_deposit(deposit_id)


async def _bonus_rows(session_maker, referrer_id):
    async with session_maker() as session:
        return await session.scalar(
            select(func.count()).select_from(ReferralBonus)
            .where(ReferralBonus.referrer_id == referrer_id)
        )


class TestCalculateBonus:
    """Test bonus arithmetic."""

    def test_ten_percent(self):
        assert calculate_bonus(Decimal("100")) == Decimal("10")

    def test_truncates_to_balance_scale(self):
        assert calculate_bonus(Decimal("0.00000019"), Decimal("0.10")) == Decimal("0.00000001")


class TestBonusOnApproval:
    """Test the bonus paid from deposit approval."""

    @pytest.mark.asyncio
    async def test_first_deposit_pays_ten_percent(
        self, session_maker, guard, referred_pair, fetch_user
    ):
        referrer_id, user_id = await referred_pair()

        result = await _approve(session_maker, guard, user_id, Decimal("100"))

        approval = result.unwrap()
        assert approval.bonus.credited is True
        assert approval.bonus.amount == Decimal("10")
        assert approval.bonus.referrer_id == referrer_id

        referrer = await fetch_user(referrer_id)
        assert referrer.balance == Decimal("10")
        assert referrer.referral_earnings == Decimal("10")
        assert (await fetch_user(user_id)).balance == Decimal("100")

        async with session_maker() as session:
            audit = (await session.execute(
                select(Transaction).where(
                    Transaction.user_id == referrer_id,
                    Transaction.category == TransactionCategory.REFERRAL_BONUS.value,
                )
            )).scalars().all()
        assert len(audit) == 1
        assert audit[0].related_user_id == user_id

    @pytest.mark.asyncio
    async def test_second_deposit_pays_nothing(
        self, session_maker, guard, referred_pair, fetch_user
    ):
        referrer_id, user_id = await referred_pair()
        await _approve(session_maker, guard, user_id, Decimal("100"))

        result = await _approve(session_maker, guard, user_id, Decimal("500"))

        approval = result.unwrap()
        assert approval.bonus.credited is False
        assert approval.bonus.reason is ErrorCode.NOT_FIRST_DEPOSIT
        assert (await fetch_user(referrer_id)).balance == Decimal("10")
        assert await _bonus_rows(session_maker, referrer_id) == 1

    @pytest.mark.asyncio
    async def test_no_accepted_referral(self, session_maker, guard, make_user):
        user_id = await make_user()

        result = await _approve(session_maker, guard, user_id, Decimal("100"))

        approval = result.unwrap()
        assert approval.bonus.credited is False
        assert approval.bonus.reason is ErrorCode.REFERRAL_NOT_ACCEPTED

    @pytest.mark.asyncio
    async def test_pending_referral_earns_nothing(
        self, session_maker, guard, make_user, fetch_user
    ):
        referrer_id = await make_user(referral_code="WAIT01")
        user_id = await make_user()
        async with session_maker() as session:
            await ReferralLifecycle(session, guard).create_pending(user_id, "WAIT01")

        result = await _approve(session_maker, guard, user_id, Decimal("100"))

        assert result.unwrap().bonus.reason is ErrorCode.REFERRAL_NOT_ACCEPTED
        assert (await fetch_user(referrer_id)).balance == Decimal("0")


class TestDirectBonus:
    """Test RewardLedger.process_first_deposit_bonus."""

    @pytest.fixture
    def approved_deposit(self, session_maker):
        """Insert an APPROVED deposit with no bonus paid yet."""
        async def _approved_deposit(user_id: int, amount: Decimal) -> int:
            async with session_maker() as session:
                deposit = DepositRequest(
                    user_id=user_id,
                    amount=amount,
                    status=DepositStatus.APPROVED.value,
                    created_at=utc_now(),
                    processed_at=utc_now(),
                )
                session.add(deposit)
                await session.commit()
                return deposit.id

        return _approved_deposit

    @pytest.mark.asyncio
    async def test_called_twice_pays_once(
        self, session, guard, referred_pair, approved_deposit, fetch_user
    ):
        referrer_id, user_id = await referred_pair()
        deposit_id = await approved_deposit(user_id, Decimal("100"))
        ledger = RewardLedger(session, guard)

        first = await ledger.process_first_deposit_bonus(user_id, Decimal("100"), deposit_id)
        second = await ledger.process_first_deposit_bonus(user_id, Decimal("100"), deposit_id)

        assert first.unwrap().credited is True
        assert second.unwrap().credited is False
        assert second.data.reason is ErrorCode.BONUS_ALREADY_PAID
        assert (await fetch_user(referrer_id)).balance == Decimal("10")

    @pytest.mark.asyncio
    async def test_concurrent_attempts_pay_once(
        self, session_maker, referred_pair, approved_deposit, fetch_user
    ):
        """Racing bonus calls with separate lock maps credit exactly once."""
        referrer_id, user_id = await referred_pair()
        deposit_id = await approved_deposit(user_id, Decimal("250"))

        async def attempt():
            async with session_maker() as session:
                ledger = RewardLedger(session, ConcurrencyGuard(timeout=5))
                return await ledger.process_first_deposit_bonus(
                    user_id, Decimal("250"), deposit_id
                )

        results = await asyncio.gather(*(attempt() for _ in range(6)))

        assert sum(r.unwrap().credited for r in results) == 1
        assert (await fetch_user(referrer_id)).balance == Decimal("25")
        assert await _bonus_rows(session_maker, referrer_id) == 1

    @pytest.mark.asyncio
    async def test_invalid_amount(self, session, guard, referred_pair):
        _, user_id = await referred_pair()

        result = await RewardLedger(session, guard).process_first_deposit_bonus(
            user_id, Decimal("-5")
        )

        assert result.error_code is ErrorCode.INVALID_AMOUNT
