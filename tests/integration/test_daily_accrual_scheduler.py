"""Integration tests for the daily accrual run."""

from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy import select

from referral_ledger.models import DailyGift, UserInvestment
from referral_ledger.models.enums import InvestmentStatus
from referral_ledger.services.daily_accrual_scheduler import DailyAccrualScheduler
from referral_ledger.services.reward.ledger import RewardLedger
from referral_ledger.utils.datetime_utils import utc_today
from referral_ledger.utils.exceptions import StorageError


class TestRunOnce:
    """Test a single accrual pass."""

    @pytest.mark.asyncio
    async def test_accrues_every_earning_user(
        self, session_maker, guard, make_user, make_investment
    ):
        earners = [await make_user() for _ in range(3)]
        for user_id in earners:
            await make_investment(user_id, daily_return=Decimal("1.25"))
        await make_user()  # no position

        summary = await DailyAccrualScheduler(session_maker, guard).run_once()

        assert summary.users == 3
        assert summary.created == 3
        assert summary.skipped == 0
        assert summary.failed == 0

        async with session_maker() as session:
            gifts = (await session.execute(select(DailyGift))).scalars().all()
        assert sorted(g.user_id for g in gifts) == sorted(earners)
        assert all(g.amount == Decimal("1.25") for g in gifts)

    @pytest.mark.asyncio
    async def test_second_run_is_idempotent(
        self, session_maker, guard, make_user, make_investment
    ):
        user_id = await make_user()
        await make_investment(user_id)
        scheduler = DailyAccrualScheduler(session_maker, guard)

        await scheduler.run_once()
        summary = await scheduler.run_once()

        assert summary.created == 0
        assert summary.skipped == 1
        async with session_maker() as session:
            gifts = (await session.execute(select(DailyGift))).scalars().all()
        assert len(gifts) == 1

    @pytest.mark.asyncio
    async def test_failure_is_isolated(
        self, session_maker, guard, make_user, make_investment, monkeypatch
    ):
        """One user's failure neither stops nor rolls back the others."""
        good_id = await make_user()
        bad_id = await make_user()
        await make_investment(good_id)
        await make_investment(bad_id)

        original = RewardLedger.accrue_daily_gift

        async def flaky(self, user_id, gift_date=None):
            if user_id == bad_id:
                raise StorageError("database unavailable")
            return await original(self, user_id, gift_date)

        monkeypatch.setattr(RewardLedger, "accrue_daily_gift", flaky)

        summary = await DailyAccrualScheduler(session_maker, guard).run_once()

        assert summary.created == 1
        assert summary.failed == 1
        assert summary.failed_user_ids == [bad_id]
        async with session_maker() as session:
            gifts = (await session.execute(select(DailyGift))).scalars().all()
        assert [g.user_id for g in gifts] == [good_id]

    @pytest.mark.asyncio
    async def test_failure_message_with_braces_is_logged(
        self, session_maker, guard, make_user, make_investment, monkeypatch
    ):
        """Error text containing format braces does not abort the run."""
        bad_id = await make_user()
        good_id = await make_user()
        await make_investment(bad_id)
        await make_investment(good_id)

        original = RewardLedger.accrue_daily_gift

        async def flaky(self, user_id, gift_date=None):
            if user_id == bad_id:
                raise StorageError('accrue_daily_gift failed: {"sqlstate": "40001"}')
            return await original(self, user_id, gift_date)

        monkeypatch.setattr(RewardLedger, "accrue_daily_gift", flaky)

        summary = await DailyAccrualScheduler(session_maker, guard).run_once()

        assert summary.users == 2
        assert summary.failed == 1
        assert summary.failed_user_ids == [bad_id]
        assert summary.created == 1
        async with session_maker() as session:
            gifts = (await session.execute(select(DailyGift))).scalars().all()
        assert [g.user_id for g in gifts] == [good_id]

    @pytest.mark.asyncio
    async def test_explicit_date(self, session_maker, guard, make_user, make_investment):
        user_id = await make_user()
        start = utc_today() - timedelta(days=5)
        await make_investment(user_id, start_date=start, duration_days=3)

        inside = await DailyAccrualScheduler(session_maker, guard).run_once(
            start + timedelta(days=2)
        )
        past_end = await DailyAccrualScheduler(session_maker, guard).run_once(
            start + timedelta(days=3)
        )

        assert inside.created == 1
        assert past_end.users == 0


class TestRunDaily:
    """Test the scheduled daily job."""

    @pytest.mark.asyncio
    async def test_completes_matured_then_accrues(
        self, session_maker, guard, make_user, make_investment
    ):
        user_id = await make_user()
        matured_id = await make_investment(
            user_id, start_date=utc_today() - timedelta(days=30), duration_days=30
        )
        await make_investment(user_id, daily_return=Decimal("4"))

        summary = await DailyAccrualScheduler(session_maker, guard).run_daily()

        assert summary.created == 1
        async with session_maker() as session:
            matured = await session.get(UserInvestment, matured_id)
            gift = (await session.execute(select(DailyGift))).scalar_one()
        assert matured.status == InvestmentStatus.COMPLETED.value
        assert gift.amount == Decimal("4")

    @pytest.mark.asyncio
    async def test_start_registers_jobs(self, session_maker, guard):
        scheduler = DailyAccrualScheduler(session_maker, guard)

        aps = scheduler.start()
        try:
            job_ids = {job.id for job in aps.get_jobs()}
        finally:
            scheduler.shutdown()

        assert job_ids == {"daily_accrual", "daily_accrual_catchup"}
