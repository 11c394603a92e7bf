"""
Daily accrual scheduler.

Once per day (plus periodic catch-up runs) materializes the day's
investment-return gift for every user with an earning position. Each user
is accrued in their own transaction and session, so one failure never
rolls back or stops the others.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger
from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from referral_ledger.config.settings import settings
from referral_ledger.repositories.investment_repository import UserInvestmentRepository
from referral_ledger.services.investment_service import InvestmentService
from referral_ledger.services.reward.ledger import RewardLedger
from referral_ledger.utils.concurrency_guard import ConcurrencyGuard
from referral_ledger.utils.datetime_utils import utc_today


@dataclass
class AccrualSummary:
    """Counts of one accrual run."""

    run_date: date
    users: int = 0
    created: int = 0
    skipped: int = 0
    failed: int = 0
    failed_user_ids: list[int] = field(default_factory=list)


class DailyAccrualScheduler:
    """Drives daily gift accrual for all earning users."""

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession],
        guard: ConcurrencyGuard | None = None,
    ) -> None:
        """
        Initialize scheduler.

        Args:
            session_factory: Returns a new AsyncSession (an async_sessionmaker)
            guard: Per-user lock map shared with request handlers
        """
        self.session_factory = session_factory
        self.guard = guard
        self._scheduler: AsyncIOScheduler | None = None

    async def run_once(self, today: date | None = None) -> AccrualSummary:
        """
        Accrue today's gift for every user with an earning position.

        Args:
            today: Accrual date (UTC today by default)

        Returns:
            AccrualSummary with created/skipped/failed counts
        """
        today = today or utc_today()
        summary = AccrualSummary(run_date=today)

        async with self.session_factory() as session:
            user_ids = await UserInvestmentRepository(session).users_earning_on(today)
        summary.users = len(user_ids)

        logger.info(f"Daily accrual for {today}: {len(user_ids)} users")

        for user_id in user_ids:
            try:
                async with self.session_factory() as session:
                    ledger = RewardLedger(session, self.guard)
                    result = await ledger.accrue_daily_gift(user_id, today)
            except Exception as e:
                summary.failed += 1
                summary.failed_user_ids.append(user_id)
                logger.bind(user_id=user_id, run_date=str(today)).exception(
                    "Daily accrual failed for user {}: {}", user_id, e
                )
                continue

            if result.success and result.data is not None:
                summary.created += 1
            elif result.success:
                summary.skipped += 1
            else:
                summary.failed += 1
                summary.failed_user_ids.append(user_id)

        logger.info(
            f"Daily accrual for {today} complete: "
            f"{summary.created} created, {summary.skipped} skipped, "
            f"{summary.failed} failed"
        )
        return summary

    async def run_daily(self, today: date | None = None) -> AccrualSummary:
        """Close matured positions, then accrue."""
        today = today or utc_today()
        async with self.session_factory() as session:
            await InvestmentService(session, self.guard).complete_matured(today)
        return await self.run_once(today)

    def start(self) -> AsyncIOScheduler:
        """
        Schedule the daily run and the catch-up run on the running loop.

        Returns:
            Started AsyncIOScheduler
        """
        scheduler = AsyncIOScheduler(timezone="UTC")
        scheduler.add_job(
            self.run_daily,
            CronTrigger(hour=settings.accrual_hour_utc, minute=0, timezone="UTC"),
            id="daily_accrual",
            name="Daily investment-return accrual",
            max_instances=1,
            coalesce=True,
            misfire_grace_time=3600,
            replace_existing=True,
        )
        scheduler.add_job(
            self.run_once,
            IntervalTrigger(hours=settings.accrual_catchup_hours),
            id="daily_accrual_catchup",
            name="Daily accrual catch-up",
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        scheduler.start()
        self._scheduler = scheduler
        logger.info(
            f"Accrual scheduler started: daily at {settings.accrual_hour_utc:02d}:00 UTC, "
            f"catch-up every {settings.accrual_catchup_hours}h"
        )
        return scheduler

    def shutdown(self) -> None:
        if self._scheduler is not None:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None
