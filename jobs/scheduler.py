"""
Scheduler entry point.

Runs the accrual scheduler in-process with APScheduler: daily accrual at
the configured UTC hour, catch-up runs every few hours, and an hourly
expiry sweep for referrals and gift codes.

Usage:
    python -m jobs.scheduler
"""

import asyncio

from apscheduler.triggers.interval import IntervalTrigger
from loguru import logger

from referral_ledger.config.database import async_engine, async_session_maker
from referral_ledger.services.daily_accrual_scheduler import DailyAccrualScheduler
from referral_ledger.services.referral.lifecycle import ReferralLifecycle
from referral_ledger.services.reward.ledger import RewardLedger
from referral_ledger.utils.logging_config import setup_logging


async def expire_stale_records() -> None:
    """Expire stale referrals and deactivate expired gift codes."""
    async with async_session_maker() as session:
        expired = await ReferralLifecycle(session).expire_stale()
        deactivated = await RewardLedger(session).deactivate_expired_codes()
    if expired or deactivated:
        logger.info(
            f"Expiry sweep: {expired} referrals, {deactivated} gift codes"
        )


async def main() -> None:
    """Start jobs and run until cancelled."""
    setup_logging(log_file="logs/scheduler.log")

    accrual = DailyAccrualScheduler(async_session_maker)
    scheduler = accrual.start()
    scheduler.add_job(
        expire_stale_records,
        IntervalTrigger(hours=1),
        id="expiry_sweep",
        name="Referral and gift code expiry",
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )

    # Catch up immediately in case the daily run was missed
    await accrual.run_once()

    try:
        await asyncio.Event().wait()
    finally:
        accrual.shutdown()
        await async_engine.dispose()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except (KeyboardInterrupt, SystemExit):
        logger.info("Scheduler stopped")
