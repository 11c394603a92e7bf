"""
Daily accrual task.

Materializes the day's investment-return gifts for all earning users.
A Redis lock keeps two workers from sweeping at the same time; a second
run would be harmless but wasted work.
"""

from datetime import date

import dramatiq
from loguru import logger

from jobs.async_runner import run_async, task_session_factory
from referral_ledger.services.daily_accrual_scheduler import (
    AccrualSummary,
    DailyAccrualScheduler,
)
from referral_ledger.utils.concurrency_guard import ConcurrencyGuard
from referral_ledger.utils.exceptions import is_retryable
from referral_ledger.utils.redis_utils import get_redis_client

ACCRUAL_LOCK_KEY = "referral_ledger:daily_accrual"
ACCRUAL_LOCK_TIMEOUT = 600


def should_retry(retries_so_far: int, exception: BaseException) -> bool:
    """Retry transient database and lock failures only."""
    return retries_so_far < 3 and is_retryable(exception)


@dramatiq.actor(max_retries=3, time_limit=900_000, retry_when=should_retry)
def accrue_daily_gifts(run_date: str | None = None) -> None:
    """
    Accrue daily gifts.

    Args:
        run_date: ISO date to accrue for (UTC today by default)
    """
    today = date.fromisoformat(run_date) if run_date else None
    summary = run_async(_accrue_daily_gifts_async(today))
    if summary is not None and summary.failed:
        logger.warning(
            f"Daily accrual finished with {summary.failed} failed users: "
            f"{summary.failed_user_ids[:20]}"
        )


async def _accrue_daily_gifts_async(today: date | None) -> AccrualSummary | None:
    """Async implementation of the accrual task."""
    redis_client = get_redis_client()
    try:
        lock = redis_client.lock(ACCRUAL_LOCK_KEY, timeout=ACCRUAL_LOCK_TIMEOUT)
        if not await lock.acquire(blocking=False):
            logger.info("Daily accrual already running elsewhere, skipping")
            return None
        try:
            async with task_session_factory() as session_factory:
                # Locks bind to an event loop; each worker thread has its own
                guard = ConcurrencyGuard()
                return await DailyAccrualScheduler(session_factory, guard).run_daily(today)
        finally:
            await lock.release()
    finally:
        await redis_client.aclose()
