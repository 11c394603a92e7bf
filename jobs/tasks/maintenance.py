"""
Maintenance task.

Expires stale PENDING referrals and deactivates expired gift codes.
"""

import dramatiq
from loguru import logger

from jobs.async_runner import run_async, task_session_factory
from referral_ledger.services.referral.lifecycle import ReferralLifecycle
from referral_ledger.services.reward.ledger import RewardLedger


@dramatiq.actor(max_retries=3, time_limit=300_000)
def expire_referrals_and_codes() -> None:
    """Run referral expiry and gift code deactivation."""
    expired, deactivated = run_async(_expire_async())
    logger.info(
        f"Maintenance complete: {expired} referrals expired, "
        f"{deactivated} gift codes deactivated"
    )


async def _expire_async() -> tuple[int, int]:
    async with task_session_factory() as session_factory:
        async with session_factory() as session:
            expired = await ReferralLifecycle(session).expire_stale()
            deactivated = await RewardLedger(session).deactivate_expired_codes()
    return expired, deactivated
