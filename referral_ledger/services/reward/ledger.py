"""
Reward ledger.

Entry point for the three crediting protocols. Each call takes the lock of
the user being credited, runs eligibility and already-paid checks, the
credit and the proof-of-payment write in one transaction, and reports
expected failures as ServiceResult values.
"""

from datetime import date
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from referral_ledger.models.daily_gift import DailyGift
from referral_ledger.models.enums import ReferralStatus
from referral_ledger.models.gift_code import GiftCode, GiftCodeRedemption
from referral_ledger.repositories.referral_acceptance_repository import (
    ReferralAcceptanceRepository,
)
from referral_ledger.services.base_service import BaseService, ServiceResult
from referral_ledger.services.reward.daily_gifts import DailyGiftProcessor
from referral_ledger.services.reward.first_deposit_bonus import (
    BonusOutcome,
    FirstDepositBonusProcessor,
)
from referral_ledger.services.reward.gift_codes import GiftCodeProcessor
from referral_ledger.utils.concurrency_guard import ConcurrencyGuard
from referral_ledger.utils.datetime_utils import utc_today
from referral_ledger.utils.db_decorators import with_auto_commit


class RewardLedger(BaseService):
    """Idempotent reward crediting."""

    def __init__(
        self, session: AsyncSession, guard: ConcurrencyGuard | None = None
    ) -> None:
        super().__init__(session, guard)
        self.acceptances = ReferralAcceptanceRepository(session)
        self.bonus = FirstDepositBonusProcessor(session)
        self.gifts = DailyGiftProcessor(session)
        self.codes = GiftCodeProcessor(session)

    # ------------------------------------------------------------------
    # First-deposit bonus
    # ------------------------------------------------------------------

    async def process_first_deposit_bonus(
        self,
        user_id: int,
        deposit_amount: Decimal,
        deposit_id: int | None = None,
    ) -> ServiceResult[BonusOutcome]:
        """
        Pay the referrer's bonus for a user's first approved deposit.

        The deposit must already be APPROVED and committed. Deposit
        approval itself pays the bonus inside its own transaction, see
        DepositService.approve_deposit.

        Args:
            user_id: Depositing user
            deposit_amount: Approved amount
            deposit_id: Approved deposit

        Returns:
            ok(BonusOutcome), credited or skipped with a reason
        """
        accepted = await self.acceptances.get_by_status(user_id, ReferralStatus.ACCEPTED)
        referrer_id = accepted.referrer_id if accepted else None

        return await self.run_locked(
            (user_id, referrer_id),
            "first_deposit_bonus",
            lambda: self.bonus.apply(user_id, deposit_amount, deposit_id),
            user_id=user_id,
            referrer_id=referrer_id,
            deposit_id=deposit_id,
        )

    # ------------------------------------------------------------------
    # Daily gifts
    # ------------------------------------------------------------------

    async def accrue_daily_gift(
        self, user_id: int, gift_date: date | None = None
    ) -> ServiceResult[int | None]:
        """
        Materialize the user's investment-return gift for a date.

        Args:
            user_id: User ID
            gift_date: Accrual date (UTC today by default)

        Returns:
            ok(gift id) if created, ok(None) if nothing owed or already accrued
        """
        gift_date = gift_date or utc_today()
        return await self.run_locked(
            (user_id,),
            "accrue_daily_gift",
            lambda: self.gifts.accrue(user_id, gift_date),
            user_id=user_id,
            gift_date=str(gift_date),
        )

    async def collect_gift(self, user_id: int, gift_id: int) -> ServiceResult[Decimal]:
        """
        Collect a daily gift into the balance.

        Returns:
            ok(amount) or fail with GIFT_NOT_FOUND, GIFT_NOT_OWNED,
            ALREADY_COLLECTED
        """
        return await self.run_locked(
            (user_id,),
            "collect_gift",
            lambda: self.gifts.collect(user_id, gift_id),
            user_id=user_id,
            gift_id=gift_id,
        )

    async def list_available_gifts(
        self, user_id: int, today: date | None = None
    ) -> list[DailyGift]:
        return await self.gifts.available(user_id, today or utc_today())

    async def available_daily_income(
        self, user_id: int, today: date | None = None
    ) -> Decimal:
        return await self.gifts.available_total(user_id, today or utc_today())

    # ------------------------------------------------------------------
    # Gift codes
    # ------------------------------------------------------------------

    async def redeem_gift_code(self, user_id: int, code: str) -> ServiceResult[Decimal]:
        """
        Redeem a gift code.

        Returns:
            ok(amount) or fail with INVALID_CODE_FORMAT, GIFT_CODE_NOT_FOUND,
            EXPIRED, ALREADY_REDEEMED, INSUFFICIENT_USES_REMAINING
        """
        return await self.run_locked(
            (user_id,),
            "redeem_gift_code",
            lambda: self.codes.redeem(user_id, code),
            user_id=user_id,
        )

    async def create_gift_code(
        self,
        amount: Decimal,
        duration_minutes: int,
        code: str | None = None,
        max_uses: int | None = None,
        created_by: str | None = None,
    ) -> ServiceResult[GiftCode]:
        """Create a gift code (admin)."""
        return await self.run_locked(
            (),
            "create_gift_code",
            lambda: self.codes.create_code(
                amount, duration_minutes, code, max_uses, created_by
            ),
            code=code,
        )

    @with_auto_commit
    async def deactivate_expired_codes(self) -> int:
        """Flip expired gift codes inactive."""
        count = await self.codes.deactivate_expired()
        if count:
            self.logger.info(f"Deactivated {count} expired gift codes")
        return count

    async def redemption_history(
        self, user_id: int, limit: int = 50
    ) -> list[tuple[GiftCodeRedemption, str]]:
        return await self.codes.redemption_history(user_id, limit)

    async def total_gift_earnings(self, user_id: int) -> Decimal:
        return await self.codes.total_gift_earnings(user_id)
