"""
Investment service.

Product purchase and position maturity. A purchase debits the price and
opens a position; the position's daily return feeds the daily gifts.
"""

from datetime import date, timedelta
from decimal import ROUND_DOWN

from sqlalchemy.ext.asyncio import AsyncSession

from referral_ledger.config.constants import AMOUNT_QUANTUM
from referral_ledger.models.enums import (
    InvestmentStatus,
    TransactionCategory,
    TransactionType,
)
from referral_ledger.repositories.investment_repository import (
    InvestmentProductRepository,
    UserInvestmentRepository,
)
from referral_ledger.repositories.transaction_repository import TransactionRepository
from referral_ledger.services.balance_store import BalanceStore
from referral_ledger.services.base_service import BaseService, ServiceResult
from referral_ledger.services.reward.ledger import RewardLedger
from referral_ledger.utils.concurrency_guard import ConcurrencyGuard
from referral_ledger.utils.datetime_utils import utc_today
from referral_ledger.utils.db_decorators import with_auto_commit
from referral_ledger.utils.exceptions import ErrorCode, LedgerError, ValidationError


class InvestmentService(BaseService):
    """Investment purchases."""

    def __init__(
        self, session: AsyncSession, guard: ConcurrencyGuard | None = None
    ) -> None:
        super().__init__(session, guard)
        self.products = InvestmentProductRepository(session)
        self.investments = UserInvestmentRepository(session)
        self.transactions = TransactionRepository(session)
        self.balances = BalanceStore(session)
        self.ledger = RewardLedger(session, self.guard)

    async def purchase_product(
        self, user_id: int, product_id: int, today: date | None = None
    ) -> ServiceResult[int]:
        """
        Buy a product from the balance.

        Today's gift for the new position is accrued after the purchase
        commits; an accrual failure is logged and the purchase stands.

        Args:
            user_id: Buyer
            product_id: Product to buy
            today: Start date (UTC today by default)

        Returns:
            ok(investment id) or fail with PRODUCT_NOT_FOUND,
            INSUFFICIENT_FUNDS, USER_NOT_FOUND
        """
        today = today or utc_today()

        async def work() -> int:
            product = await self.products.get_active(product_id)
            if product is None:
                raise ValidationError(ErrorCode.PRODUCT_NOT_FOUND)

            await self.balances.debit(user_id, product.price)

            daily_return = (product.price * product.daily_return_rate).quantize(
                AMOUNT_QUANTUM, rounding=ROUND_DOWN
            )
            investment = await self.investments.create(
                user_id=user_id,
                product_id=product.id,
                amount=product.price,
                daily_return=daily_return,
                start_date=today,
                end_date=today + timedelta(days=product.duration_days),
                status=InvestmentStatus.ACTIVE.value,
            )
            await self.transactions.append(
                user_id=user_id,
                type=TransactionType.INVESTMENT,
                category=TransactionCategory.PURCHASE,
                amount=-product.price,
                description=f"Purchased {product.name}",
            )
            self.logger.info(
                "Investment purchased",
                extra={
                    "user_id": user_id,
                    "product_id": product_id,
                    "investment_id": investment.id,
                    "daily_return": str(daily_return),
                },
            )
            return investment.id

        result = await self.run_locked(
            (user_id,), "purchase_product", work,
            user_id=user_id, product_id=product_id,
        )
        if result.success:
            await self._accrue_after_purchase(user_id, today)
        return result

    async def _accrue_after_purchase(self, user_id: int, today: date) -> None:
        try:
            accrual = await self.ledger.accrue_daily_gift(user_id, today)
        except LedgerError as e:
            self.logger.error(
                "Accrual after purchase failed",
                extra={"user_id": user_id, "error": str(e)},
            )
            return
        if not accrual.success:
            self.logger.warning(
                "Accrual after purchase rejected",
                extra={"user_id": user_id, "error_code": accrual.error_code},
            )

    @with_auto_commit
    async def complete_matured(self, today: date | None = None) -> int:
        """
        Close positions whose end date has been reached.

        Returns:
            Number of positions completed
        """
        completed = await self.investments.complete_ended(today or utc_today())
        if completed:
            self.logger.info(f"Completed {completed} matured investments")
        return completed
