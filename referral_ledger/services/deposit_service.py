"""
Deposit service.

Deposit requests and their approval. Approving a deposit credits the
depositor and, in the same transaction, pays the referrer's first-deposit
bonus when it qualifies.
"""

from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from referral_ledger.config.constants import SYSTEM_ACTOR
from referral_ledger.models.enums import (
    DepositStatus,
    ReferralStatus,
    TransactionCategory,
    TransactionType,
)
from referral_ledger.repositories.deposit_repository import DepositRequestRepository
from referral_ledger.repositories.referral_acceptance_repository import (
    ReferralAcceptanceRepository,
)
from referral_ledger.repositories.transaction_repository import TransactionRepository
from referral_ledger.repositories.user_repository import UserRepository
from referral_ledger.services.balance_store import BalanceStore
from referral_ledger.services.base_service import BaseService, ServiceResult
from referral_ledger.services.reward.first_deposit_bonus import (
    BonusOutcome,
    FirstDepositBonusProcessor,
)
from referral_ledger.utils.concurrency_guard import ConcurrencyGuard
from referral_ledger.utils.datetime_utils import utc_now
from referral_ledger.utils.exceptions import ConflictError, ErrorCode, ValidationError
from referral_ledger.validators.common import validate_amount, validate_transaction_id


@dataclass
class DepositApproval:
    """Outcome of an approved deposit."""

    deposit_id: int
    user_id: int
    amount: Decimal
    bonus: BonusOutcome


class DepositService(BaseService):
    """Deposit request handling."""

    def __init__(
        self, session: AsyncSession, guard: ConcurrencyGuard | None = None
    ) -> None:
        super().__init__(session, guard)
        self.deposits = DepositRequestRepository(session)
        self.acceptances = ReferralAcceptanceRepository(session)
        self.users = UserRepository(session)
        self.transactions = TransactionRepository(session)
        self.balances = BalanceStore(session)
        self.bonus = FirstDepositBonusProcessor(session)

    async def create_deposit_request(
        self, user_id: int, amount: Decimal, transaction_id: str | None = None
    ) -> ServiceResult[int]:
        """
        Register a PENDING deposit.

        A transaction ID can back only one deposit request. The uniqueness
        check and the insert are a single statement, so two concurrent
        requests with the same ID cannot both be stored.

        Args:
            user_id: Depositing user
            amount: Deposit amount
            transaction_id: Optional external payment reference

        Returns:
            ok(deposit id) or fail with INVALID_AMOUNT, INVALID_TRANSACTION_ID,
            USER_NOT_FOUND, DUPLICATE_TRANSACTION
        """
        async def work() -> int:
            is_valid, value, error = validate_amount(amount)
            if not is_valid:
                raise ValidationError(ErrorCode.INVALID_AMOUNT, error)
            reference = None
            if transaction_id is not None:
                is_valid, reference, error = validate_transaction_id(transaction_id)
                if not is_valid:
                    raise ValidationError(ErrorCode.INVALID_TRANSACTION_ID, error)
            if not await self.users.exists(id=user_id):
                raise ValidationError(ErrorCode.USER_NOT_FOUND)

            deposit_id = await self.deposits.insert_ignore(
                user_id=user_id,
                amount=value,
                transaction_id=reference,
                status=DepositStatus.PENDING.value,
                created_at=utc_now(),
            )
            if deposit_id is None:
                raise ConflictError(
                    ErrorCode.DUPLICATE_TRANSACTION,
                    "Transaction ID already used by another deposit request",
                )
            self.logger.info(
                "Deposit request created",
                extra={
                    "deposit_id": deposit_id,
                    "user_id": user_id,
                    "amount": str(value),
                    "transaction_id": reference,
                },
            )
            return deposit_id

        return await self.run_locked(
            (user_id,), "create_deposit_request", work, user_id=user_id
        )

    async def approve_deposit(
        self,
        deposit_id: int,
        amount: Decimal | None = None,
        admin_notes: str | None = None,
        processed_by: str = SYSTEM_ACTOR,
    ) -> ServiceResult[DepositApproval]:
        """
        Approve a PENDING deposit.

        Locks the depositor and, if the depositor was referred, the
        referrer, since the bonus credits the referrer.

        Args:
            deposit_id: Deposit to approve
            amount: Corrected amount; the requested amount when omitted
            admin_notes: Optional note
            processed_by: Approving admin

        Returns:
            ok(DepositApproval) or fail with DEPOSIT_NOT_FOUND,
            DEPOSIT_ALREADY_PROCESSED, INVALID_AMOUNT
        """
        deposit = await self.deposits.get_by_id(deposit_id)
        if deposit is None:
            await self.release_snapshot()
            return ServiceResult.fail(ValidationError(ErrorCode.DEPOSIT_NOT_FOUND))
        user_id = deposit.user_id

        accepted = await self.acceptances.get_by_status(user_id, ReferralStatus.ACCEPTED)
        referrer_id = accepted.referrer_id if accepted else None

        async def work() -> DepositApproval:
            final_amount = None
            if amount is not None:
                is_valid, final_amount, error = validate_amount(amount)
                if not is_valid:
                    raise ValidationError(ErrorCode.INVALID_AMOUNT, error)

            current = await self.deposits.get_for_update(deposit_id)
            rows = await self.deposits.close(
                deposit_id,
                DepositStatus.APPROVED,
                processed_at=utc_now(),
                processed_by=processed_by,
                amount=final_amount,
                admin_notes=admin_notes,
            )
            if not rows:
                raise ConflictError(ErrorCode.DEPOSIT_ALREADY_PROCESSED)

            credited = final_amount if final_amount is not None else current.amount
            if not await self.balances.credit(user_id, credited):
                raise ValidationError(ErrorCode.USER_NOT_FOUND)
            await self.transactions.append(
                user_id=user_id,
                type=TransactionType.DEPOSIT,
                category=TransactionCategory.DEPOSIT_APPROVED,
                amount=credited,
                description=f"Deposit #{deposit_id} approved",
                processed_by=processed_by,
            )

            bonus = await self.bonus.apply(user_id, credited, deposit_id)
            self.logger.info(
                "Deposit approved",
                extra={
                    "deposit_id": deposit_id,
                    "user_id": user_id,
                    "amount": str(credited),
                    "bonus_credited": bonus.credited,
                },
            )
            return DepositApproval(
                deposit_id=deposit_id, user_id=user_id, amount=credited, bonus=bonus
            )

        return await self.run_locked(
            (user_id, referrer_id), "approve_deposit", work,
            deposit_id=deposit_id, user_id=user_id,
        )

    async def reject_deposit(
        self,
        deposit_id: int,
        reason: str | None = None,
        processed_by: str = SYSTEM_ACTOR,
    ) -> ServiceResult[bool]:
        """
        Reject a PENDING deposit.

        Returns:
            ok(True) or fail with DEPOSIT_NOT_FOUND, DEPOSIT_ALREADY_PROCESSED
        """
        deposit = await self.deposits.get_by_id(deposit_id)
        if deposit is None:
            await self.release_snapshot()
            return ServiceResult.fail(ValidationError(ErrorCode.DEPOSIT_NOT_FOUND))

        async def work() -> bool:
            rows = await self.deposits.close(
                deposit_id,
                DepositStatus.REJECTED,
                processed_at=utc_now(),
                processed_by=processed_by,
                admin_notes=reason,
            )
            if not rows:
                raise ConflictError(ErrorCode.DEPOSIT_ALREADY_PROCESSED)
            return True

        return await self.run_locked(
            (deposit.user_id,), "reject_deposit", work, deposit_id=deposit_id
        )
