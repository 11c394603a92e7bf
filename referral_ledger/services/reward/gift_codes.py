"""
Gift-code redemption.

A gift code is shared by many users up to max_uses. The redemption row for
(user, code) is the witness against a second redemption by the same user;
the conditional use increment is what enforces max_uses under concurrency.
"""

from datetime import timedelta
from decimal import Decimal

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from referral_ledger.config.settings import settings
from referral_ledger.models.enums import TransactionCategory, TransactionType
from referral_ledger.models.gift_code import GiftCode, GiftCodeRedemption
from referral_ledger.repositories.gift_code_repository import (
    GiftCodeRedemptionRepository,
    GiftCodeRepository,
)
from referral_ledger.repositories.transaction_repository import TransactionRepository
from referral_ledger.repositories.user_repository import UserRepository
from referral_ledger.services.balance_store import BalanceStore
from referral_ledger.utils.codes import generate_gift_code
from referral_ledger.utils.datetime_utils import ensure_utc, utc_now
from referral_ledger.utils.exceptions import ConflictError, ErrorCode, ValidationError
from referral_ledger.validators.common import validate_amount, validate_gift_code


class GiftCodeProcessor:
    """Redeems and administers gift codes."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self.codes = GiftCodeRepository(session)
        self.redemptions = GiftCodeRedemptionRepository(session)
        self.users = UserRepository(session)
        self.transactions = TransactionRepository(session)
        self.balances = BalanceStore(session)

    async def redeem(self, user_id: int, raw_code: str) -> Decimal:
        """
        Redeem a gift code for a user.

        Args:
            user_id: Redeeming user
            raw_code: Code as entered

        Returns:
            Credited amount

        Raises:
            ValidationError: INVALID_CODE_FORMAT, USER_NOT_FOUND,
                GIFT_CODE_NOT_FOUND
            ConflictError: EXPIRED, ALREADY_REDEEMED,
                INSUFFICIENT_USES_REMAINING
        """
        is_valid, code, error = validate_gift_code(raw_code)
        if not is_valid:
            raise ValidationError(ErrorCode.INVALID_CODE_FORMAT, error)

        if not await self.users.exists(id=user_id):
            raise ValidationError(ErrorCode.USER_NOT_FOUND)

        gift_code = await self.codes.get_by_code(code)
        if gift_code is None or not gift_code.is_active:
            raise ValidationError(
                ErrorCode.GIFT_CODE_NOT_FOUND, "Gift code not found or inactive"
            )

        now = utc_now()
        if ensure_utc(gift_code.expires_at) <= now:
            raise ConflictError(ErrorCode.EXPIRED, "Gift code has expired")

        if await self.redemptions.has_redeemed(user_id, gift_code.id):
            raise ConflictError(
                ErrorCode.ALREADY_REDEEMED, "You have already redeemed this gift code"
            )

        if gift_code.current_uses >= gift_code.max_uses:
            raise ConflictError(ErrorCode.INSUFFICIENT_USES_REMAINING)

        if not await self.codes.consume_use(gift_code.id, now):
            raise ConflictError(ErrorCode.INSUFFICIENT_USES_REMAINING)

        amount = gift_code.amount
        redemption_id = await self.redemptions.insert_ignore(
            user_id=user_id,
            gift_code_id=gift_code.id,
            amount=amount,
            redeemed_at=now,
        )
        if redemption_id is None:
            raise ConflictError(ErrorCode.ALREADY_REDEEMED)

        await self.balances.credit(user_id, amount)
        await self.transactions.append(
            user_id=user_id,
            type=TransactionType.GIFT_CODE,
            category=TransactionCategory.GIFT_CODE_REDEMPTION,
            amount=amount,
            description=f"Gift code {code} redeemed",
        )
        logger.info(
            "Gift code redeemed",
            extra={"user_id": user_id, "code": code, "amount": str(amount)},
        )
        return amount

    async def create_code(
        self,
        amount: Decimal,
        duration_minutes: int,
        code: str | None = None,
        max_uses: int | None = None,
        created_by: str | None = None,
    ) -> GiftCode:
        """
        Create a gift code.

        Args:
            amount: Credit per redemption, 0 < amount <= gift_code_max_amount
            duration_minutes: Lifetime, 1..gift_code_max_duration_minutes
            code: Code to use; a random one is generated when omitted
            max_uses: Global redemption limit
            created_by: Admin identifier

        Returns:
            Created gift code

        Raises:
            ValidationError: INVALID_CODE_FORMAT, INVALID_AMOUNT,
                INVALID_DURATION
            ConflictError: GIFT_CODE_EXISTS
        """
        if code is None:
            code = generate_gift_code()
        is_valid, normalized, error = validate_gift_code(code)
        if not is_valid:
            raise ValidationError(ErrorCode.INVALID_CODE_FORMAT, error)

        is_valid, value, error = validate_amount(
            amount, max_amount=settings.gift_code_max_amount
        )
        if not is_valid:
            raise ValidationError(ErrorCode.INVALID_AMOUNT, error)

        if not 0 < duration_minutes <= settings.gift_code_max_duration_minutes:
            raise ValidationError(
                ErrorCode.INVALID_DURATION,
                f"Duration must be 1-{settings.gift_code_max_duration_minutes} minutes",
            )

        if max_uses is None:
            max_uses = settings.gift_code_default_max_uses
        if max_uses <= 0:
            raise ValidationError(ErrorCode.INVALID_AMOUNT, "max_uses must be positive")

        now = utc_now()
        code_id = await self.codes.insert_ignore(
            code=normalized,
            amount=value,
            max_uses=max_uses,
            current_uses=0,
            is_active=True,
            created_by=created_by,
            created_at=now,
            expires_at=now + timedelta(minutes=duration_minutes),
        )
        if code_id is None:
            raise ConflictError(
                ErrorCode.GIFT_CODE_EXISTS, f"Gift code {normalized} already exists"
            )

        logger.info(
            "Gift code created",
            extra={"code": normalized, "amount": str(value), "max_uses": max_uses},
        )
        return await self.codes.get_by_id(code_id)

    async def deactivate_expired(self) -> int:
        """Flip expired codes inactive. Redemption rows keep their code."""
        return await self.codes.deactivate_expired(utc_now())

    async def redemption_history(
        self, user_id: int, limit: int = 50
    ) -> list[tuple[GiftCodeRedemption, str]]:
        return await self.redemptions.get_history(user_id, limit)

    async def total_gift_earnings(self, user_id: int) -> Decimal:
        return await self.redemptions.total_for_user(user_id)
