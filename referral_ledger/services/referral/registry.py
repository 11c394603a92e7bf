"""
Referral registry.

Referral code lookups, format and self-referral checks, and code issuance.
Lookups and checks are read-only and need no lock.
"""

from loguru import logger
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from referral_ledger.config.constants import REFERRAL_CODE_ISSUE_ATTEMPTS
from referral_ledger.models.user import User
from referral_ledger.repositories.user_repository import UserRepository
from referral_ledger.utils.codes import generate_referral_code
from referral_ledger.utils.db_decorators import with_auto_commit
from referral_ledger.utils.exceptions import ErrorCode, StorageError, ValidationError
from referral_ledger.validators.common import normalize_code, validate_referral_code


class ReferralRegistry:
    """Referral code registry."""

    def __init__(self, session: AsyncSession) -> None:
        """
        Initialize registry.

        Args:
            session: Async database session
        """
        self.session = session
        self.users = UserRepository(session)

    @staticmethod
    def normalize_code(code: str | None) -> str:
        """Trim and uppercase a code."""
        return normalize_code(code)

    @staticmethod
    def validate_format(code: str | None) -> str:
        """
        Validate and normalize a referral code.

        Args:
            code: Raw code

        Returns:
            Normalized code

        Raises:
            ValidationError: INVALID_CODE_FORMAT
        """
        is_valid, normalized, error = validate_referral_code(code)
        if not is_valid:
            raise ValidationError(ErrorCode.INVALID_CODE_FORMAT, error)
        return normalized

    @staticmethod
    def is_self_referral(referrer_id: int, candidate_id: int) -> bool:
        """Check whether a user is trying to refer themselves."""
        return referrer_id == candidate_id

    async def lookup_by_code(self, code: str | None) -> User | None:
        """
        Find the referrer owning a code.

        Args:
            code: Raw or normalized code

        Returns:
            Referrer or None if the code is unknown or malformed
        """
        is_valid, normalized, _ = validate_referral_code(code)
        if not is_valid:
            return None
        return await self.users.get_by_referral_code(normalized)

    async def resolve_referrer(self, code: str | None) -> tuple[User, str]:
        """
        Validate a code and resolve its referrer.

        Args:
            code: Raw code

        Returns:
            Tuple of (referrer, normalized_code)

        Raises:
            ValidationError: INVALID_CODE_FORMAT or REFERRAL_CODE_NOT_FOUND
        """
        normalized = self.validate_format(code)
        referrer = await self.users.get_by_referral_code(normalized)
        if referrer is None:
            raise ValidationError(
                ErrorCode.REFERRAL_CODE_NOT_FOUND,
                f"Referral code {normalized} does not exist",
            )
        return referrer, normalized

    @with_auto_commit
    async def issue_code(self, user_id: int) -> str:
        """
        Give a user a referral code, once.

        An existing code is returned unchanged. New codes are drawn until
        one is free; a collision with a concurrent issuer is retried.

        Args:
            user_id: User ID

        Returns:
            The user's referral code

        Raises:
            ValidationError: USER_NOT_FOUND
            StorageError: If no free code was found
        """
        user = await self.users.get_by_id(user_id)
        if user is None:
            raise ValidationError(ErrorCode.USER_NOT_FOUND)
        if user.referral_code:
            return user.referral_code

        for _ in range(REFERRAL_CODE_ISSUE_ATTEMPTS):
            candidate = generate_referral_code()
            if await self.users.referral_code_taken(candidate):
                continue
            try:
                async with self.session.begin_nested():
                    rows = await self.users.set_referral_code(user_id, candidate)
            except IntegrityError:
                logger.debug(f"Referral code collision on {candidate}, retrying")
                continue

            if rows:
                logger.info(
                    "Referral code issued",
                    extra={"user_id": user_id, "referral_code": candidate},
                )
                return candidate

            # Another flow issued a code first
            user = await self.users.get_by_id(user_id)
            return user.referral_code

        raise StorageError(
            f"No free referral code after {REFERRAL_CODE_ISSUE_ATTEMPTS} attempts"
        )
