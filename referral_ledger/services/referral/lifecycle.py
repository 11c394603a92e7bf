"""
Referral lifecycle.

State machine of ReferralAcceptance rows:
PENDING -> ACCEPTED | REJECTED | EXPIRED, all three terminal.

A referred user has at most one PENDING-or-ACCEPTED row (partial unique
index), so creating a referral is a single insert-or-ignore. The referrer's
total_referrals counter moves only when a referral is accepted.
"""

from datetime import timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from referral_ledger.config.settings import settings
from referral_ledger.models.enums import ReferralStatus
from referral_ledger.models.user import User
from referral_ledger.repositories.referral_acceptance_repository import (
    ReferralAcceptanceRepository,
)
from referral_ledger.repositories.referral_invitation_repository import (
    ReferralInvitationRepository,
)
from referral_ledger.repositories.user_repository import UserRepository
from referral_ledger.services.balance_store import BalanceStore
from referral_ledger.services.base_service import BaseService, ServiceResult
from referral_ledger.services.referral.registry import ReferralRegistry
from referral_ledger.utils.concurrency_guard import ConcurrencyGuard
from referral_ledger.utils.datetime_utils import ensure_utc, utc_now
from referral_ledger.utils.db_decorators import with_auto_commit
from referral_ledger.utils.exceptions import ConflictError, ErrorCode, ValidationError


class ReferralLifecycle(BaseService):
    """Creates, accepts, rejects and expires referrals."""

    def __init__(
        self, session: AsyncSession, guard: ConcurrencyGuard | None = None
    ) -> None:
        super().__init__(session, guard)
        self.registry = ReferralRegistry(session)
        self.users = UserRepository(session)
        self.acceptances = ReferralAcceptanceRepository(session)
        self.invitations = ReferralInvitationRepository(session)
        self.balances = BalanceStore(session)
        self.expiry_window = timedelta(days=settings.referral_expiry_days)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def create_pending(
        self, referred_user_id: int, code: str
    ) -> ServiceResult[int]:
        """
        Record that a user signed up with a referral code.

        Args:
            referred_user_id: New user
            code: Referral code as entered

        Returns:
            ok(acceptance id) or fail with INVALID_CODE_FORMAT,
            REFERRAL_CODE_NOT_FOUND, SELF_REFERRAL, USER_NOT_FOUND,
            ALREADY_REFERRED, REFERRER_LIMIT_REACHED, SUSPICIOUS_ACTIVITY
        """
        async def work() -> int:
            referrer, normalized = await self._check_new_referral(
                referred_user_id, code
            )
            acceptance_id = await self.acceptances.insert_ignore(
                referred_user_id=referred_user_id,
                referrer_id=referrer.id,
                referral_code=normalized,
                status=ReferralStatus.PENDING.value,
                created_at=utc_now(),
            )
            if acceptance_id is None:
                raise ConflictError(ErrorCode.ALREADY_REFERRED)

            self.logger.info(
                "Pending referral created",
                extra={
                    "acceptance_id": acceptance_id,
                    "referred_user_id": referred_user_id,
                    "referrer_id": referrer.id,
                },
            )
            return acceptance_id

        referrer_id = await self._referrer_key(code)
        return await self.run_locked(
            (referred_user_id, referrer_id), "create_pending", work,
            referred_user_id=referred_user_id,
        )

    async def accept(self, referred_user_id: int) -> ServiceResult[int]:
        """
        Accept the user's PENDING referral.

        A referral older than the expiry window is moved to EXPIRED instead
        and the call fails with EXPIRED; that transition is committed.

        Args:
            referred_user_id: Referred user

        Returns:
            ok(referrer id) or fail with NO_PENDING_REFERRAL, EXPIRED,
            ALREADY_ACCEPTED, ALREADY_REFERRED
        """
        async def work() -> int:
            now = utc_now()
            pending = await self.acceptances.get_pending_for_update(referred_user_id)
            if pending is None:
                if await self._accepted(referred_user_id):
                    raise ConflictError(ErrorCode.ALREADY_ACCEPTED)
                raise ConflictError(ErrorCode.NO_PENDING_REFERRAL)

            if ensure_utc(pending.created_at) < now - self.expiry_window:
                await self.acceptances.transition(
                    pending.id, ReferralStatus.PENDING, ReferralStatus.EXPIRED, now
                )
                self.logger.info(
                    "Referral expired on accept",
                    extra={"acceptance_id": pending.id, "referred_user_id": referred_user_id},
                )
                raise ConflictError(
                    ErrorCode.EXPIRED,
                    "Referral invitation has expired",
                    persist=True,
                )

            if await self._accepted(referred_user_id):
                raise ConflictError(ErrorCode.ALREADY_ACCEPTED)

            flipped = await self.acceptances.transition(
                pending.id, ReferralStatus.PENDING, ReferralStatus.ACCEPTED, now
            )
            if not flipped:
                raise ConflictError(ErrorCode.ALREADY_ACCEPTED)

            await self._link(referred_user_id, pending.referrer_id, pending.referral_code)
            return pending.referrer_id

        return await self.run_locked(
            (referred_user_id,), "accept_referral", work,
            referred_user_id=referred_user_id,
        )

    async def reject(self, referred_user_id: int) -> ServiceResult[bool]:
        """
        Decline the user's PENDING referral.

        Returns:
            ok(True) if a row was rejected, ok(False) if there was none
        """
        async def work() -> bool:
            pending = await self.acceptances.get_pending_for_update(referred_user_id)
            if pending is None:
                return False
            rows = await self.acceptances.transition(
                pending.id, ReferralStatus.PENDING, ReferralStatus.REJECTED, utc_now()
            )
            return rows > 0

        return await self.run_locked(
            (referred_user_id,), "reject_referral", work,
            referred_user_id=referred_user_id,
        )

    async def accept_automatically(
        self, referred_user_id: int, code: str
    ) -> ServiceResult[int]:
        """
        Create a referral directly in ACCEPTED state.

        Same checks as create_pending; used by signup flows that credit
        the relationship immediately.

        Returns:
            ok(referrer id) or the create_pending failures
        """
        async def work() -> int:
            referrer, normalized = await self._check_new_referral(
                referred_user_id, code
            )
            now = utc_now()
            acceptance_id = await self.acceptances.insert_ignore(
                referred_user_id=referred_user_id,
                referrer_id=referrer.id,
                referral_code=normalized,
                status=ReferralStatus.ACCEPTED.value,
                created_at=now,
                processed_at=now,
            )
            if acceptance_id is None:
                raise ConflictError(ErrorCode.ALREADY_REFERRED)

            await self._link(referred_user_id, referrer.id, normalized)
            return referrer.id

        referrer_id = await self._referrer_key(code)
        return await self.run_locked(
            (referred_user_id, referrer_id), "accept_referral_automatically", work,
            referred_user_id=referred_user_id,
        )

    @with_auto_commit
    async def expire_stale(self) -> int:
        """
        Expire every PENDING referral older than the window.

        Returns:
            Number of referrals expired
        """
        now = utc_now()
        expired = await self.acceptances.expire_created_before(
            now - self.expiry_window, now
        )
        if expired:
            self.logger.info(f"Expired {expired} stale referrals")
        return expired

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def has_pending_referral(self, user_id: int) -> bool:
        return await self.acceptances.get_by_status(
            user_id, ReferralStatus.PENDING
        ) is not None

    async def has_accepted_referral(self, user_id: int) -> bool:
        return await self._accepted(user_id)

    async def get_accepted_referrer_id(self, user_id: int) -> int | None:
        """Referrer of the user's ACCEPTED referral, if any."""
        accepted = await self.acceptances.get_by_status(
            user_id, ReferralStatus.ACCEPTED
        )
        return accepted.referrer_id if accepted else None

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _referrer_key(self, code: str) -> int | None:
        """
        Referrer to lock alongside the referred user.

        The referrer limits count rows across all of the referrer's
        referrals, so concurrent signups with one code must serialize on
        the referrer. A malformed or unknown code yields None and fails
        validation inside the locked section.
        """
        referrer = await self.registry.lookup_by_code(code)
        return referrer.id if referrer else None

    async def _accepted(self, user_id: int) -> bool:
        return await self.acceptances.get_by_status(
            user_id, ReferralStatus.ACCEPTED
        ) is not None

    async def _check_new_referral(
        self, referred_user_id: int, code: str
    ) -> tuple[User, str]:
        referrer, normalized = await self.registry.resolve_referrer(code)
        if self.registry.is_self_referral(referrer.id, referred_user_id):
            raise ValidationError(
                ErrorCode.SELF_REFERRAL, "You cannot use your own referral code"
            )

        referred = await self.users.get_by_id(referred_user_id)
        if referred is None:
            raise ValidationError(ErrorCode.USER_NOT_FOUND)
        if referred.referred_by_id is not None:
            raise ConflictError(ErrorCode.ALREADY_REFERRED)
        if await self.acceptances.has_open(referred_user_id):
            raise ConflictError(ErrorCode.ALREADY_REFERRED)

        await self._check_referrer_limits(referrer.id)
        return referrer, normalized

    async def _check_referrer_limits(self, referrer_id: int) -> None:
        accepted = await self.acceptances.count_accepted_by_referrer(referrer_id)
        if accepted >= settings.referral_max_per_user:
            raise ConflictError(
                ErrorCode.REFERRER_LIMIT_REACHED,
                f"Referrer has reached {settings.referral_max_per_user} referrals",
            )

        recent = await self.acceptances.count_created_since(
            referrer_id, utc_now() - timedelta(hours=24)
        )
        if recent >= settings.referral_max_daily:
            self.logger.warning(
                "Referral rate limit hit",
                extra={"referrer_id": referrer_id, "last_24h": recent},
            )
            raise ConflictError(ErrorCode.SUSPICIOUS_ACTIVITY)

    async def _link(self, referred_user_id: int, referrer_id: int, code: str) -> None:
        if not await self.users.set_referred_by(referred_user_id, referrer_id):
            raise ConflictError(ErrorCode.ALREADY_REFERRED)
        await self.balances.increment_referrals(referrer_id)
        await self.invitations.insert_ignore(
            referrer_id=referrer_id,
            referred_user_id=referred_user_id,
            referral_code=code,
            created_at=utc_now(),
        )
        self.logger.info(
            "Referral accepted",
            extra={"referred_user_id": referred_user_id, "referrer_id": referrer_id},
        )
