"""
Base service class.

Provides common functionality for all service classes including session
management, logging, the result container and the locked-operation runner.
"""

from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from referral_ledger.utils.concurrency_guard import ConcurrencyGuard, user_guard
from referral_ledger.utils.exceptions import (
    EXPECTED_OUTCOMES,
    ConflictError,
    ErrorCode,
    LedgerError,
    StorageError,
)


# Type variable for result payloads
T = TypeVar("T")


@dataclass
class ServiceResult(Generic[T]):
    """
    Standard service result container.

    Expected business outcomes (validation failures, lost races) come back
    as failed results. Faults (lock timeouts, storage errors) are raised.
    """
    success: bool
    data: T | None = None
    error: str | None = None
    error_code: ErrorCode | None = None
    exception: LedgerError | None = field(default=None, repr=False, compare=False)

    @classmethod
    def ok(cls, data: T | None = None) -> "ServiceResult[T]":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, exc: LedgerError) -> "ServiceResult[T]":
        return cls(
            success=False,
            error=exc.message,
            error_code=exc.code,
            exception=exc,
        )

    @property
    def is_conflict(self) -> bool:
        """True if the failure is an expected race or state conflict."""
        return isinstance(self.exception, ConflictError)

    def unwrap(self) -> T | None:
        """
        Return data or raise the failure.

        Raises:
            LedgerError: The exception the failure was built from
        """
        if self.success:
            return self.data
        if self.exception is not None:
            raise self.exception
        raise LedgerError(self.error_code or ErrorCode.STORAGE_ERROR, self.error)


class BaseService:
    """
    Base service class.

    Provides common functionality for all service classes:
    - Session management
    - Logging with bound service context
    - Locked, single-transaction execution of mutations
    """

    def __init__(
        self, session: AsyncSession, guard: ConcurrencyGuard | None = None
    ) -> None:
        """
        Initialize base service.

        Args:
            session: Async database session
            guard: Per-user lock map (process-wide guard by default)
        """
        self.session = session
        self.guard = guard if guard is not None else user_guard
        self.logger = logger.bind(service=self.__class__.__name__)

    async def commit(self) -> None:
        """Commit current transaction."""
        await self.session.commit()

    async def rollback(self) -> None:
        """Rollback current transaction."""
        await self.session.rollback()

    async def release_snapshot(self) -> None:
        """
        End any transaction opened by reads done before locking.

        Operations must start their transaction after the user lock is
        held; a transaction opened earlier could keep database locks
        while waiting on the user lock.
        """
        if self.session.in_transaction():
            await self.session.rollback()

    async def run_locked(
        self,
        keys: Iterable[int | None],
        operation: str,
        work: Callable[[], Awaitable[T]],
        **context: Any,
    ) -> ServiceResult[T]:
        """
        Run work under user locks in a single transaction.

        Args:
            keys: User IDs to lock (None entries ignored)
            operation: Name for logs
            work: Coroutine factory doing the reads and writes
            **context: IDs logged with failures

        Returns:
            ok(result of work) after commit, or fail(error) after rollback

        Raises:
            ConcurrencyTimeoutError: If a user lock is not acquired in time
            StorageError: If the database fails; the transaction is rolled back
        """
        await self.release_snapshot()

        async with self.guard.hold(*keys):
            try:
                data = await work()
                await self.session.commit()
            except EXPECTED_OUTCOMES as e:
                if e.persist:
                    await self.session.commit()
                else:
                    await self.session.rollback()
                self.logger.info(
                    f"{operation} rejected: {e.code.value}",
                    extra={"operation": operation, "error_code": e.code.value, **context},
                )
                return ServiceResult.fail(e)
            except SQLAlchemyError as e:
                await self.session.rollback()
                self.logger.error(
                    f"{operation} failed, transaction rolled back",
                    extra={"operation": operation, "error": str(e), **context},
                )
                raise StorageError(f"{operation} failed: {e}") from e
            except Exception:
                await self.session.rollback()
                raise

        return ServiceResult.ok(data)
