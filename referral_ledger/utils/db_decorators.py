"""
Database decorators for automatic commit and rollback.

Provides decorators for async functions and service methods that use
SQLAlchemy sessions.
"""

from collections.abc import Callable
from functools import wraps
from typing import Any, TypeVar

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession


T = TypeVar("T")


def _find_session(args: tuple[Any, ...], kwargs: dict[str, Any]) -> AsyncSession | None:
    """Locate the session in kwargs, the first argument or on self."""
    session = kwargs.get('session')
    if session is None and args:
        first = args[0]
        if isinstance(first, AsyncSession):
            session = first
        elif isinstance(getattr(first, 'session', None), AsyncSession):
            session = first.session
    return session


async def _safe_rollback(session: AsyncSession, func_name: str, error: Exception) -> None:
    try:
        await session.rollback()
        logger.info(
            f"Rollback performed in {func_name} due to error: {type(error).__name__}"
        )
    except Exception as rollback_error:
        logger.opt(exception=True).error(
            "Failed to rollback in {}: {}", func_name, rollback_error
        )


def with_auto_commit(func: Callable[..., T]) -> Callable[..., T]:
    """
    Decorator that commits the session on success and rolls back on error.

    Usage:
        @with_auto_commit
        async def deactivate_expired(self) -> int:
            ...  # commit happens automatically

    Args:
        func: Async function to wrap

    Returns:
        Wrapped function with automatic commit/rollback
    """
    @wraps(func)
    async def wrapper(*args: Any, **kwargs: Any) -> T:
        session = _find_session(args, kwargs)
        if session is None:
            logger.warning(
                f"Function {func.__name__} decorated with @with_auto_commit "
                f"but no session argument found. Commit/rollback will not be performed."
            )
            return await func(*args, **kwargs)

        try:
            result = await func(*args, **kwargs)
            await session.commit()
            logger.debug(f"Auto-commit performed in {func.__name__}")
            return result
        except Exception as e:
            await _safe_rollback(session, func.__name__, e)
            raise

    return wrapper
