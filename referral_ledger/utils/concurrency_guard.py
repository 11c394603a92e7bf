"""
Per-user concurrency guard.

Serializes money-moving operations on the same user inside one process.
Each user id maps to an asyncio.Lock; multi-user operations take their
locks in ascending id order so two operations over the same pair of users
can never wait on each other. Waits are bounded, and idle locks are swept
once the map grows past a threshold.

This is a per-process guard only. Across processes the database unique
constraints and conditional updates are what keep rewards single-shot.
"""

import asyncio
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

from loguru import logger

from referral_ledger.config.settings import settings
from referral_ledger.utils.exceptions import ConcurrencyTimeoutError


@dataclass
class _Entry:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    # Holders plus waiters; an entry with refs > 0 is never swept
    refs: int = 0
    last_used: float = field(default_factory=time.monotonic)


class ConcurrencyGuard:
    """Map of user id to lock with bounded acquisition."""

    def __init__(
        self,
        timeout: float | None = None,
        sweep_threshold: int | None = None,
    ) -> None:
        """
        Initialize guard.

        Args:
            timeout: Seconds to wait for each lock
            sweep_threshold: Map size above which idle entries are removed
        """
        self.timeout = timeout if timeout is not None else settings.lock_timeout_seconds
        self.sweep_threshold = (
            sweep_threshold if sweep_threshold is not None
            else settings.lock_sweep_threshold
        )
        self._entries: dict[int, _Entry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def is_held(self, user_id: int) -> bool:
        """Check whether some task currently holds the user's lock."""
        entry = self._entries.get(user_id)
        return entry is not None and entry.lock.locked()

    @asynccontextmanager
    async def hold(self, *user_ids: int | None) -> AsyncIterator[tuple[int, ...]]:
        """
        Hold the locks of all given users.

        None values are ignored and duplicates collapse, so callers can pass
        an optional counterparty directly.

        Args:
            *user_ids: Users to lock

        Yields:
            Tuple of locked user ids in acquisition order

        Raises:
            ConcurrencyTimeoutError: If any lock is not acquired in time.
                Locks already taken are released first.
        """
        keys = tuple(sorted({uid for uid in user_ids if uid is not None}))
        acquired: list[int] = []
        try:
            for key in keys:
                await self._acquire(key)
                acquired.append(key)
            yield keys
        finally:
            for key in reversed(acquired):
                self._release(key)

    async def _acquire(self, key: int) -> None:
        entry = self._entries.get(key)
        if entry is None:
            entry = _Entry()
            self._entries[key] = entry
        entry.refs += 1
        try:
            async with asyncio.timeout(self.timeout):
                await entry.lock.acquire()
        except TimeoutError:
            entry.refs -= 1
            logger.warning(
                "User lock wait timed out",
                extra={"user_id": key, "timeout": self.timeout},
            )
            raise ConcurrencyTimeoutError((key,), self.timeout) from None
        except BaseException:
            entry.refs -= 1
            raise

    def _release(self, key: int) -> None:
        entry = self._entries[key]
        entry.lock.release()
        entry.refs -= 1
        entry.last_used = time.monotonic()
        if len(self._entries) > self.sweep_threshold:
            self.sweep()

    def sweep(self) -> int:
        """
        Remove entries nobody holds or waits on.

        Returns:
            Number of entries removed
        """
        idle = [
            key for key, entry in self._entries.items()
            if entry.refs == 0 and not entry.lock.locked()
        ]
        for key in idle:
            del self._entries[key]
        if idle:
            logger.debug(f"Swept {len(idle)} idle user locks")
        return len(idle)


# Process-wide guard used by services unless one is injected
user_guard = ConcurrencyGuard()
