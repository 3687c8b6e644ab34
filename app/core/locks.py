"""Per-professional scheduling locks.

The conflict check and the save of a new window must not interleave for the same
professional, otherwise two overlapping bookings could both pass the check. Every
operation that writes an appointment holds the professional's lock across
load-check-save.
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import Protocol
from uuid import UUID

import structlog
from redis.asyncio import Redis
from redis.exceptions import LockError, RedisError

from app.core.exceptions import StoreFailureException

logger = structlog.get_logger(__name__)


class SchedulingLock(Protocol):
    """Serializes load-check-save per professional."""

    def hold(self, professional_id: UUID) -> AbstractAsyncContextManager[None]:
        """Async context manager holding the professional's lock."""
        ...


class RedisSchedulingLock:
    """Redis-backed lock shared by every API worker."""

    KEY_PREFIX = "scheduling:professional"

    def __init__(
        self,
        redis_client: Redis,
        timeout: float = 20.0,
        blocking_timeout: float = 5.0,
    ):
        """
        Initialize the lock.

        Args:
            redis_client: Async Redis client
            timeout: Seconds after which a held lock expires on its own
            blocking_timeout: Seconds to wait for the lock before giving up
        """
        self.redis = redis_client
        self.timeout = timeout
        self.blocking_timeout = blocking_timeout

    def _key(self, professional_id: UUID) -> str:
        return f"{self.KEY_PREFIX}:{professional_id}"

    @asynccontextmanager
    async def hold(self, professional_id: UUID) -> AsyncIterator[None]:
        """Hold the professional's lock for the duration of the block."""
        lock = self.redis.lock(
            self._key(professional_id),
            timeout=self.timeout,
            blocking_timeout=self.blocking_timeout,
        )
        try:
            acquired = await lock.acquire()
        except RedisError as e:
            logger.error(
                "scheduling_lock_unavailable",
                professional_id=str(professional_id),
                error=str(e),
            )
            raise StoreFailureException("Scheduling lock unavailable") from e

        if not acquired:
            logger.warning("scheduling_lock_timeout", professional_id=str(professional_id))
            raise StoreFailureException("Timed out waiting for the professional's schedule")

        try:
            yield
        finally:
            try:
                await lock.release()
            except LockError:
                # Expired while held; the window write already finished or failed.
                logger.warning(
                    "scheduling_lock_expired_before_release",
                    professional_id=str(professional_id),
                )


class LocalSchedulingLock:
    """
    In-process lock registry for single-worker deployments.

    A professional's entry lives only while some task holds or waits for it.
    """

    def __init__(self, blocking_timeout: float = 5.0):
        """Initialize an empty registry."""
        self.blocking_timeout = blocking_timeout
        self._locks: dict[UUID, asyncio.Lock] = {}
        self._users: dict[UUID, int] = {}

    def _checkout(self, professional_id: UUID) -> asyncio.Lock:
        lock = self._locks.get(professional_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[professional_id] = lock
        self._users[professional_id] = self._users.get(professional_id, 0) + 1
        return lock

    def _checkin(self, professional_id: UUID) -> None:
        remaining = self._users[professional_id] - 1
        if remaining:
            self._users[professional_id] = remaining
        else:
            del self._users[professional_id]
            del self._locks[professional_id]

    @asynccontextmanager
    async def hold(self, professional_id: UUID) -> AsyncIterator[None]:
        """Hold the professional's lock for the duration of the block."""
        lock = self._checkout(professional_id)
        try:
            try:
                await asyncio.wait_for(lock.acquire(), timeout=self.blocking_timeout)
            except TimeoutError as e:
                logger.warning("scheduling_lock_timeout", professional_id=str(professional_id))
                raise StoreFailureException(
                    "Timed out waiting for the professional's schedule"
                ) from e
            try:
                yield
            finally:
                lock.release()
        finally:
            self._checkin(professional_id)
