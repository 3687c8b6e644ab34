"""Tests for the per-professional scheduling locks."""

import asyncio

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import LockError

from app.core.exceptions import StoreFailureException
from app.core.locks import LocalSchedulingLock, RedisSchedulingLock
from tests.fakes import OTHER_PROFESSIONAL_ID, PROFESSIONAL_ID


class FakeRedisLock:
    def __init__(self, acquired=True, acquire_error=None, release_error=None):
        self.acquired = acquired
        self.acquire_error = acquire_error
        self.release_error = release_error
        self.released = False

    async def acquire(self):
        if self.acquire_error is not None:
            raise self.acquire_error
        return self.acquired

    async def release(self):
        self.released = True
        if self.release_error is not None:
            raise self.release_error


class FakeRedis:
    def __init__(self, lock: FakeRedisLock):
        self._lock = lock
        self.calls = []

    def lock(self, name, timeout=None, blocking_timeout=None):
        self.calls.append((name, timeout, blocking_timeout))
        return self._lock


@pytest.mark.asyncio
async def test_local_lock_serializes_same_professional() -> None:
    lock = LocalSchedulingLock(blocking_timeout=1.0)
    events = []

    async def critical(name: str) -> None:
        async with lock.hold(PROFESSIONAL_ID):
            events.append(f"{name}:enter")
            await asyncio.sleep(0.01)
            events.append(f"{name}:exit")

    await asyncio.gather(critical("a"), critical("b"))

    assert events == ["a:enter", "a:exit", "b:enter", "b:exit"]


@pytest.mark.asyncio
async def test_local_lock_does_not_block_other_professionals() -> None:
    lock = LocalSchedulingLock(blocking_timeout=0.05)

    async with lock.hold(PROFESSIONAL_ID):
        async with lock.hold(OTHER_PROFESSIONAL_ID):
            pass


@pytest.mark.asyncio
async def test_local_lock_times_out() -> None:
    lock = LocalSchedulingLock(blocking_timeout=0.01)

    async with lock.hold(PROFESSIONAL_ID):
        with pytest.raises(StoreFailureException):
            async with lock.hold(PROFESSIONAL_ID):
                pass

    # Released after the failed wait
    async with lock.hold(PROFESSIONAL_ID):
        pass


@pytest.mark.asyncio
async def test_redis_lock_acquires_and_releases() -> None:
    redis_lock = FakeRedisLock()
    redis = FakeRedis(redis_lock)
    lock = RedisSchedulingLock(redis, timeout=10.0, blocking_timeout=2.0)

    async with lock.hold(PROFESSIONAL_ID):
        assert not redis_lock.released

    assert redis_lock.released
    assert redis.calls == [(f"scheduling:professional:{PROFESSIONAL_ID}", 10.0, 2.0)]


@pytest.mark.asyncio
async def test_redis_lock_not_acquired() -> None:
    lock = RedisSchedulingLock(FakeRedis(FakeRedisLock(acquired=False)))

    with pytest.raises(StoreFailureException):
        async with lock.hold(PROFESSIONAL_ID):
            pass


@pytest.mark.asyncio
async def test_redis_unavailable_is_a_store_failure() -> None:
    lock = RedisSchedulingLock(FakeRedis(FakeRedisLock(acquire_error=RedisConnectionError("refused"))))

    with pytest.raises(StoreFailureException) as exc_info:
        async with lock.hold(PROFESSIONAL_ID):
            pass

    assert exc_info.value.retryable is True


@pytest.mark.asyncio
async def test_redis_lock_expired_before_release() -> None:
    redis_lock = FakeRedisLock(release_error=LockError("expired"))
    lock = RedisSchedulingLock(FakeRedis(redis_lock))

    async with lock.hold(PROFESSIONAL_ID):
        pass

    assert redis_lock.released


@pytest.mark.asyncio
async def test_local_lock_forgets_professionals_after_release() -> None:
    lock = LocalSchedulingLock(blocking_timeout=1.0)

    async with lock.hold(PROFESSIONAL_ID):
        async with lock.hold(OTHER_PROFESSIONAL_ID):
            assert set(lock._locks) == {PROFESSIONAL_ID, OTHER_PROFESSIONAL_ID}

    assert lock._locks == {}


@pytest.mark.asyncio
async def test_local_lock_entry_survives_while_a_task_waits() -> None:
    lock = LocalSchedulingLock(blocking_timeout=1.0)
    entered = asyncio.Event()

    async def waiter() -> None:
        async with lock.hold(PROFESSIONAL_ID):
            entered.set()

    async with lock.hold(PROFESSIONAL_ID):
        task = asyncio.create_task(waiter())
        await asyncio.sleep(0)
        held = lock._locks[PROFESSIONAL_ID]

    assert lock._locks[PROFESSIONAL_ID] is held
    await task
    assert entered.is_set()
    assert lock._locks == {}


@pytest.mark.asyncio
async def test_local_lock_forgets_professional_after_timeout() -> None:
    lock = LocalSchedulingLock(blocking_timeout=0.01)

    async with lock.hold(PROFESSIONAL_ID):
        with pytest.raises(StoreFailureException):
            async with lock.hold(PROFESSIONAL_ID):
                pass
        assert PROFESSIONAL_ID in lock._locks

    assert lock._locks == {}
