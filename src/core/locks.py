"""Per-key locks serializing learner/course transitions.

With Redis configured the lock is distributed (redis-py ``Lock``), so
concurrent API workers serialize on the same learner/course pair. Without
Redis each key gets an ``asyncio.Lock`` in the current process, which is
enough for single-worker deployments and tests.
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
from redis.asyncio import Redis
from redis.exceptions import LockError


logger = structlog.get_logger(__name__)


class LockTimeoutError(Exception):
    """The lock could not be acquired within the blocking timeout."""

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Timed out waiting for lock {key}")


class KeyedLock:
    """Mutual exclusion keyed by an arbitrary string."""

    def __init__(
        self,
        redis: Redis | None = None,
        timeout: float = 10.0,
        blocking_timeout: float = 5.0,
    ):
        self.redis = redis
        self.timeout = timeout
        self.blocking_timeout = blocking_timeout
        self._local: dict[str, asyncio.Lock] = {}
        self._waiters: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        """Hold the lock for ``key`` for the duration of the block.

        Raises:
            LockTimeoutError: If the lock is busy for longer than the
                blocking timeout.
        """
        if self.redis is not None:
            async with self._hold_redis(key):
                yield
        else:
            async with self._hold_local(key):
                yield

    @asynccontextmanager
    async def _hold_redis(self, key: str) -> AsyncIterator[None]:
        lock = self.redis.lock(
            key,
            timeout=self.timeout,
            blocking_timeout=self.blocking_timeout,
        )
        if not await lock.acquire():
            logger.warning("lock_timeout", key=key, backend="redis")
            raise LockTimeoutError(key)
        try:
            yield
        finally:
            try:
                await lock.release()
            except LockError:
                # Expired while held; the version check still guards the write
                logger.warning("lock_expired_before_release", key=key)

    @asynccontextmanager
    async def _hold_local(self, key: str) -> AsyncIterator[None]:
        lock = self._local.setdefault(key, asyncio.Lock())
        self._waiters[key] = self._waiters.get(key, 0) + 1
        try:
            try:
                await asyncio.wait_for(lock.acquire(), timeout=self.blocking_timeout)
            except TimeoutError as e:
                logger.warning("lock_timeout", key=key, backend="local")
                raise LockTimeoutError(key) from e
            try:
                yield
            finally:
                lock.release()
        finally:
            self._waiters[key] -= 1
            if self._waiters[key] == 0:
                del self._waiters[key]
                self._local.pop(key, None)
