"""
Per-key mutual exclusion for WorkDay reconciliation.

Two corrections touching the same (user, local date, location) must not
recompute the same WorkDay concurrently. ``KeyedLock`` serialises within
one process; ``RedisKeyedLock`` serialises across workers sharing a redis.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Hashable
from contextlib import asynccontextmanager

import redis.asyncio as aioredis

from timeledger.core.config import settings

logger = logging.getLogger(__name__)


class KeyedLock:
    """A lazily-created ``asyncio.Lock`` per key, dropped once nobody holds or waits on it."""

    def __init__(self) -> None:
        self._locks: dict[Hashable, asyncio.Lock] = {}
        self._waiters: dict[Hashable, int] = {}

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._waiters[key] = self._waiters.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[key] -= 1
            if self._waiters[key] == 0:
                del self._waiters[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)


class RedisKeyedLock:
    """Redis-backed lock per key, for deployments running several workers."""

    def __init__(self, url: str, timeout: float) -> None:
        self._client = aioredis.from_url(url)
        self._timeout = timeout

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        name = "timeledger:workday:" + ":".join(str(part) for part in _as_tuple(key))
        lock = self._client.lock(name, timeout=self._timeout, blocking_timeout=self._timeout)
        async with lock:
            yield


def _as_tuple(key: Hashable) -> tuple:
    return tuple(key) if isinstance(key, tuple) else (key,)


def build_lock() -> KeyedLock | RedisKeyedLock:
    if settings.LOCK_BACKEND == "redis":
        logger.info("Using redis for per-key reconcile locks")
        return RedisKeyedLock(settings.REDIS_URL, settings.LOCK_TIMEOUT_SECONDS)
    return KeyedLock()


workday_locks = build_lock()
