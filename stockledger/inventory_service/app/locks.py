"""Per-key mutual exclusion for ledger mutations."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager


def product_key(product_id: int) -> str:
    return f"product:{product_id}"


def sku_key(sku: str) -> str:
    return f"sku:{sku}"


class KeyedLock:
    """Hand out one ``asyncio.Lock`` per key, created on demand.

    Locks are reference counted and dropped once no holder or waiter remains,
    so the registry only grows with the number of keys in flight.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._refs: dict[str, int] = {}

    def _acquire_ref(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        self._refs[key] = self._refs.get(key, 0) + 1
        return lock

    def _release_ref(self, key: str) -> None:
        remaining = self._refs[key] - 1
        if remaining:
            self._refs[key] = remaining
        else:
            del self._refs[key]
            del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)

    def locked(self, key: str) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def hold(self, *keys: str) -> AsyncIterator[None]:
        """Hold every lock in ``keys``; sorted acquisition keeps overlapping holders deadlock-free."""

        ordered = sorted(set(keys))
        locks = [self._acquire_ref(key) for key in ordered]
        acquired: list[asyncio.Lock] = []
        try:
            for lock in locks:
                await lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()
            for key in ordered:
                self._release_ref(key)
