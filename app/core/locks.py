"""
Keyed asyncio locks — single writer per key inside one process.

Used by the analytics store so that every read-modify-write of a user's aggregate
row is serialized. Locks are reference counted and dropped once no coroutine holds
or waits on them, so the registry does not grow with the number of users seen.
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager


class KeyedLock:
    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._waiters: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
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


# Process-wide registry for aggregate rows, keyed by user_id
aggregate_locks = KeyedLock()
