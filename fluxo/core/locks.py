"""
Per-key asyncio locks.

Serialises work for the same key (a user ID) inside one process while
letting different keys proceed concurrently. Used around customer
creation and subscription upserts; the database unique constraint on
subscriptions.user_id remains the cross-process guard.

Dependencies: asyncio (stdlib)
System role: In-process write serialisation for billing state
"""

import asyncio
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import AsyncIterator, Hashable


class KeyedLock:
    """Registry of asyncio locks keyed by an arbitrary hashable value."""

    def __init__(self) -> None:
        self._locks: defaultdict[Hashable, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._waiters: defaultdict[Hashable, int] = defaultdict(int)

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        """
        Hold the lock for key for the duration of the block.

        The lock entry is discarded once nobody holds or waits for it so the
        registry does not grow with every user ever seen.

        Args:
            key: Value identifying the serialised resource
        """
        self._waiters[key] += 1
        lock = self._locks[key]
        try:
            async with lock:
                yield
        finally:
            self._waiters[key] -= 1
            if self._waiters[key] == 0:
                del self._waiters[key]
                self._locks.pop(key, None)

    def __len__(self) -> int:
        return len(self._locks)
