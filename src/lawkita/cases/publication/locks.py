"""Per-key async locks."""

import asyncio
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import AsyncIterator


class KeyedLock:
    """One asyncio.Lock per key.

    Serializes writes that target the same canonical case while letting
    different cases proceed in parallel. Locks for keys nobody is waiting
    on are discarded on release.
    """

    def __init__(self):
        self._locks: dict[str, asyncio.Lock] = {}
        self._waiters: dict[str, int] = defaultdict(int)

    @asynccontextmanager
    async def hold(self, *keys: str) -> AsyncIterator[None]:
        """Acquire the locks for all keys, in sorted order."""
        ordered = sorted(set(k for k in keys if k))
        acquired: list[str] = []
        try:
            for key in ordered:
                lock = self._locks.setdefault(key, asyncio.Lock())
                self._waiters[key] += 1
                try:
                    await lock.acquire()
                except BaseException:
                    self._release_waiter(key)
                    raise
                acquired.append(key)
            yield
        finally:
            for key in reversed(acquired):
                self._locks[key].release()
                self._release_waiter(key)

    def _release_waiter(self, key: str) -> None:
        self._waiters[key] -= 1
        if self._waiters[key] <= 0:
            self._waiters.pop(key, None)
            self._locks.pop(key, None)

    def __len__(self) -> int:
        return len(self._locks)
