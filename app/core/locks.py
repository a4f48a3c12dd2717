import asyncio
from contextlib import asynccontextmanager
from typing import Dict, Hashable, List


class KeyedLocks:
    """
    One asyncio.Lock per key, created on first use and dropped once no
    task holds or waits on it. Unrelated keys never contend.
    """

    def __init__(self):
        self._locks: Dict[Hashable, List] = {}

    @asynccontextmanager
    async def hold(self, key: Hashable):
        entry = self._locks.get(key)
        if entry is None:
            entry = [asyncio.Lock(), 0]
            self._locks[key] = entry
        entry[1] += 1
        try:
            async with entry[0]:
                yield
        finally:
            entry[1] -= 1
            if entry[1] == 0:
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)

    def __contains__(self, key: Hashable) -> bool:
        return key in self._locks


allocation_locks = KeyedLocks()
