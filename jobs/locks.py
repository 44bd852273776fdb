"""Keyed asyncio locks for per-entity serialisation."""
import asyncio
from contextlib import asynccontextmanager


class EntityLocks:
    """One lock per key such as ``tip:<id>`` or ``creator:<id>``.

    Locks are dropped once nobody holds or waits for them.
    """

    def __init__(self):
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str):
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)
