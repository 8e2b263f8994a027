import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict


class PathLocks:
    """One asyncio lock per store path so read-modify-write cycles on the
    same list run one after another inside this process."""

    def __init__(self, enabled: bool = True) -> None:
        self.enabled = enabled
        self._locks: Dict[str, asyncio.Lock] = {}

    def lock_for(self, path: str) -> asyncio.Lock:
        lock = self._locks.get(path)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[path] = lock
        return lock

    @asynccontextmanager
    async def hold(self, path: str) -> AsyncIterator[None]:
        if not self.enabled:
            yield
            return
        async with self.lock_for(path):
            yield
