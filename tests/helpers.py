import asyncio
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, Optional

from chatstore.database.memory_store import InMemoryStore
from chatstore.database.store import StoreError
from chatstore.schemas.message import OutgoingMessage, TextPayload
from chatstore.schemas.user import UserRecord


BASE_TIME = datetime(2021, 12, 2, 15, 4, 5, tzinfo=timezone.utc)


class FailingStore(InMemoryStore):
    """In-memory store whose writes to selected paths are rejected."""

    def __init__(self, fail_writes: Iterable[str] = (), initial: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(initial)
        self.fail_writes = set(fail_writes)
        self.write_attempts: Counter = Counter()

    async def set(self, path: str, value: Any) -> None:
        self.write_attempts[path] += 1
        if path in self.fail_writes:
            raise StoreError(f"write to {path} rejected")
        await super().set(path, value)

    async def update(self, path: str, values: Dict[str, Any]) -> None:
        self.write_attempts[path] += 1
        if path in self.fail_writes:
            raise StoreError(f"write to {path} rejected")
        await super().update(path, values)


class SlowStore(InMemoryStore):
    """In-memory store that takes ``delay`` seconds for every call on ``slow_paths``."""

    def __init__(self, slow_paths: Iterable[str] = (), delay: float = 0.5) -> None:
        super().__init__()
        self.slow_paths = set(slow_paths)
        self.delay = delay
        self.calls: Counter = Counter()

    async def _stall(self, path: str) -> None:
        self.calls[path] += 1
        if path in self.slow_paths:
            await asyncio.sleep(self.delay)

    async def get(self, path: str) -> Optional[Any]:
        await self._stall(path)
        return await super().get(path)

    async def set(self, path: str, value: Any) -> None:
        await self._stall(path)
        await super().set(path, value)


class InterleavingStore(InMemoryStore):
    """Holds each read of ``gated_path`` until a second reader has read it too,
    or until ``wait`` seconds pass. Forces two read-modify-write cycles to read
    the same list before either writes, unless something serializes them."""

    def __init__(self, gated_path: str, wait: float = 0.2) -> None:
        super().__init__()
        self._gated_path = gated_path
        self._wait = wait
        self._readers = 0
        self._second_reader = asyncio.Event()

    async def get(self, path: str) -> Optional[Any]:
        value = await super().get(path)
        if path == self._gated_path and not self._second_reader.is_set():
            self._readers += 1
            if self._readers >= 2:
                self._second_reader.set()
            else:
                try:
                    await asyncio.wait_for(self._second_reader.wait(), timeout=self._wait)
                except asyncio.TimeoutError:
                    pass
        return value


def make_message(message_id: str, text: str = "hello", offset_seconds: int = 0) -> OutgoingMessage:
    return OutgoingMessage(
        id=message_id,
        sent_at=BASE_TIME + timedelta(seconds=offset_seconds),
        payload=TextPayload(text=text),
    )


def make_user(uid: str, first: str, last: str) -> UserRecord:
    return UserRecord(uid=uid, first_name=first, last_name=last, email=f"{uid}@example.com")


