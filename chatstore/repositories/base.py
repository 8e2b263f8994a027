import asyncio
import logging
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional, TypeVar

from chatstore.config import Settings, get_settings
from chatstore.database.store import KeyValueStore, StoreError
from chatstore.errors import FetchFailed, MalformedRecord, StoreTimeout, WriteFailed
from chatstore.schemas.results import FetchResult
from chatstore.utils.path_locks import PathLocks
from chatstore.utils.retry import backoff_delays


logger = logging.getLogger(__name__)

T = TypeVar("T")

ListMutation = Callable[[List[Any]], Optional[List[Any]]]


class BaseRepository:
    """Store access shared by the repositories.

    Every call is bounded by ``settings.store_timeout``. List writes go
    through :meth:`_modify_list`, which holds the per-path lock for the whole
    read-modify-write cycle and retries it on store failures.
    """

    def __init__(
        self,
        store: KeyValueStore,
        settings: Optional[Settings] = None,
        locks: Optional[PathLocks] = None,
    ) -> None:
        self._store = store
        self._settings = settings or get_settings()
        self._locks = locks or PathLocks(enabled=self._settings.serialize_writes)

    @property
    def store(self) -> KeyValueStore:
        return self._store

    async def _bounded(self, path: str, call: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(call, timeout=self._settings.store_timeout)
        except asyncio.TimeoutError as exc:
            raise StoreTimeout(path, self._settings.store_timeout) from exc

    async def _get(self, path: str) -> Optional[Any]:
        try:
            return await self._bounded(path, self._store.get(path))
        except StoreError as exc:
            raise FetchFailed(path, str(exc)) from exc

    async def _set(self, path: str, value: Any) -> None:
        try:
            await self._bounded(path, self._store.set(path, value))
        except StoreError as exc:
            raise WriteFailed(path, str(exc)) from exc

    async def _update(self, path: str, values: Dict[str, Any]) -> None:
        try:
            await self._bounded(path, self._store.update(path, values))
        except StoreError as exc:
            raise WriteFailed(path, str(exc)) from exc

    async def get_data_for(self, path: str) -> Any:
        """Read whatever is stored at ``path``; absence is a failed fetch."""

        value = await self._get(path)
        if value is None:
            raise FetchFailed(path, "nothing stored")
        return value

    async def _modify_list(self, path: str, mutate: ListMutation) -> List[Any]:
        """Read the list at ``path``, apply ``mutate`` and write the result back.

        A missing or non-list value is treated as an empty list. ``mutate`` must
        be idempotent: it may run again after a failed attempt. Returning ``None``
        from ``mutate`` skips the write.
        """

        delays = backoff_delays(self._settings.retry_base_delay, self._settings.retry_max_delay)
        attempt = 1
        while True:
            try:
                async with self._locks.hold(path):
                    current = await self._get(path)
                    items = list(current) if isinstance(current, list) else []
                    updated = mutate(items)
                    if updated is None:
                        return items
                    await self._set(path, updated)
                    return updated
            except (FetchFailed, WriteFailed, StoreTimeout) as exc:
                if attempt >= self._settings.retry_attempts:
                    raise
                delay = next(delays)
                logger.debug("Retrying update of %s in %.2fs (attempt %d): %s", path, delay, attempt, exc)
                attempt += 1
                await asyncio.sleep(delay)

    async def _subscribe_list(self, path: str, decode: Callable[[Any], T]) -> AsyncIterator[FetchResult[List[T]]]:
        try:
            async for value in self._store.watch(path):
                try:
                    yield FetchResult(value=self._decode_list(path, value, decode))
                except FetchFailed as exc:
                    yield FetchResult(error=exc)
        except StoreError as exc:
            # the watch cannot continue after the backend failed
            logger.warning("Subscription on %s ended: %s", path, exc)
            yield FetchResult(error=FetchFailed(path, str(exc)))

    @staticmethod
    def _decode_list(path: str, value: Any, decode: Callable[[Any], T]) -> List[T]:
        """Decode every element of a stored list, skipping malformed ones.

        A value that is not a list at all is a failed fetch, not an empty result.
        """

        if not isinstance(value, list):
            raise FetchFailed(path, "no list stored" if value is None else "stored value is not a list")
        decoded: List[T] = []
        for index, item in enumerate(value):
            try:
                decoded.append(decode(item))
            except MalformedRecord as exc:
                logger.debug("Skipping malformed element %d of %s: %s", index, path, exc)
        return decoded


def upsert_by_id(items: List[Any], document: Dict[str, Any], key: str = "id") -> List[Any]:
    """Replace the element whose ``key`` matches ``document``, or append it."""

    for index, item in enumerate(items):
        if isinstance(item, dict) and item.get(key) == document[key]:
            items[index] = document
            return items
    items.append(document)
    return items

