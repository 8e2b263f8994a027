import asyncio
import json
import logging
from typing import Any, AsyncIterator, Dict, List, Optional
from uuid import uuid4

from motor.motor_asyncio import AsyncIOMotorCollection
from pymongo.errors import PyMongoError
from redis.exceptions import RedisError

from chatstore.database.store import KeyValueStore, StoreError, paths_overlap, split_path


logger = logging.getLogger(__name__)

CHANNEL_PREFIX = "store:"


class MongoStore(KeyValueStore):
    """Hierarchical store on top of a single Mongo collection.

    Each root path segment is one document, ``{_id: segment, value: tree}``.
    Nested writes become ``$set``/``$unset`` on the dotted path inside
    ``value``. Watchers on this instance are woken directly after each write;
    the write is also announced on the realtime bus, tagged with this
    instance's origin, so that watchers in other processes can re-read.
    """

    def __init__(self, collection: AsyncIOMotorCollection, bus) -> None:
        self._collection = collection
        self._bus = bus
        self._origin = uuid4().hex
        self._watchers: List[tuple[str, asyncio.Queue]] = []

    @property
    def collection(self) -> AsyncIOMotorCollection:
        return self._collection

    async def get(self, path: str) -> Optional[Any]:
        root, rest = self._locate(path)
        try:
            doc = await self._collection.find_one({"_id": root})
        except PyMongoError as exc:
            raise StoreError(str(exc)) from exc
        if not doc:
            return None
        node: Any = doc.get("value")
        for segment in rest:
            if isinstance(node, dict):
                node = node.get(segment)
            elif isinstance(node, list) and segment.isdigit() and int(segment) < len(node):
                node = node[int(segment)]
            else:
                return None
            if node is None:
                return None
        return node

    async def set(self, path: str, value: Any) -> None:
        root, rest = self._locate(path)
        try:
            if not rest:
                if value is None:
                    await self._collection.delete_one({"_id": root})
                else:
                    await self._collection.update_one({"_id": root}, {"$set": {"value": value}}, upsert=True)
            else:
                field = self._field(rest)
                if value is None:
                    await self._collection.update_one({"_id": root}, {"$unset": {field: ""}})
                else:
                    await self._collection.update_one({"_id": root}, {"$set": {field: value}}, upsert=True)
        except PyMongoError as exc:
            raise StoreError(str(exc)) from exc
        await self._announce(root, path)

    async def update(self, path: str, values: Dict[str, Any]) -> None:
        root, rest = self._locate(path)
        to_set: Dict[str, Any] = {}
        to_unset: Dict[str, str] = {}
        for key, value in values.items():
            field = self._field(rest + split_path(key))
            if value is None:
                to_unset[field] = ""
            else:
                to_set[field] = value
        operation: Dict[str, Any] = {}
        if to_set:
            operation["$set"] = to_set
        if to_unset:
            operation["$unset"] = to_unset
        if not operation:
            return
        try:
            await self._collection.update_one({"_id": root}, operation, upsert=True)
        except PyMongoError as exc:
            raise StoreError(str(exc)) from exc
        await self._announce(root, path)

    async def watch(self, path: str) -> AsyncIterator[Optional[Any]]:
        root, _ = self._locate(path)
        changes: asyncio.Queue = asyncio.Queue()
        entry = (path, changes)

        async def on_message(raw: str) -> None:
            try:
                announced = json.loads(raw)
                origin, changed = announced["origin"], announced["path"]
            except (ValueError, TypeError, KeyError):
                logger.debug("Ignoring malformed change announcement on %s: %r", root, raw)
                return
            # writes from this instance were already delivered locally
            if origin != self._origin and paths_overlap(path, changed):
                changes.put_nowait(changed)

        self._watchers.append(entry)
        subscription = await self._bus.subscribe(CHANNEL_PREFIX + root, on_message)
        if not getattr(self._bus, "enabled", False):
            logger.debug("Realtime bus disabled, watch on %s only sees writes made through this store", path)
        runner = asyncio.create_task(subscription.run())
        try:
            yield await self.get(path)
            while True:
                await changes.get()
                while not changes.empty():
                    changes.get_nowait()
                yield await self.get(path)
        finally:
            self._watchers.remove(entry)
            await subscription.cancel()
            runner.cancel()

    async def close(self) -> None:
        await self._bus.close()
        self._collection.database.client.close()

    @staticmethod
    def _locate(path: str) -> tuple[str, List[str]]:
        segments = split_path(path)
        return segments[0], segments[1:]

    @staticmethod
    def _field(segments: List[str]) -> str:
        return ".".join(["value", *segments])

    async def _announce(self, root: str, path: str) -> None:
        for watched, queue in self._watchers:
            if paths_overlap(watched, path):
                queue.put_nowait(path)
        message = json.dumps({"origin": self._origin, "path": path})
        try:
            await self._bus.publish(CHANNEL_PREFIX + root, message)
        except RedisError:
            # the write itself already succeeded
            logger.warning("Failed to announce change on %s", path, exc_info=True)
