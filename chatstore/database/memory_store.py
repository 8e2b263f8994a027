import asyncio
import copy
import logging
from typing import Any, AsyncIterator, Dict, List, Optional

from chatstore.database.store import KeyValueStore, StoreError, paths_overlap, split_path


logger = logging.getLogger(__name__)


class InMemoryStore(KeyValueStore):
    """Process-local hierarchical store with change notifications.

    Every call yields to the event loop once before touching the tree, the way
    a remote round trip would, so concurrent callers interleave.
    """

    def __init__(self, initial: Optional[Dict[str, Any]] = None) -> None:
        self._root: Dict[str, Any] = copy.deepcopy(initial) if initial else {}
        self._watchers: List[tuple[str, asyncio.Queue]] = []
        self._closed = False

    async def get(self, path: str) -> Optional[Any]:
        await asyncio.sleep(0)
        node: Any = self._root
        for segment in split_path(path):
            node = self._child(node, segment)
            if node is None:
                return None
        return copy.deepcopy(node)

    async def set(self, path: str, value: Any) -> None:
        await asyncio.sleep(0)
        self._ensure_open()
        segments = split_path(path)
        parent = self._parent_for_write(segments)
        if value is None:
            parent.pop(segments[-1], None)
        else:
            parent[segments[-1]] = copy.deepcopy(value)
        self._notify(path)

    async def update(self, path: str, values: Dict[str, Any]) -> None:
        await asyncio.sleep(0)
        self._ensure_open()
        segments = split_path(path)
        parent = self._parent_for_write(segments)
        node = parent.get(segments[-1])
        if isinstance(node, list):
            raise StoreError(f"Cannot update fields of the list at {path}")
        if not isinstance(node, dict):
            node = {}
            parent[segments[-1]] = node
        for key, value in values.items():
            if value is None:
                node.pop(key, None)
            else:
                node[key] = copy.deepcopy(value)
        self._notify(path)

    async def watch(self, path: str) -> AsyncIterator[Optional[Any]]:
        split_path(path)
        queue: asyncio.Queue = asyncio.Queue()
        entry = (path, queue)
        self._watchers.append(entry)
        try:
            yield await self.get(path)
            while True:
                await queue.get()
                # collapse bursts of writes into a single delivery
                while not queue.empty():
                    queue.get_nowait()
                yield await self.get(path)
        finally:
            self._watchers.remove(entry)

    async def close(self) -> None:
        self._closed = True

    def snapshot(self) -> Dict[str, Any]:
        return copy.deepcopy(self._root)

    @staticmethod
    def _child(node: Any, segment: str) -> Optional[Any]:
        if isinstance(node, dict):
            return node.get(segment)
        if isinstance(node, list) and segment.isdigit():
            index = int(segment)
            return node[index] if index < len(node) else None
        return None

    def _parent_for_write(self, segments: List[str]) -> Dict[str, Any]:
        node = self._root
        for segment in segments[:-1]:
            child = node.get(segment)
            if isinstance(child, list):
                raise StoreError(f"Cannot write {'/'.join(segments)} through the list at {segment!r}")
            if not isinstance(child, dict):
                child = {}
                node[segment] = child
            node = child
        return node

    def _ensure_open(self) -> None:
        if self._closed:
            raise StoreError("Store is closed")

    def _notify(self, path: str) -> None:
        for watched, queue in self._watchers:
            if paths_overlap(watched, path):
                queue.put_nowait(path)
        logger.debug("Wrote %s", path)
