"""
Key-value store contract.

The data-access layer talks to a single hierarchical namespace addressed by
``/``-separated paths. Values are plain JSON-like trees (dicts, lists and
scalars); writing ``None`` deletes. There are no cross-path transactions, so
callers that need read-modify-write on a list serialize it themselves.
"""

from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Dict, List, Optional


class StoreError(Exception):
    """Raised by store implementations when the backend rejects a call."""


def split_path(path: str) -> List[str]:
    segments = [segment for segment in path.strip("/").split("/") if segment]
    if not segments:
        raise ValueError("Store path must contain at least one segment")
    return segments


def join_path(*segments: str) -> str:
    return "/".join(segment.strip("/") for segment in segments if segment.strip("/"))


def paths_overlap(a: str, b: str) -> bool:
    """True when a write at one path can change the value seen at the other."""

    left, right = split_path(a), split_path(b)
    size = min(len(left), len(right))
    return left[:size] == right[:size]


class KeyValueStore(ABC):

    @abstractmethod
    async def get(self, path: str) -> Optional[Any]:
        pass

    @abstractmethod
    async def set(self, path: str, value: Any) -> None:
        pass

    @abstractmethod
    async def update(self, path: str, values: Dict[str, Any]) -> None:
        """Write several children of ``path`` without touching the others."""

    @abstractmethod
    def watch(self, path: str) -> AsyncIterator[Optional[Any]]:
        """Yield the current value at ``path``, then the new value after every change."""

    async def close(self) -> None:
        return
