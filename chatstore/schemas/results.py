from dataclasses import dataclass, field
from typing import Generic, List, Optional, TypeVar

from chatstore.errors import DatabaseError


T = TypeVar("T")


@dataclass(frozen=True)
class FetchResult(Generic[T]):
    """One delivery of a subscription: either a value or the reason there is none."""

    value: Optional[T] = None
    error: Optional[DatabaseError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> T:
        if self.error is not None:
            raise self.error
        return self.value


@dataclass
class FanOutResult:
    """Outcome of every write a fan-out operation attempted.

    ``sender_mirror`` and ``receiver_mirror`` are the two per-user conversation
    summaries, ``messages`` is the conversation's message list.
    """

    conversation_id: Optional[str] = None
    sender_mirror: bool = False
    receiver_mirror: bool = False
    messages: bool = False
    errors: List[DatabaseError] = field(default_factory=list)

    @property
    def primary_ok(self) -> bool:
        return self.sender_mirror and self.messages

    @property
    def ok(self) -> bool:
        return self.primary_ok and self.receiver_mirror

    @property
    def partial(self) -> bool:
        return not self.ok and any((self.sender_mirror, self.receiver_mirror, self.messages))

    def __bool__(self) -> bool:
        return self.ok
