import logging
from typing import Any, AsyncIterator, List, Optional

from chatstore.database.store import join_path
from chatstore.repositories.base import BaseRepository, upsert_by_id
from chatstore.schemas.message import MessageRecord
from chatstore.schemas.results import FetchResult


logger = logging.getLogger(__name__)


def messages_path(conversation_id: str) -> str:
    return join_path(conversation_id, "messages")


def _in_send_order(records: List[MessageRecord]) -> List[MessageRecord]:
    # stable: records with the same send time keep their stored order
    return sorted(records, key=lambda record: record.sent_at)


class MessageRepository(BaseRepository):

    async def append_message(self, conversation_id: str, record: MessageRecord) -> None:
        """Add ``record`` to the conversation, replacing an earlier copy with the same id."""

        document = record.to_document()
        await self._modify_list(messages_path(conversation_id), lambda items: upsert_by_id(items, dict(document)))

    async def mark_read(self, conversation_id: str, reader_email: str) -> int:
        """Mark every message the other party sent as read; returns how many changed."""

        marked = 0

        def mark(items: List[Any]) -> Optional[List[Any]]:
            nonlocal marked
            marked = 0
            for item in items:
                if not isinstance(item, dict) or item.get("sender_email") == reader_email:
                    continue
                if item.get("is_read") is False:
                    item["is_read"] = True
                    marked += 1
            return items if marked else None

        await self._modify_list(messages_path(conversation_id), mark)
        if marked:
            logger.debug("Marked %d messages read in %s", marked, conversation_id)
        return marked

    async def list_messages(self, conversation_id: str) -> List[MessageRecord]:
        path = messages_path(conversation_id)
        return _in_send_order(self._decode_list(path, await self._get(path), MessageRecord.from_document))

    async def subscribe_messages(self, conversation_id: str) -> AsyncIterator[FetchResult[List[MessageRecord]]]:
        """Deliver the conversation's messages in send order now and after every change."""

        async for result in self._subscribe_list(messages_path(conversation_id), MessageRecord.from_document):
            if result.ok:
                yield FetchResult(value=_in_send_order(result.value))
            else:
                yield result
