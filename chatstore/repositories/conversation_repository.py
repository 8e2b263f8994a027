import logging
from typing import Any, AsyncIterator, List, Optional

from chatstore.database.store import join_path
from chatstore.repositories.base import BaseRepository, upsert_by_id
from chatstore.schemas.conversation import ConversationSummary
from chatstore.schemas.results import FetchResult


logger = logging.getLogger(__name__)


def conversations_path(uid: str) -> str:
    return join_path(uid, "conversations")


class ConversationRepository(BaseRepository):

    async def upsert_summary(self, uid: str, summary: ConversationSummary) -> None:
        document = summary.to_document()
        await self._modify_list(conversations_path(uid), lambda items: upsert_by_id(items, dict(document)))

    async def update_latest_message(self, uid: str, summary: ConversationSummary) -> None:
        """Refresh the latest message of an existing summary, creating it when missing."""

        latest = summary.latest_message.model_dump(by_alias=True, exclude_none=True)
        document = summary.to_document()

        def refresh(items: List[Any]) -> List[Any]:
            for item in items:
                if isinstance(item, dict) and item.get("id") == summary.id:
                    item["latest_message"] = dict(latest)
                    return items
            logger.debug("No summary %s under %s yet, creating it", summary.id, uid)
            items.append(dict(document))
            return items

        await self._modify_list(conversations_path(uid), refresh)

    async def mark_read(self, uid: str, conversation_id: str) -> bool:
        found = False

        def mark(items: List[Any]) -> Optional[List[Any]]:
            nonlocal found
            found = False
            for item in items:
                latest = item.get("latest_message") if isinstance(item, dict) else None
                if isinstance(latest, dict) and item.get("id") == conversation_id:
                    latest["is_read"] = True
                    found = True
            return items if found else None

        await self._modify_list(conversations_path(uid), mark)
        return found

    async def list_conversations(self, uid: str) -> List[ConversationSummary]:
        path = conversations_path(uid)
        return self._decode_list(path, await self._get(path), ConversationSummary.from_document)

    async def subscribe_conversations(self, uid: str) -> AsyncIterator[FetchResult[List[ConversationSummary]]]:
        """Deliver the full conversation list now and after every change."""

        async for result in self._subscribe_list(conversations_path(uid), ConversationSummary.from_document):
            yield result

