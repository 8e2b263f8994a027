"""
Fan-out writes for one-to-one conversations.

A conversation lives in three places: a summary in the sender's conversation
list, a mirrored summary in the receiver's list, and the message list under
the conversation id. The store has no multi-path transactions, so every write
is checked and reported separately in a :class:`FanOutResult`. All writes are
upserts keyed by conversation or message id, which makes retrying a partially
failed call safe.
"""

import asyncio
import logging
from typing import Any, AsyncIterator, List, Optional

from chatstore.errors import DatabaseError, Unauthenticated
from chatstore.repositories.conversation_repository import ConversationRepository
from chatstore.repositories.message_repository import MessageRepository
from chatstore.schemas.conversation import ConversationSummary, LatestMessage, conversation_id_for
from chatstore.schemas.message import MessageRecord, OutgoingMessage
from chatstore.schemas.results import FanOutResult, FetchResult
from chatstore.schemas.user import Identity
from chatstore.services.identity_service import IdentityService


logger = logging.getLogger(__name__)


class ChatService:

    def __init__(
        self,
        identity: IdentityService,
        conversation_repo: ConversationRepository,
        message_repo: MessageRepository,
    ) -> None:
        self._identity = identity
        self._conversation_repo = conversation_repo
        self._message_repo = message_repo

    async def create_conversation(
        self,
        receiver_email: str,
        receiver_uid: str,
        receiver_name: str,
        message: OutgoingMessage,
    ) -> FanOutResult:
        conversation_id = conversation_id_for(message.id)
        result = FanOutResult(conversation_id=conversation_id)
        sender = await self._resolve_sender(result)
        if sender is None:
            return result

        sender_side, receiver_side = self._mirrors(conversation_id, sender, receiver_email, receiver_uid, receiver_name, message)
        sender_outcome, receiver_outcome = await asyncio.gather(
            self._conversation_repo.upsert_summary(sender.uid, sender_side),
            self._conversation_repo.upsert_summary(receiver_uid, receiver_side),
            return_exceptions=True,
        )
        result.sender_mirror = self._record(result, sender_outcome, "sender conversation list", conversation_id)
        result.receiver_mirror = self._record(result, receiver_outcome, "receiver conversation list", conversation_id)
        if not result.sender_mirror:
            return result

        record = MessageRecord.from_outgoing(message, sender.email, sender.display_name)
        outcome = await self._capture(self._message_repo.append_message(conversation_id, record))
        result.messages = self._record(result, outcome, "message list", conversation_id)
        if result.ok:
            logger.info("Created conversation %s between %s and %s", conversation_id, sender.uid, receiver_uid)
        return result

    async def send_message(
        self,
        conversation_id: str,
        receiver_email: str,
        receiver_uid: str,
        receiver_name: str,
        message: OutgoingMessage,
    ) -> FanOutResult:
        """Append ``message`` to an existing conversation and refresh both summaries."""

        result = FanOutResult(conversation_id=conversation_id)
        sender = await self._resolve_sender(result)
        if sender is None:
            return result

        record = MessageRecord.from_outgoing(message, sender.email, sender.display_name)
        outcome = await self._capture(self._message_repo.append_message(conversation_id, record))
        result.messages = self._record(result, outcome, "message list", conversation_id)
        if not result.messages:
            return result

        sender_side, receiver_side = self._mirrors(conversation_id, sender, receiver_email, receiver_uid, receiver_name, message)
        sender_outcome, receiver_outcome = await asyncio.gather(
            self._conversation_repo.update_latest_message(sender.uid, sender_side),
            self._conversation_repo.update_latest_message(receiver_uid, receiver_side),
            return_exceptions=True,
        )
        result.sender_mirror = self._record(result, sender_outcome, "sender conversation list", conversation_id)
        result.receiver_mirror = self._record(result, receiver_outcome, "receiver conversation list", conversation_id)
        return result

    async def mark_conversation_read(self, conversation_id: str) -> bool:
        try:
            reader = await self._identity.current_identity()
            if reader is None:
                logger.debug("Not marking %s read: nobody is signed in", conversation_id)
                return False
            await self._conversation_repo.mark_read(reader.uid, conversation_id)
            await self._message_repo.mark_read(conversation_id, reader.email)
        except DatabaseError as exc:
            logger.warning("Failed to mark %s read: %s", conversation_id, exc)
            return False
        return True

    async def conversations_for_current_user(self) -> AsyncIterator[FetchResult[List[ConversationSummary]]]:
        """Subscribe to the signed-in user's conversations.

        Without a resolvable identity a single failed delivery is produced.
        """
        try:
            identity = await self._identity.current_identity()
        except DatabaseError as exc:
            yield FetchResult(error=exc)
            return
        if identity is None:
            yield FetchResult(error=Unauthenticated())
            return
        async for result in self._conversation_repo.subscribe_conversations(identity.uid):
            yield result

    async def messages_for_conversation(self, conversation_id: str):
        async for result in self._message_repo.subscribe_messages(conversation_id):
            yield result

    async def get_data_for(self, path: str) -> Any:
        return await self._conversation_repo.get_data_for(path)

    async def _resolve_sender(self, result: FanOutResult) -> Optional[Identity]:
        try:
            sender = await self._identity.current_identity()
        except DatabaseError as exc:
            result.errors.append(exc)
            return None
        if sender is None:
            result.errors.append(Unauthenticated())
        return sender

    @staticmethod
    def _mirrors(
        conversation_id: str,
        sender: Identity,
        receiver_email: str,
        receiver_uid: str,
        receiver_name: str,
        message: OutgoingMessage,
    ) -> tuple[ConversationSummary, ConversationSummary]:
        latest = LatestMessage.from_outgoing(message)
        sender_side = ConversationSummary(
            id=conversation_id,
            peer_email=receiver_email,
            peer_uid=receiver_uid,
            peer_display_name=receiver_name,
            latest_message=latest,
        )
        receiver_side = ConversationSummary(
            id=conversation_id,
            peer_email=sender.email,
            peer_uid=sender.uid,
            peer_display_name=sender.display_name,
            latest_message=latest,
        )
        return sender_side, receiver_side

    @staticmethod
    async def _capture(call) -> Optional[BaseException]:
        try:
            await call
        except DatabaseError as exc:
            return exc
        return None

    @staticmethod
    def _record(result: FanOutResult, outcome: Any, target: str, conversation_id: str) -> bool:
        if outcome is None:
            return True
        if not isinstance(outcome, DatabaseError):
            raise outcome
        logger.warning("Failed to update %s for %s: %s", target, conversation_id, outcome)
        result.errors.append(outcome)
        return False
