from dataclasses import dataclass
from typing import Optional

from chatstore.config import Settings, get_settings
from chatstore.database.store import KeyValueStore
from chatstore.repositories.conversation_repository import ConversationRepository
from chatstore.repositories.message_repository import MessageRepository
from chatstore.repositories.user_repository import UserRepository
from chatstore.services.chat_service import ChatService
from chatstore.services.identity_service import IdentityProvider, IdentityService
from chatstore.utils.path_locks import PathLocks


@dataclass
class Services:

    users: UserRepository
    conversations: ConversationRepository
    messages: MessageRepository
    identity: IdentityService
    chat: ChatService


def build_services(
    store: KeyValueStore,
    provider: IdentityProvider,
    settings: Optional[Settings] = None,
) -> Services:
    settings = settings or get_settings()
    # one lock table for every repository so a path is never written by two of them at once
    locks = PathLocks(enabled=settings.serialize_writes)
    users = UserRepository(store, settings, locks)
    conversations = ConversationRepository(store, settings, locks)
    messages = MessageRepository(store, settings, locks)
    identity = IdentityService(provider, users)
    chat = ChatService(identity, conversations, messages)
    return Services(users=users, conversations=conversations, messages=messages, identity=identity, chat=chat)
