from typing import TypedDict


class LatestMessageDocument(TypedDict, total=False):
    date: str
    message: str
    is_read: bool
    # epoch milliseconds, absent on records written by older clients
    timestamp: int


class ConversationDocument(TypedDict, total=False):
    # one element of /{uid}/conversations, describing the peer
    id: str
    receiver_email: str
    receiver_uid: str
    name: str
    latest_message: LatestMessageDocument
