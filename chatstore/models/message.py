from typing import TypedDict


class MessageDocument(TypedDict, total=False):
    # one element of /{conversation_id}/messages
    id: str
    type: str
    content: str
    date: str
    timestamp: int
    sender_email: str
    name: str
    is_read: bool
