from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictInt, StrictStr, ValidationError

from chatstore.errors import MalformedRecord
from chatstore.models.conversation import ConversationDocument
from chatstore.schemas.message import OutgoingMessage


CONVERSATION_ID_PREFIX = "conversation_"


def conversation_id_for(message_id: str) -> str:
    # a conversation is named after the message that opened it
    return f"{CONVERSATION_ID_PREFIX}{message_id}"


class LatestMessage(BaseModel):

    model_config = ConfigDict(populate_by_name=True)

    date: StrictStr
    text: StrictStr = Field(alias="message")
    is_read: StrictBool
    timestamp: Optional[StrictInt] = None

    @classmethod
    def from_outgoing(cls, message: OutgoingMessage) -> "LatestMessage":
        return cls(date=message.date, text=message.content, is_read=False, timestamp=message.timestamp)


class ConversationSummary(BaseModel):
    """One side's view of a conversation: who the peer is and what was said last."""

    model_config = ConfigDict(populate_by_name=True)

    id: StrictStr
    peer_email: StrictStr = Field(alias="receiver_email")
    peer_uid: StrictStr = Field(alias="receiver_uid")
    peer_display_name: StrictStr = Field(alias="name")
    latest_message: LatestMessage

    def to_document(self) -> ConversationDocument:
        return self.model_dump(by_alias=True, exclude_none=True)

    @classmethod
    def from_document(cls, value: Any) -> "ConversationSummary":
        if not isinstance(value, dict):
            raise MalformedRecord("conversation is not a mapping")
        try:
            # stored documents only ever carry the wire keys
            return cls.model_validate(value, by_alias=True, by_name=False)
        except ValidationError as exc:
            raise MalformedRecord(f"conversation: {exc}") from exc
