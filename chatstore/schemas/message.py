"""
Message payloads and stored message records.

Every supported message kind maps to exactly one non-empty ``content`` string
on the wire and back. Media kinds carry a URL reference only; fetching or
uploading the media itself is the caller's job. ``custom`` has no wire form
and is rejected up front.
"""

import logging
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from chatstore.errors import MalformedRecord, UnsupportedMessageKind
from chatstore.models.message import MessageDocument
from chatstore.utils.date_format import format_date, from_timestamp_ms, parse_date, to_timestamp_ms


logger = logging.getLogger(__name__)


class MessageKind(str, Enum):
    TEXT = "text"
    ATTRIBUTED_TEXT = "attributed_text"
    PHOTO = "photo"
    VIDEO = "video"
    LOCATION = "location"
    EMOJI = "emoji"
    AUDIO = "audio"
    CONTACT = "contact"
    LINK_PREVIEW = "link_preview"
    CUSTOM = "custom"


UNSUPPORTED_KINDS = frozenset({MessageKind.CUSTOM})


class TextPayload(BaseModel):

    kind: Literal[MessageKind.TEXT] = MessageKind.TEXT
    text: str = Field(min_length=1)

    def to_content(self) -> str:
        return self.text

    @classmethod
    def from_content(cls, content: str) -> "TextPayload":
        return cls(text=content)


class AttributedTextPayload(BaseModel):

    kind: Literal[MessageKind.ATTRIBUTED_TEXT] = MessageKind.ATTRIBUTED_TEXT
    text: str = Field(min_length=1)

    def to_content(self) -> str:
        return self.text

    @classmethod
    def from_content(cls, content: str) -> "AttributedTextPayload":
        return cls(text=content)


class EmojiPayload(BaseModel):

    kind: Literal[MessageKind.EMOJI] = MessageKind.EMOJI
    emoji: str = Field(min_length=1)

    def to_content(self) -> str:
        return self.emoji

    @classmethod
    def from_content(cls, content: str) -> "EmojiPayload":
        return cls(emoji=content)


class _MediaPayload(BaseModel):

    url: str = Field(min_length=1)

    def to_content(self) -> str:
        return self.url

    @classmethod
    def from_content(cls, content: str):
        return cls(url=content)


class PhotoPayload(_MediaPayload):

    kind: Literal[MessageKind.PHOTO] = MessageKind.PHOTO


class VideoPayload(_MediaPayload):

    kind: Literal[MessageKind.VIDEO] = MessageKind.VIDEO


class AudioPayload(_MediaPayload):

    kind: Literal[MessageKind.AUDIO] = MessageKind.AUDIO


class LinkPreviewPayload(_MediaPayload):

    kind: Literal[MessageKind.LINK_PREVIEW] = MessageKind.LINK_PREVIEW


class LocationPayload(BaseModel):

    kind: Literal[MessageKind.LOCATION] = MessageKind.LOCATION
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)

    def to_content(self) -> str:
        return f"{self.latitude},{self.longitude}"

    @classmethod
    def from_content(cls, content: str) -> "LocationPayload":
        latitude, _, longitude = content.partition(",")
        return cls(latitude=latitude, longitude=longitude)


class ContactPayload(BaseModel):

    kind: Literal[MessageKind.CONTACT] = MessageKind.CONTACT
    display_name: str = Field(min_length=1)

    def to_content(self) -> str:
        return self.display_name

    @classmethod
    def from_content(cls, content: str) -> "ContactPayload":
        return cls(display_name=content)


MessagePayload = Annotated[
    Union[
        TextPayload,
        AttributedTextPayload,
        EmojiPayload,
        PhotoPayload,
        VideoPayload,
        AudioPayload,
        LinkPreviewPayload,
        LocationPayload,
        ContactPayload,
    ],
    Field(discriminator="kind"),
]

_PAYLOAD_TYPES = {
    MessageKind.TEXT: TextPayload,
    MessageKind.ATTRIBUTED_TEXT: AttributedTextPayload,
    MessageKind.EMOJI: EmojiPayload,
    MessageKind.PHOTO: PhotoPayload,
    MessageKind.VIDEO: VideoPayload,
    MessageKind.AUDIO: AudioPayload,
    MessageKind.LINK_PREVIEW: LinkPreviewPayload,
    MessageKind.LOCATION: LocationPayload,
    MessageKind.CONTACT: ContactPayload,
}

_payload_adapter: TypeAdapter = TypeAdapter(MessagePayload)


def build_payload(kind: Union[MessageKind, str], **fields: Any):
    """Build a payload for ``kind``; kinds without a wire form are refused."""

    kind = MessageKind(kind)
    if kind in UNSUPPORTED_KINDS:
        raise UnsupportedMessageKind(f"Message kind {kind.value!r} cannot be stored")
    return _payload_adapter.validate_python({"kind": kind, **fields})


def payload_from_wire(kind: str, content: str):
    """Rebuild a payload from its stored ``type`` and ``content``.

    Unknown kinds, and content that does not decode for its kind (records
    written by clients that stored only text), come back as plain text.
    """

    try:
        payload_type = _PAYLOAD_TYPES[MessageKind(kind)]
        return payload_type.from_content(content)
    except (KeyError, ValueError, ValidationError):
        logger.debug("Reading %r message back as plain text", kind)
        return TextPayload.model_construct(text=content)


class OutgoingMessage(BaseModel):

    id: str = Field(min_length=1)
    sent_at: datetime
    payload: MessagePayload

    @property
    def kind(self) -> MessageKind:
        return self.payload.kind

    @property
    def content(self) -> str:
        return self.payload.to_content()

    @property
    def date(self) -> str:
        return format_date(self.sent_at)

    @property
    def timestamp(self) -> int:
        return to_timestamp_ms(self.sent_at)


class MessageRecord(BaseModel):

    model_config = ConfigDict(frozen=True)

    id: str
    kind: str
    content: str
    sent_at: datetime
    date: str
    sender_email: str
    sender_display_name: str
    is_read: bool = False

    @property
    def payload(self):
        return payload_from_wire(self.kind, self.content)

    @classmethod
    def from_outgoing(cls, message: OutgoingMessage, sender_email: str, sender_display_name: str) -> "MessageRecord":
        return cls(
            id=message.id,
            kind=message.kind.value,
            content=message.content,
            sent_at=message.sent_at,
            date=message.date,
            sender_email=sender_email,
            sender_display_name=sender_display_name,
            is_read=False,
        )

    def to_document(self) -> MessageDocument:
        return {
            "id": self.id,
            "type": self.kind,
            "content": self.content,
            "date": self.date,
            "timestamp": to_timestamp_ms(self.sent_at),
            "sender_email": self.sender_email,
            "name": self.sender_display_name,
            "is_read": self.is_read,
        }

    @classmethod
    def from_document(cls, value: Any) -> "MessageRecord":
        if not isinstance(value, dict):
            raise MalformedRecord("message is not a mapping")
        required = {
            "id": str,
            "type": str,
            "content": str,
            "date": str,
            "sender_email": str,
            "name": str,
            "is_read": bool,
        }
        for key, expected in required.items():
            if not isinstance(value.get(key), expected):
                raise MalformedRecord(f"message field {key!r} missing or not {expected.__name__}")

        sent_at = _resolve_sent_at(value)
        if sent_at is None:
            raise MalformedRecord(f"message {value['id']} has an unreadable date {value['date']!r}")
        return cls(
            id=value["id"],
            kind=value["type"],
            content=value["content"],
            sent_at=sent_at,
            date=value["date"],
            sender_email=value["sender_email"],
            sender_display_name=value["name"],
            is_read=value["is_read"],
        )


def _resolve_sent_at(value: dict) -> Optional[datetime]:
    timestamp = value.get("timestamp")
    if isinstance(timestamp, int) and not isinstance(timestamp, bool):
        return from_timestamp_ms(timestamp)
    return parse_date(value["date"])
