import asyncio
from datetime import datetime, timezone

import pytest

from chatstore.errors import UnsupportedMessageKind
from chatstore.repositories.message_repository import MessageRepository, messages_path
from chatstore.schemas.message import (
    LocationPayload,
    MessageKind,
    MessageRecord,
    OutgoingMessage,
    PhotoPayload,
    TextPayload,
    build_payload,
)
from tests.helpers import BASE_TIME, make_message


CONVERSATION = "conversation_m1"


def _record(message: OutgoingMessage) -> MessageRecord:
    return MessageRecord.from_outgoing(message, "alice@example.com", "Alice Smith")


def _legacy_document(message_id: str, kind: str = "text", content: str = "hello", date: str = "2021-12-02 15:04:05 +0000"):
    # shape written by clients that predate the numeric timestamp
    return {
        "id": message_id,
        "type": kind,
        "content": content,
        "date": date,
        "sender_email": "alice@example.com",
        "name": "Alice Smith",
        "is_read": False,
    }


@pytest.mark.asyncio
async def test_text_message_round_trip(store, settings):
    repo = MessageRepository(store, settings)
    await repo.append_message(CONVERSATION, _record(make_message("m1", "hello")))

    [record] = await repo.list_messages(CONVERSATION)

    assert record.content == "hello"
    assert record.payload == TextPayload(text="hello")
    assert record.sent_at == BASE_TIME


@pytest.mark.asyncio
async def test_non_text_kinds_keep_their_payload(store, settings):
    repo = MessageRepository(store, settings)
    photo = OutgoingMessage(id="m1", sent_at=BASE_TIME, payload=PhotoPayload(url="https://cdn.example.com/p.png"))
    location = OutgoingMessage(
        id="m2", sent_at=BASE_TIME, payload=build_payload(MessageKind.LOCATION, latitude=47.37, longitude=8.54)
    )
    await repo.append_message(CONVERSATION, _record(photo))
    await repo.append_message(CONVERSATION, _record(location))

    first, second = await repo.list_messages(CONVERSATION)

    assert first.kind == "photo"
    assert first.payload == PhotoPayload(url="https://cdn.example.com/p.png")
    assert second.payload == LocationPayload(latitude=47.37, longitude=8.54)


@pytest.mark.asyncio
async def test_legacy_non_text_records_read_back_as_empty_text(store, settings):
    # older clients stored every non-text kind with empty content
    await store.set(messages_path(CONVERSATION), [_legacy_document("m1", kind="photo", content="")])

    [record] = await MessageRepository(store, settings).list_messages(CONVERSATION)

    assert record.kind == "photo"
    assert record.content == ""
    assert isinstance(record.payload, TextPayload)
    assert record.payload.text == ""


def test_custom_kind_cannot_be_built():
    with pytest.raises(UnsupportedMessageKind):
        build_payload(MessageKind.CUSTOM, text="anything")


def test_empty_text_is_rejected():
    with pytest.raises(ValueError):
        TextPayload(text="")


@pytest.mark.asyncio
async def test_records_without_timestamp_fall_back_to_date(store, settings):
    await store.set(messages_path(CONVERSATION), [_legacy_document("m1")])

    [record] = await MessageRepository(store, settings).list_messages(CONVERSATION)

    assert record.sent_at == datetime(2021, 12, 2, 15, 4, 5, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_malformed_and_undated_records_are_dropped(store, settings):
    missing_sender = _legacy_document("m2")
    del missing_sender["sender_email"]
    await store.set(
        messages_path(CONVERSATION),
        [
            _legacy_document("m1"),
            missing_sender,
            _legacy_document("m3", date="2 Dec 2021 at 15:04"),
            {**_legacy_document("m4"), "is_read": "no"},
            42,
        ],
    )

    records = await MessageRepository(store, settings).list_messages(CONVERSATION)

    assert [record.id for record in records] == ["m1"]


@pytest.mark.asyncio
async def test_non_list_message_value_fails_the_delivery(store, settings):
    await store.set(messages_path(CONVERSATION), {"m1": _legacy_document("m1")})
    stream = MessageRepository(store, settings).subscribe_messages(CONVERSATION)

    result = await stream.__anext__()
    await stream.aclose()

    assert not result.ok
    assert result.value is None


@pytest.mark.asyncio
async def test_messages_are_ordered_by_send_time(store, settings):
    repo = MessageRepository(store, settings)
    await repo.append_message(CONVERSATION, _record(make_message("late", "b", 60)))
    await repo.append_message(CONVERSATION, _record(make_message("early", "a", 0)))

    records = await repo.list_messages(CONVERSATION)

    assert [record.id for record in records] == ["early", "late"]


@pytest.mark.asyncio
async def test_subscription_redelivers_full_list(store, settings):
    repo = MessageRepository(store, settings)
    await repo.append_message(CONVERSATION, _record(make_message("m1", "first", 0)))
    stream = repo.subscribe_messages(CONVERSATION)

    initial = await stream.__anext__()
    await repo.append_message(CONVERSATION, _record(make_message("m2", "second", 5)))
    updated = await asyncio.wait_for(stream.__anext__(), timeout=1.0)
    await stream.aclose()

    assert [record.id for record in initial.unwrap()] == ["m1"]
    assert [record.id for record in updated.unwrap()] == ["m1", "m2"]


@pytest.mark.asyncio
async def test_mark_read_skips_own_messages(store, settings):
    repo = MessageRepository(store, settings)
    await repo.append_message(CONVERSATION, _record(make_message("m1")))
    bob_record = MessageRecord.from_outgoing(make_message("m2", "hey", 5), "bob@example.com", "Bob Jones")
    await repo.append_message(CONVERSATION, bob_record)

    marked = await repo.mark_read(CONVERSATION, "alice@example.com")

    assert marked == 1
    flags = {record.id: record.is_read for record in await repo.list_messages(CONVERSATION)}
    assert flags == {"m1": False, "m2": True}


@pytest.mark.asyncio
async def test_numeric_timestamp_wins_over_an_unreadable_date(store, settings):
    stamped = {**_legacy_document("m1", date="2 Dec 2021 at 15:04"), "timestamp": 1638457445000}
    await store.set(messages_path(CONVERSATION), [stamped, _legacy_document("m2", date="2 Dec 2021 at 15:04")])

    [record] = await MessageRepository(store, settings).list_messages(CONVERSATION)

    assert record.id == "m1"
    assert record.sent_at == BASE_TIME
    assert record.date == "2 Dec 2021 at 15:04"
