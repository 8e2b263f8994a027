import asyncio

import pytest

from chatstore.errors import FetchFailed
from chatstore.repositories.conversation_repository import ConversationRepository, conversations_path
from chatstore.schemas.conversation import ConversationSummary, LatestMessage


def _summary(conversation_id: str, text: str = "hello") -> ConversationSummary:
    return ConversationSummary(
        id=conversation_id,
        peer_email="bob@example.com",
        peer_uid="bob",
        peer_display_name="Bob Jones",
        latest_message=LatestMessage(date="2021-12-02 15:04:05 +0000", text=text, is_read=False),
    )


@pytest.mark.asyncio
async def test_subscription_starts_with_failure_when_nothing_stored(store, settings):
    stream = ConversationRepository(store, settings).subscribe_conversations("alice")

    first = await stream.__anext__()
    await stream.aclose()

    assert not first.ok
    assert isinstance(first.error, FetchFailed)
    with pytest.raises(FetchFailed):
        first.unwrap()


@pytest.mark.asyncio
async def test_subscription_redelivers_on_every_change(store, settings):
    repo = ConversationRepository(store, settings)
    stream = repo.subscribe_conversations("alice")
    await stream.__anext__()

    await repo.upsert_summary("alice", _summary("conversation_m1"))
    after_first = await asyncio.wait_for(stream.__anext__(), timeout=1.0)
    await repo.upsert_summary("alice", _summary("conversation_m2"))
    after_second = await asyncio.wait_for(stream.__anext__(), timeout=1.0)
    await stream.aclose()

    assert [summary.id for summary in after_first.unwrap()] == ["conversation_m1"]
    assert [summary.id for summary in after_second.unwrap()] == ["conversation_m1", "conversation_m2"]


@pytest.mark.asyncio
async def test_malformed_summaries_are_filtered_per_element(store, settings):
    good = _summary("conversation_m1").to_document()
    missing_latest = {key: value for key, value in good.items() if key != "latest_message"}
    bad_flag = {**good, "id": "conversation_m2", "latest_message": {**good["latest_message"], "is_read": "yes"}}
    await store.set(conversations_path("alice"), [good, missing_latest, bad_flag])

    summaries = await ConversationRepository(store, settings).list_conversations("alice")

    assert [summary.id for summary in summaries] == ["conversation_m1"]


@pytest.mark.asyncio
async def test_top_level_mismatch_fails_the_whole_delivery(store, settings):
    await store.set(conversations_path("alice"), "not a list")
    stream = ConversationRepository(store, settings).subscribe_conversations("alice")

    result = await stream.__anext__()
    await stream.aclose()

    assert isinstance(result.error, FetchFailed)


@pytest.mark.asyncio
async def test_upsert_replaces_summary_with_same_id(store, settings):
    repo = ConversationRepository(store, settings)
    await repo.upsert_summary("alice", _summary("conversation_m1", "first"))
    await repo.upsert_summary("alice", _summary("conversation_m1", "again"))

    [summary] = await repo.list_conversations("alice")

    assert summary.latest_message.text == "again"


@pytest.mark.asyncio
async def test_mark_read_on_unknown_conversation_writes_nothing(store, settings):
    repo = ConversationRepository(store, settings)

    assert await repo.mark_read("alice", "conversation_missing") is False
    assert await store.get(conversations_path("alice")) is None


@pytest.mark.asyncio
async def test_documents_keyed_by_python_names_are_malformed(store, settings):
    good = _summary("conversation_m1").to_document()
    python_keys = _summary("conversation_m2").model_dump()
    nested_python_key = {
        **_summary("conversation_m3").to_document(),
        "latest_message": {"date": "2021-12-02 15:04:05 +0000", "text": "hello", "is_read": False},
    }
    await store.set(conversations_path("alice"), [good, python_keys, nested_python_key])

    summaries = await ConversationRepository(store, settings).list_conversations("alice")

    assert [summary.id for summary in summaries] == ["conversation_m1"]
