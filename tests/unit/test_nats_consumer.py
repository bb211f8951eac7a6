"""Tests for NoteEventConsumer event routing, idempotency and announcements."""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from smart_notes.enrichment.queue import NoteJob
from smart_notes.models import NoteCreate
from smart_notes.nats_integration.config import NATSConsumerConfig
from smart_notes.nats_integration.consumer import (
    EDITING_CHANGED,
    NOTE_CREATED,
    NOTE_ORGANIZED,
    NOTE_REORGANIZE,
    NOTE_SAVED,
    QUEUE_CANCEL,
    NoteEventConsumer,
)

pytestmark = pytest.mark.unit


@pytest.fixture
def queue():
    queue = MagicMock()
    queue.enqueue = AsyncMock(return_value=True)
    queue.reorganize = AsyncMock()
    queue.set_editing = AsyncMock()
    queue.cancel_all = AsyncMock()
    return queue


@pytest.fixture
def consumer(queue, store):
    return NoteEventConsumer(queue, store, NATSConsumerConfig(idempotency_cache_size=5))


class TestEventRouting:
    async def test_created_enqueues_content(self, consumer, queue):
        await consumer.process_event(
            {"event_type": NOTE_CREATED, "event_id": "e1", "note_id": "NOTE-1", "content": "Buy milk"}
        )

        queue.enqueue.assert_awaited_once_with(
            NoteJob(note_id="NOTE-1", content="Buy milk"), defer_if_editing=False
        )

    async def test_saved_honours_defer_flag(self, consumer, queue):
        await consumer.process_event(
            {"note_id": "NOTE-1", "content": "Buy milk", "defer_if_editing": True},
            subject=NOTE_SAVED,
        )

        assert queue.enqueue.await_args.kwargs == {"defer_if_editing": True}

    async def test_saved_without_content_reads_store(self, consumer, queue, store):
        note = await store.create(NoteCreate(content="Plan the japan trip"))

        await consumer.process_event({"event_type": NOTE_SAVED, "note_id": note.id})

        job = queue.enqueue.await_args.args[0]
        assert job == NoteJob(note_id=note.id, content="Plan the japan trip")

    async def test_saved_for_missing_note_is_skipped(self, consumer, queue):
        await consumer.process_event({"event_type": NOTE_SAVED, "note_id": "NOTE-404"})

        queue.enqueue.assert_not_awaited()

    async def test_reorganize(self, consumer, queue):
        await consumer.process_event({"event_type": NOTE_REORGANIZE, "note_id": "NOTE-1"})

        queue.reorganize.assert_awaited_once_with("NOTE-1")

    @pytest.mark.parametrize("editing", [True, False])
    async def test_editing_changed(self, consumer, queue, editing):
        await consumer.process_event({"event_type": EDITING_CHANGED, "editing": editing})

        queue.set_editing.assert_awaited_once_with(editing)

    @pytest.mark.parametrize(
        "raw,expected",
        [("false", False), ("true", True), ("0", False), (0, False), ("off", False)],
    )
    async def test_editing_flag_parsed_from_strings(self, consumer, queue, raw, expected):
        await consumer.process_event({"event_type": EDITING_CHANGED, "editing": raw})

        queue.set_editing.assert_awaited_once_with(expected)

    async def test_invalid_editing_flag_raises(self, consumer, queue):
        with pytest.raises(ValueError, match="editing"):
            await consumer.process_event({"event_type": EDITING_CHANGED, "editing": "maybe"})
        queue.set_editing.assert_not_awaited()

    async def test_string_defer_flag(self, consumer, queue):
        await consumer.process_event(
            {"event_type": NOTE_SAVED, "note_id": "NOTE-1", "content": "x", "defer_if_editing": "false"}
        )

        assert queue.enqueue.await_args.kwargs == {"defer_if_editing": False}

    async def test_cancel(self, consumer, queue):
        await consumer.process_event({"event_type": QUEUE_CANCEL})

        queue.cancel_all.assert_awaited_once()

    async def test_unknown_type_is_not_an_error(self, consumer, queue):
        await consumer.process_event({"event_type": "notes.note.archived", "note_id": "NOTE-1"})

        queue.enqueue.assert_not_awaited()

    async def test_missing_note_id_raises(self, consumer):
        with pytest.raises(ValueError, match="note_id"):
            await consumer.process_event({"event_type": NOTE_CREATED, "content": "x"})

    async def test_own_announcements_ignored(self, consumer, queue):
        await consumer.process_event({"event_type": NOTE_ORGANIZED, "note_id": "NOTE-1"})

        queue.enqueue.assert_not_awaited()
        queue.reorganize.assert_not_awaited()


class TestIdempotency:
    async def test_duplicate_event_skipped(self, consumer, queue):
        event = {"event_type": NOTE_CREATED, "event_id": "e1", "note_id": "NOTE-1", "content": "x"}

        await consumer.process_event(event)
        await consumer.process_event(event)

        assert queue.enqueue.await_count == 1

    async def test_events_without_id_always_processed(self, consumer, queue):
        event = {"event_type": NOTE_CREATED, "note_id": "NOTE-1", "content": "x"}

        await consumer.process_event(event)
        await consumer.process_event(event)

        assert queue.enqueue.await_count == 2

    async def test_failed_event_not_marked(self, consumer, queue):
        queue.reorganize.side_effect = [RuntimeError("store down"), None]
        event = {"event_type": NOTE_REORGANIZE, "event_id": "e1", "note_id": "NOTE-1"}

        with pytest.raises(RuntimeError):
            await consumer.process_event(event)
        await consumer.process_event(event)

        assert queue.reorganize.await_count == 2

    async def test_cache_evicts_oldest(self, consumer):
        for i in range(6):
            await consumer.process_event({"event_type": QUEUE_CANCEL, "event_id": f"e{i}"})

        assert list(consumer.processed_event_ids) == ["e1", "e2", "e3", "e4", "e5"]

    async def test_disabled(self, queue, store):
        consumer = NoteEventConsumer(queue, store, NATSConsumerConfig(enable_idempotency=False))
        event = {"event_type": QUEUE_CANCEL, "event_id": "e1"}

        await consumer.process_event(event)
        await consumer.process_event(event)

        assert queue.cancel_all.await_count == 2


class TestPublishOrganized:
    async def test_payload(self, consumer):
        consumer.nc = MagicMock()
        consumer.nc.publish = AsyncMock()

        await consumer.publish_organized("NOTE-1")

        subject, data = consumer.nc.publish.await_args.args
        payload = json.loads(data.decode())
        assert subject == "notes.note.organized"
        assert payload["event_type"] == NOTE_ORGANIZED
        assert payload["note_id"] == "NOTE-1"
        assert "timestamp" in payload

    async def test_not_connected_is_noop(self, consumer):
        await consumer.publish_organized("NOTE-1")

    async def test_consume_requires_connection(self, consumer):
        with pytest.raises(RuntimeError, match="connect"):
            await consumer.consume()
