"""Tests for the single-flight enrichment queue."""

import asyncio
from datetime import datetime, timedelta

import pytest

from conftest import FakeEmbedder, FakeGenerator, scripted_reply
from smart_notes.enrichment.classifier import CLASSIFY_PROMPT
from smart_notes.enrichment.queue import CancellationToken, NoteJob, ProcessingQueue
from smart_notes.errors import JobCancelledError, ModelError, NoteNotFoundError
from smart_notes.models import AIStatus, NoteCreate, NoteType, NoteUpdate
from smart_notes.retrieval.embedder import EmbeddingService, fallback_embedding, parse_vector

pytestmark = pytest.mark.unit

TRIP = "Thinking about a two week trip to Japan in the spring, Kyoto first"


def make_queue(store, settings, generator=None, embedder=None):
    return ProcessingQueue(store, EmbeddingService(embedder), generator, settings)


async def add_and_enqueue(queue, store, content, **fields):
    note = await store.create(NoteCreate(content=content, **fields))
    await queue.enqueue(NoteJob(note.id, note.content))
    return note


class TestPipeline:
    async def test_organizes_note_with_generator_and_embedder(
        self, store, queue_settings, generator, embedder
    ):
        queue = make_queue(store, queue_settings, generator, embedder)
        organized = []
        queue.subscribe(organized.append)

        note = await add_and_enqueue(queue, store, TRIP)
        await queue.join()

        result = await store.get(note.id)
        assert result.title == "Trip Planning"
        assert result.type == NoteType.IDEA
        assert result.is_processed is True
        assert result.ai_status == AIStatus.ORGANIZED
        assert result.ai_error is None
        assert len(parse_vector(result.embedding)) == 384

        tags = await store.list_tags(note.id)
        assert [t.name for t in tags] == ["travel", "japan"]
        assert all(t.is_auto for t in tags)
        assert organized == [note.id]

    async def test_buy_milk_is_deterministic_without_models(self, store, queue_settings):
        queue = make_queue(store, queue_settings)

        first = await add_and_enqueue(queue, store, "Buy milk")
        second = await add_and_enqueue(queue, store, "Buy milk")
        await queue.join()

        a, b = await store.get(first.id), await store.get(second.id)
        assert a.title == b.title == "Buy milk"
        assert a.type == b.type == NoteType.NOTE
        assert a.embedding == b.embedding
        assert parse_vector(a.embedding) == pytest.approx(fallback_embedding("Buy milk"))
        assert await store.list_tags(first.id) == await store.list_tags(second.id) == []

    async def test_short_content_never_reaches_generator(self, store, queue_settings, generator):
        queue = make_queue(store, queue_settings, generator)

        await add_and_enqueue(queue, store, "Buy milk")
        await queue.join()

        assert generator.calls == []

    async def test_capture_type_skips_classification(self, store, queue_settings, generator):
        queue = make_queue(store, queue_settings, generator)

        note = await add_and_enqueue(queue, store, TRIP, type=NoteType.VOICE)
        await queue.join()

        assert (await store.get(note.id)).type == NoteType.VOICE
        assert CLASSIFY_PROMPT not in generator.system_prompts()

    async def test_stage_exception_uses_fallback(self, store, queue_settings):
        generator = FakeGenerator(scripted_reply())
        generator.fail_with = RuntimeError("native crash")
        queue = make_queue(store, queue_settings, generator)

        note = await add_and_enqueue(queue, store, "Weekly planning\nBook flights and hotel for the trip")
        await queue.join()

        result = await store.get(note.id)
        assert result.ai_status == AIStatus.ORGANIZED
        assert result.title == "Weekly planning"

    async def test_embedding_failure_stores_fallback_vector(self, store, queue_settings):
        embedder = FakeEmbedder()
        embedder.fail_with = ModelError("out of memory")
        queue = make_queue(store, queue_settings, embedder=embedder)

        note = await add_and_enqueue(queue, store, TRIP)
        await queue.join()

        result = await store.get(note.id)
        assert result.ai_status == AIStatus.ORGANIZED
        assert len(parse_vector(result.embedding)) == 256

    async def test_store_failure_marks_note_failed(self, store, queue_settings):
        original_update = store.update

        async def failing_update(note_id, fields):
            if fields.title is not None:
                raise RuntimeError("disk full")
            return await original_update(note_id, fields)

        store.update = failing_update
        queue = make_queue(store, queue_settings)
        organized = []
        queue.subscribe(organized.append)

        note = await add_and_enqueue(queue, store, TRIP)
        await queue.join()

        result = await store.get(note.id)
        assert result.ai_status == AIStatus.FAILED
        assert result.is_processed is True
        assert result.ai_error == "disk full"
        assert organized == []

    async def test_auto_tags_replaced_and_manual_tags_kept(self, store, queue_settings):
        generator = FakeGenerator(scripted_reply(tags="alpha\nbeta"))
        queue = make_queue(store, queue_settings, generator)

        note = await store.create(NoteCreate(content=TRIP))
        await store.add_tag(note.id, "personal", is_auto=False)
        await queue.enqueue(NoteJob(note.id, note.content))
        await queue.join()

        generator.reply = scripted_reply(tags="gamma")
        await queue.reorganize(note.id)
        await queue.join()

        tags = {t.name: t.is_auto for t in await store.list_tags(note.id)}
        assert tags == {"personal": False, "gamma": True}


class TestQueueing:
    async def test_at_most_one_job_processing(self, recording_store, queue_settings):
        queue = make_queue(recording_store, queue_settings, embedder=FakeEmbedder())
        order = []
        queue.subscribe(order.append)

        notes = [await recording_store.create(NoteCreate(content=f"note number {i} {TRIP}")) for i in range(4)]
        await asyncio.gather(*(queue.enqueue(NoteJob(n.id, n.content)) for n in notes))
        await queue.join()

        assert recording_store.max_processing == 1
        assert order == [n.id for n in notes]

    async def test_duplicate_enqueue_is_noop(self, store, queue_settings):
        generator = FakeGenerator(scripted_reply())
        generator.gate = asyncio.Event()
        queue = make_queue(store, queue_settings, generator)

        blocker = await add_and_enqueue(queue, store, TRIP)
        await generator.started.wait()

        note = await store.create(NoteCreate(content="Second note about the garden"))
        assert await queue.enqueue(NoteJob(note.id, note.content)) is True
        assert await queue.enqueue(NoteJob(note.id, note.content)) is False

        status = queue.get_status()
        assert status.queued == 1
        assert status.is_processing is True
        assert status.current_note_id == blocker.id

        generator.gate.set()
        await queue.join()
        assert (await store.get(note.id)).ai_status == AIStatus.ORGANIZED

    async def test_enqueue_marks_note_queued(self, store, queue_settings):
        generator = FakeGenerator(scripted_reply())
        generator.gate = asyncio.Event()
        queue = make_queue(store, queue_settings, generator)

        await add_and_enqueue(queue, store, TRIP)
        await generator.started.wait()
        waiting = await add_and_enqueue(queue, store, "Another note waiting its turn")

        assert (await store.get(waiting.id)).ai_status == AIStatus.QUEUED
        generator.gate.set()
        await queue.join()

    async def test_join_returns_immediately_when_idle(self, store, queue_settings):
        queue = make_queue(store, queue_settings)
        await asyncio.wait_for(queue.join(), timeout=1)


class TestCancellation:
    async def test_cancel_during_processing(self, store, queue_settings):
        generator = FakeGenerator(scripted_reply())
        generator.gate = asyncio.Event()
        queue = make_queue(store, queue_settings, generator)
        organized = []
        queue.subscribe(organized.append)

        running = await add_and_enqueue(queue, store, TRIP)
        await generator.started.wait()
        waiting = await add_and_enqueue(queue, store, "Queued note that never starts")

        await queue.cancel_all()
        generator.gate.set()
        await queue.join()

        assert (await store.get(running.id)).ai_status == AIStatus.CANCELLED
        assert (await store.get(waiting.id)).ai_status == AIStatus.CANCELLED
        assert organized == []
        assert queue.get_status().generation == 1

    async def test_queue_accepts_work_after_cancel(self, store, queue_settings):
        queue = make_queue(store, queue_settings)
        await queue.cancel_all()

        note = await add_and_enqueue(queue, store, "Buy milk")
        await queue.join()

        assert (await store.get(note.id)).ai_status == AIStatus.ORGANIZED

    def test_token_raises_once_generation_moves(self):
        generation = [0]
        token = CancellationToken("NOTE-1", 0, lambda: generation[0])
        token.check()

        generation[0] += 1
        assert token.cancelled
        with pytest.raises(JobCancelledError):
            token.check()


class TestEditingDeferral:
    async def test_deferred_jobs_flush_with_latest_content(self, store, queue_settings):
        queue = make_queue(store, queue_settings)
        note = await store.create(NoteCreate(content="First draft"))

        await queue.set_editing(True)
        await queue.enqueue(NoteJob(note.id, "First draft"), defer_if_editing=True)
        await queue.enqueue(NoteJob(note.id, "Second draft"), defer_if_editing=True)

        status = queue.get_status()
        assert status.pending_while_editing == 1
        assert status.queued == 0
        assert (await store.get(note.id)).ai_status == AIStatus.IDLE

        await queue.set_editing(False)
        await queue.join()

        result = await store.get(note.id)
        assert result.ai_status == AIStatus.ORGANIZED
        assert result.title == "Second draft"

    async def test_non_deferred_job_ignores_editing_flag(self, store, queue_settings):
        queue = make_queue(store, queue_settings)
        await queue.set_editing(True)

        note = await add_and_enqueue(queue, store, "Buy milk")
        await queue.join()

        assert (await store.get(note.id)).ai_status == AIStatus.ORGANIZED

    async def test_cancel_drops_deferred_jobs(self, store, queue_settings):
        queue = make_queue(store, queue_settings)
        note = await store.create(NoteCreate(content="Draft"))

        await queue.set_editing(True)
        await queue.enqueue(NoteJob(note.id, "Draft"), defer_if_editing=True)
        await queue.cancel_all()
        await queue.set_editing(False)
        await queue.join()

        assert queue.get_status().pending_while_editing == 0
        assert (await store.get(note.id)).ai_status == AIStatus.CANCELLED


class TestReorganizeAndRequeue:
    async def test_reorganize_missing_note(self, store, queue_settings):
        queue = make_queue(store, queue_settings)
        with pytest.raises(NoteNotFoundError):
            await queue.reorganize("NOTE-missing")

    async def test_reorganize_failed_note(self, store, queue_settings):
        queue = make_queue(store, queue_settings)
        note = await store.create(NoteCreate(content="Buy milk"))
        await store.update(
            note.id,
            NoteUpdate(is_processed=True, ai_status=AIStatus.FAILED, ai_error="boom"),
        )

        await queue.reorganize(note.id)
        await queue.join()

        result = await store.get(note.id)
        assert result.ai_status == AIStatus.ORGANIZED
        assert result.ai_error is None

    async def test_requeue_unprocessed_oldest_first(self, store, queue_settings):
        queue = make_queue(store, queue_settings)
        order = []
        queue.subscribe(order.append)
        now = datetime(2025, 6, 18, 12, 0)

        newer = await store.create(NoteCreate(content="Newer note", created_at=now))
        older = await store.create(NoteCreate(content="Older note", created_at=now - timedelta(days=1)))
        done = await store.create(NoteCreate(content="Done note", created_at=now - timedelta(days=2)))
        cancelled = await store.create(NoteCreate(content="Cancelled note", created_at=now - timedelta(days=3)))
        await store.update(done.id, NoteUpdate(is_processed=True, ai_status=AIStatus.ORGANIZED))
        await store.update(cancelled.id, NoteUpdate(ai_status=AIStatus.CANCELLED))

        assert await queue.requeue_unprocessed() == 2
        await queue.join()

        assert order == [older.id, newer.id]
        assert (await store.get(cancelled.id)).ai_status == AIStatus.CANCELLED


class TestObservers:
    async def test_failing_observer_does_not_affect_others(self, store, queue_settings):
        queue = make_queue(store, queue_settings)
        seen = []

        def broken(note_id):
            raise RuntimeError("observer bug")

        queue.subscribe(broken)
        queue.subscribe(seen.append)

        note = await add_and_enqueue(queue, store, "Buy milk")
        await queue.join()

        assert seen == [note.id]
        assert (await store.get(note.id)).ai_status == AIStatus.ORGANIZED

    async def test_unsubscribe(self, store, queue_settings):
        queue = make_queue(store, queue_settings)
        seen = []
        unsubscribe = queue.subscribe(seen.append)
        unsubscribe()

        await add_and_enqueue(queue, store, "Buy milk")
        await queue.join()

        assert seen == []

    async def test_async_observer_is_awaited(self, store, queue_settings):
        queue = make_queue(store, queue_settings)
        delivered = asyncio.Event()

        async def on_done(note_id):
            delivered.set()

        queue.subscribe(on_done)
        await add_and_enqueue(queue, store, "Buy milk")
        await queue.join()

        await asyncio.wait_for(delivered.wait(), timeout=1)
