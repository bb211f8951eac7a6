"""
============================================================================
Enrichment Processing Queue
============================================================================
Single-flight background pipeline that enriches one note at a time:

    queued -> processing -> organized | failed | cancelled

Stages per job, in order:
1. start the embedding (awaited before the final write)
2. wait briefly for the Generator, then generate a title
3. classify the note type (skipped for voice/scan captures)
4. extract tags
5. await the embedding
6. write title/type/embedding/status and replace auto tags

A failing stage falls back to its rule-based output. Cancellation is
cooperative: ``cancel_all`` bumps a generation counter that each job
checks between stages, never during one.
============================================================================
"""

import asyncio
import inspect
import logging
import time
from collections import deque
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, TypeVar

from prometheus_client import Counter, Gauge, Histogram

from ..adapters.base import Generator, is_available
from ..config import QueueSettings
from ..db.store import NoteStore
from ..errors import JobCancelledError, NoteNotFoundError
from ..models import AIStatus, NoteType, NoteUpdate
from ..retrieval.embedder import EmbeddingService, serialize_vector
from .classifier import NoteClassifier, classify_with_rules
from .tag_generator import TagGenerator, extract_tags_with_rules
from .title_generator import TitleGenerator, fallback_title

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Prometheus metrics
JOBS_FINISHED = Counter(
    'smart_notes_enrichment_jobs_total',
    'Enrichment jobs finished, by outcome',
    ['outcome']
)

STAGE_FALLBACKS = Counter(
    'smart_notes_enrichment_stage_fallbacks_total',
    'Pipeline stages that raised and used their fallback output',
    ['stage']
)

JOB_DURATION = Histogram(
    'smart_notes_enrichment_job_seconds',
    'Time spent enriching a single note'
)

QUEUE_DEPTH = Gauge(
    'smart_notes_enrichment_queue_depth',
    'Jobs waiting in the active queue'
)

CompletionCallback = Callable[[str], Any]


@dataclass(frozen=True)
class NoteJob:
    """A note id plus the content snapshot taken at enqueue time."""

    note_id: str
    content: str


@dataclass
class QueueStatus:
    is_processing: bool
    current_note_id: str | None
    queued: int
    pending_while_editing: int
    editing: bool
    generation: int


class CancellationToken:
    """Captures the queue generation a job started under."""

    def __init__(self, note_id: str, generation: int, current: Callable[[], int]):
        self.note_id = note_id
        self.generation = generation
        self._current = current

    @property
    def cancelled(self) -> bool:
        return self._current() != self.generation

    def check(self) -> None:
        if self.cancelled:
            raise JobCancelledError(self.note_id)


class ProcessingQueue:
    """
    Owned, explicitly constructed enrichment queue.

    Example:
        ```python
        queue = ProcessingQueue(store, embeddings, generator, settings.queue)
        unsubscribe = queue.subscribe(lambda note_id: print("organized", note_id))

        await queue.enqueue(NoteJob(note.id, note.content))
        await queue.join()
        ```
    """

    def __init__(
        self,
        store: NoteStore,
        embeddings: EmbeddingService,
        generator: Generator | None,
        settings: QueueSettings,
    ):
        """
        Initialize the queue and its stage generators.

        Args:
            store: Note store the pipeline reads from and writes to
            embeddings: Embedding service (neural with fallback)
            generator: Text Generator; may be absent
            settings: Delays, readiness wait and short-content threshold
        """
        self.store = store
        self.embeddings = embeddings
        self.generator = generator
        self.settings = settings

        self.title_generator = TitleGenerator(generator, settings.min_ai_content_length)
        self.classifier = NoteClassifier(generator, settings.min_ai_content_length)
        self.tag_generator = TagGenerator(
            generator, min_ai_content_length=settings.min_ai_content_length
        )

        self._queue: deque[NoteJob] = deque()
        self._pending: dict[str, NoteJob] = {}
        self._editing = False
        self._generation = 0
        self._processing = False
        self._current_note_id: str | None = None

        self._observers: list[CompletionCallback] = []
        self._observer_tasks: set[asyncio.Task] = set()

        self._worker: asyncio.Task | None = None
        self._idle = asyncio.Event()
        self._idle.set()

    # ------------------------------------------------------------------
    # Queue operations
    # ------------------------------------------------------------------

    async def enqueue(self, job: NoteJob, defer_if_editing: bool = False) -> bool:
        """
        Add a job to the queue.

        Args:
            job: Note id and content snapshot
            defer_if_editing: Hold the job while the editing flag is set

        Returns:
            False when a job for the same note is already waiting in the
            active queue (no-op), True otherwise
        """
        if defer_if_editing and self._editing:
            # Latest snapshot wins
            self._pending.pop(job.note_id, None)
            self._pending[job.note_id] = job
            logger.debug(f"Deferred note {job.note_id} while editing")
            return True

        if self._is_queued(job.note_id):
            logger.debug(f"Note {job.note_id} already queued, skipping")
            return False

        await self.store.update(job.note_id, NoteUpdate(ai_status=AIStatus.QUEUED))

        # Another enqueue may have won the race during the status write
        if self._is_queued(job.note_id):
            return False

        self._pending.pop(job.note_id, None)
        self._queue.append(job)
        QUEUE_DEPTH.set(len(self._queue))
        logger.info(f"Queued note {job.note_id} ({len(self._queue)} waiting)")
        self._ensure_worker()
        return True

    async def set_editing(self, editing: bool) -> None:
        """Editing-context signal. Clearing it flushes deferred jobs in arrival order."""
        self._editing = editing
        if editing or not self._pending:
            return

        deferred = list(self._pending.values())
        self._pending.clear()
        logger.info(f"Editing finished, flushing {len(deferred)} deferred job(s)")
        for job in deferred:
            await self.enqueue(job)

    async def cancel_all(self) -> None:
        """Drop every waiting job and stop the in-flight one at its next stage boundary."""
        self._generation += 1
        dropped = list(dict.fromkeys([job.note_id for job in self._queue] + list(self._pending)))
        self._queue.clear()
        self._pending.clear()
        QUEUE_DEPTH.set(0)

        logger.info(
            f"Cancelled queue (generation {self._generation}), "
            f"dropped {len(dropped)} waiting job(s)"
        )
        for note_id in dropped:
            await self.store.update(note_id, NoteUpdate(ai_status=AIStatus.CANCELLED))

    async def reorganize(self, note_id: str) -> bool:
        """
        Re-run enrichment from scratch with the note's current content.

        Raises:
            NoteNotFoundError: the note does not exist
        """
        note = await self.store.get(note_id)
        if note is None:
            raise NoteNotFoundError(note_id)

        await self.store.update(note_id, NoteUpdate(is_processed=False, ai_error=None))
        return await self.enqueue(NoteJob(note_id=note.id, content=note.content))

    async def requeue_unprocessed(self) -> int:
        """Enqueue every unprocessed, non-cancelled note, oldest first."""
        notes = await self.store.get_all()
        unprocessed = sorted(
            (n for n in notes if not n.is_processed and n.ai_status != AIStatus.CANCELLED),
            key=lambda n: n.created_at,
        )
        count = 0
        for note in unprocessed:
            if await self.enqueue(NoteJob(note_id=note.id, content=note.content)):
                count += 1
        if count:
            logger.info(f"Re-queued {count} unprocessed note(s)")
        return count

    def get_status(self) -> QueueStatus:
        return QueueStatus(
            is_processing=self._processing,
            current_note_id=self._current_note_id,
            queued=len(self._queue),
            pending_while_editing=len(self._pending),
            editing=self._editing,
            generation=self._generation,
        )

    async def join(self) -> None:
        """Wait until the active queue is drained and no job is running."""
        await self._idle.wait()

    # ------------------------------------------------------------------
    # Completion observers
    # ------------------------------------------------------------------

    def subscribe(self, callback: CompletionCallback) -> Callable[[], None]:
        """
        Register a callback fired with the note id after a successful run.

        The callback may be a coroutine function. Returns an unsubscribe
        function.
        """
        self._observers.append(callback)
        return lambda: self.unsubscribe(callback)

    def unsubscribe(self, callback: CompletionCallback) -> None:
        if callback in self._observers:
            self._observers.remove(callback)

    def _notify(self, note_id: str) -> None:
        for callback in list(self._observers):
            try:
                result = callback(note_id)
            except Exception as e:
                logger.error(f"Completion observer failed for note {note_id}: {e}", exc_info=True)
                continue

            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                self._observer_tasks.add(task)
                task.add_done_callback(self._observer_done)

    def _observer_done(self, task: asyncio.Task) -> None:
        self._observer_tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Completion observer failed: {task.exception()}")

    # ------------------------------------------------------------------
    # Worker
    # ------------------------------------------------------------------

    def _is_queued(self, note_id: str) -> bool:
        return any(job.note_id == note_id for job in self._queue)

    def _ensure_worker(self) -> None:
        if self._worker is None or self._worker.done():
            self._idle.clear()
            self._worker = asyncio.create_task(self._drain())

    async def _drain(self) -> None:
        try:
            while self._queue:
                job = self._queue.popleft()
                QUEUE_DEPTH.set(len(self._queue))
                await self._process(job)

                if self._queue and self.settings.stage_delay_seconds:
                    await asyncio.sleep(self.settings.stage_delay_seconds)
        finally:
            self._idle.set()

    async def _process(self, job: NoteJob) -> None:
        token = CancellationToken(job.note_id, self._generation, lambda: self._generation)
        self._processing = True
        self._current_note_id = job.note_id
        embedding_task: asyncio.Task | None = None
        started = time.monotonic()

        try:
            note = await self.store.update(
                job.note_id, NoteUpdate(ai_status=AIStatus.PROCESSING)
            )
            if note is None:
                logger.warning(f"Note {job.note_id} no longer exists, skipping")
                return

            logger.info(f"Processing note {job.note_id}")
            embedding_task = asyncio.create_task(self.embeddings.generate(job.content))
            token.check()

            await self._wait_for_generator()
            title = await self._run_stage(
                "title",
                lambda: self.title_generator.generate(job.content, note.type),
                lambda: fallback_title(job.content, note.type),
            )
            await self._pause(token)

            if note.type.is_capture_type:
                note_type = note.type
            else:
                note_type = await self._run_stage(
                    "classify",
                    lambda: self.classifier.classify(job.content),
                    lambda: classify_with_rules(job.content).type,
                )
                await self._pause(token)

            tags = await self._run_stage(
                "tags",
                lambda: self.tag_generator.generate(job.content),
                lambda: extract_tags_with_rules(job.content),
            )
            token.check()

            embedding = await self._await_embedding(embedding_task, job.content)
            embedding_task = None
            token.check()

            await self._write_result(job.note_id, title, note_type, embedding, tags)

            JOBS_FINISHED.labels(outcome=AIStatus.ORGANIZED.value).inc()
            logger.info(
                f"Organized note {job.note_id}: title='{title}', type={note_type.value}, "
                f"tags={tags}, embedding={len(embedding)} dims"
            )
            self._notify(job.note_id)

        except JobCancelledError:
            logger.info(f"Processing of note {job.note_id} cancelled")
            JOBS_FINISHED.labels(outcome=AIStatus.CANCELLED.value).inc()
            await self._mark(job.note_id, NoteUpdate(ai_status=AIStatus.CANCELLED))

        except Exception as e:
            logger.error(f"AI processing failed for note {job.note_id}: {e}", exc_info=True)
            JOBS_FINISHED.labels(outcome=AIStatus.FAILED.value).inc()
            # Processed so it is not picked up again
            await self._mark(
                job.note_id,
                NoteUpdate(is_processed=True, ai_status=AIStatus.FAILED, ai_error=str(e)),
            )

        finally:
            if embedding_task is not None:
                _discard(embedding_task)
            self._processing = False
            self._current_note_id = None
            JOB_DURATION.observe(time.monotonic() - started)

    async def _run_stage(
        self,
        name: str,
        operation: Callable[[], Awaitable[T]],
        fallback: Callable[[], T],
    ) -> T:
        try:
            return await operation()
        except Exception as e:
            logger.warning(f"Stage '{name}' failed, using fallback: {e}", exc_info=True)
            STAGE_FALLBACKS.labels(stage=name).inc()
            return fallback()

    async def _await_embedding(self, task: asyncio.Task, content: str) -> list[float]:
        try:
            return await task
        except Exception as e:
            logger.warning(f"Stage 'embedding' failed, using fallback: {e}", exc_info=True)
            STAGE_FALLBACKS.labels(stage="embedding").inc()
            return self.embeddings.fallback_embedding(content)

    async def _wait_for_generator(self) -> bool:
        """Poll until the Generator is free, up to the readiness timeout."""
        if self.generator is None:
            return False

        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.settings.readiness_timeout_seconds
        while not is_available(self.generator):
            if loop.time() >= deadline:
                logger.info(
                    f"Generator not available after {self.settings.readiness_timeout_seconds}s, "
                    f"using rule-based fallbacks"
                )
                return False
            await asyncio.sleep(self.settings.readiness_poll_seconds)
        return True

    async def _pause(self, token: CancellationToken) -> None:
        if self.settings.stage_delay_seconds:
            await asyncio.sleep(self.settings.stage_delay_seconds)
        token.check()

    async def _write_result(
        self,
        note_id: str,
        title: str,
        note_type: NoteType,
        embedding: list[float],
        tags: list[str],
    ) -> None:
        await self.store.update(
            note_id,
            NoteUpdate(
                title=title,
                type=note_type,
                embedding=serialize_vector(embedding),
                is_processed=True,
                ai_status=AIStatus.ORGANIZED,
                ai_error=None,
            ),
        )

        existing = await self.store.list_tags(note_id)
        for tag in existing:
            if tag.is_auto:
                await self.store.remove_tag(note_id, tag.id)

        manual = {tag.name for tag in existing if not tag.is_auto}
        for name in tags:
            if name not in manual:
                await self.store.add_tag(note_id, name, is_auto=True)

    async def _mark(self, note_id: str, update: NoteUpdate) -> None:
        try:
            await self.store.update(note_id, update)
        except Exception as e:
            logger.error(f"Failed to record final status for note {note_id}: {e}", exc_info=True)


def _discard(task: asyncio.Task) -> None:
    if not task.done():
        task.cancel()
    elif not task.cancelled():
        task.exception()
