"""
NATS JetStream Consumer for Smart Notes

Pulls capture events from JetStream and turns them into enrichment queue
operations:

- notes.note.created / notes.note.saved  -> enqueue (saved honours defer_if_editing)
- notes.note.reorganize                  -> reorganize from scratch
- notes.editing.changed                  -> set the editing flag
- notes.queue.cancel                     -> cancel all jobs

Every organized note is announced on ``notes.note.organized``.

Features:
- Idempotent event processing using event_id
- Prometheus metrics for monitoring
- Pull-based consumption with explicit ack / nak
"""

import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

import nats
from nats.aio.client import Client as NATS
from nats.js import JetStreamContext
from nats.js.api import AckPolicy, ConsumerConfig
from prometheus_client import Counter, Gauge, Histogram
from pydantic import BaseModel

from ..db.store import NoteStore
from ..enrichment.queue import NoteJob, ProcessingQueue
from .config import NATSConsumerConfig

logger = logging.getLogger(__name__)

# Prometheus metrics
EVENTS_RECEIVED = Counter(
    'smart_notes_nats_events_received_total',
    'Total number of NATS events received',
    ['event_type', 'status']
)

EVENTS_PROCESSED = Counter(
    'smart_notes_nats_events_processed_total',
    'Total number of NATS events successfully processed',
    ['event_type']
)

EVENTS_FAILED = Counter(
    'smart_notes_nats_events_failed_total',
    'Total number of NATS events that failed processing',
    ['event_type', 'error_type']
)

PROCESSING_TIME = Histogram(
    'smart_notes_nats_event_processing_seconds',
    'Time spent processing NATS events',
    ['event_type']
)

CONSUMER_LAG = Gauge(
    'smart_notes_nats_consumer_lag',
    'Number of pending messages in NATS stream'
)

NOTE_CREATED = "notes.note.created"
NOTE_SAVED = "notes.note.saved"
NOTE_REORGANIZE = "notes.note.reorganize"
EDITING_CHANGED = "notes.editing.changed"
QUEUE_CANCEL = "notes.queue.cancel"
NOTE_ORGANIZED = "notes.note.organized"


class NoteSavedEvent(BaseModel):
    """Payload of created/saved events. Without content the store is read."""

    note_id: str
    content: Optional[str] = None
    defer_if_editing: bool = False


class NoteReorganizeEvent(BaseModel):
    note_id: str


class EditingChangedEvent(BaseModel):
    editing: bool


class NoteEventConsumer:
    """
    NATS JetStream consumer feeding the enrichment queue.
    """

    def __init__(
        self,
        queue: ProcessingQueue,
        store: NoteStore,
        config: Optional[NATSConsumerConfig] = None,
    ):
        """
        Initialize NATS consumer.

        Args:
            queue: Enrichment queue receiving the jobs
            store: Note store, read when an event carries no content
            config: NATS consumer configuration
        """
        self.queue = queue
        self.store = store
        self.config = config or NATSConsumerConfig()

        self.nc: Optional[NATS] = None
        self.js: Optional[JetStreamContext] = None
        self.running = False

        # Insertion-ordered so the oldest ids are evicted first
        self.processed_event_ids: Dict[str, None] = {}

        self._unsubscribe: Optional[Callable[[], None]] = None

        self.handlers = {
            NOTE_CREATED: self._handle_note_saved,
            NOTE_SAVED: self._handle_note_saved,
            NOTE_REORGANIZE: self._handle_reorganize,
            EDITING_CHANGED: self._handle_editing_changed,
            QUEUE_CANCEL: self._handle_cancel,
        }

    async def connect(self) -> None:
        """Connect to NATS, initialize JetStream and start announcing organized notes."""
        try:
            logger.info(f"Connecting to NATS servers: {self.config.servers}")

            self.nc = await nats.connect(**self.config.get_nats_connection_options())
            self.js = self.nc.jetstream()
            self._unsubscribe = self.queue.subscribe(self.publish_organized)

            logger.info("Successfully connected to NATS and initialized JetStream")

        except Exception as e:
            logger.error(f"Failed to connect to NATS: {e}")
            raise

    async def disconnect(self) -> None:
        """Disconnect from NATS server."""
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None

        if self.nc:
            await self.nc.drain()
            await self.nc.close()
            logger.info("Disconnected from NATS")

    def _is_event_processed(self, event_id: str) -> bool:
        if not self.config.enable_idempotency:
            return False

        return event_id in self.processed_event_ids

    def _mark_event_processed(self, event_id: str) -> None:
        if not self.config.enable_idempotency:
            return

        self.processed_event_ids[event_id] = None

        if len(self.processed_event_ids) > self.config.idempotency_cache_size:
            # Drop the oldest 20%
            remove_count = max(self.config.idempotency_cache_size // 5, 1)
            for old_id in list(self.processed_event_ids)[:remove_count]:
                del self.processed_event_ids[old_id]

    async def publish_organized(self, note_id: str) -> None:
        """Queue observer: announce a freshly organized note."""
        if not self.nc:
            return

        payload = {
            "event_type": NOTE_ORGANIZED,
            "note_id": note_id,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        await self.nc.publish(self.config.organized_subject, json.dumps(payload).encode())
        logger.debug(f"Published {self.config.organized_subject} for note {note_id}")

    # ------------------------------------------------------------------
    # Event handlers
    # ------------------------------------------------------------------

    async def _handle_note_saved(self, event_data: Dict[str, Any]) -> None:
        event = NoteSavedEvent.model_validate(event_data)
        content = event.content

        if content is None:
            note = await self.store.get(event.note_id)
            if note is None:
                logger.warning(f"Note {event.note_id} from event not found in store, skipping")
                return
            content = note.content

        await self.queue.enqueue(
            NoteJob(note_id=event.note_id, content=content),
            defer_if_editing=event.defer_if_editing,
        )

    async def _handle_reorganize(self, event_data: Dict[str, Any]) -> None:
        event = NoteReorganizeEvent.model_validate(event_data)
        await self.queue.reorganize(event.note_id)

    async def _handle_editing_changed(self, event_data: Dict[str, Any]) -> None:
        event = EditingChangedEvent.model_validate(event_data)
        await self.queue.set_editing(event.editing)

    async def _handle_cancel(self, event_data: Dict[str, Any]) -> None:
        await self.queue.cancel_all()

    async def process_event(self, event_data: Dict[str, Any], subject: Optional[str] = None) -> None:
        """
        Process a single NATS event.

        Args:
            event_data: Event payload
            subject: Message subject, used when the payload has no event_type
        """
        event_type = event_data.get('event_type') or subject or 'unknown'
        event_id = event_data.get('event_id')

        start_time = datetime.now(timezone.utc)

        try:
            if event_type == NOTE_ORGANIZED:
                # Our own announcement, captured by the same stream
                EVENTS_RECEIVED.labels(event_type=event_type, status='ignored').inc()
                return

            if event_id and self._is_event_processed(str(event_id)):
                logger.info(f"Event {event_id} already processed, skipping")
                EVENTS_RECEIVED.labels(event_type=event_type, status='duplicate').inc()
                return

            EVENTS_RECEIVED.labels(event_type=event_type, status='new').inc()

            handler = self.handlers.get(event_type)
            if not handler:
                logger.warning(f"Unknown event type: {event_type}")
                EVENTS_FAILED.labels(event_type=event_type, error_type='unknown_event_type').inc()
                return

            await handler(event_data)

            if event_id:
                self._mark_event_processed(str(event_id))

            processing_time = (datetime.now(timezone.utc) - start_time).total_seconds()
            EVENTS_PROCESSED.labels(event_type=event_type).inc()
            PROCESSING_TIME.labels(event_type=event_type).observe(processing_time)

            logger.info(f"Successfully processed event {event_id} ({event_type}) in {processing_time:.2f}s")

        except Exception as e:
            error_type = type(e).__name__
            logger.error(f"Failed to process event {event_id} ({event_type}): {e}", exc_info=True)
            EVENTS_FAILED.labels(event_type=event_type, error_type=error_type).inc()
            raise

    async def consume(self) -> None:
        """
        Start consuming events from NATS JetStream.

        Uses pull-based consumption for back-pressure handling.
        """
        if not self.js:
            raise RuntimeError("Not connected to NATS JetStream. Call connect() first.")

        logger.info(f"Starting NATS consumer for stream: {self.config.stream_name}")
        logger.info(f"Filter subject: {self.config.filter_subject}")

        consumer_config = ConsumerConfig(
            durable_name=self.config.durable_name,
            ack_policy=AckPolicy.EXPLICIT,
            ack_wait=self.config.ack_wait_seconds,
            max_deliver=self.config.max_deliver,
            filter_subject=self.config.filter_subject,
        )

        consumer = await self.js.pull_subscribe(
            subject=self.config.filter_subject,
            durable=self.config.durable_name,
            stream=self.config.stream_name,
            config=consumer_config,
        )

        self.running = True

        logger.info("NATS consumer started successfully")

        try:
            while self.running:
                try:
                    messages = await consumer.fetch(
                        batch=self.config.batch_size,
                        timeout=self.config.fetch_timeout_seconds,
                    )

                    pending = await consumer.consumer_info()
                    CONSUMER_LAG.set(pending.num_pending)

                    for msg in messages:
                        try:
                            event_data = json.loads(msg.data.decode())
                            await self.process_event(event_data, subject=msg.subject)
                            await msg.ack()

                        except Exception as e:
                            logger.error(f"Error processing message: {e}", exc_info=True)
                            await msg.nak()

                except asyncio.TimeoutError:
                    # No messages available, continue polling
                    continue

                except Exception as e:
                    logger.error(f"Error fetching messages: {e}", exc_info=True)
                    await asyncio.sleep(self.config.error_backoff_seconds)

        except asyncio.CancelledError:
            logger.info("Consumer cancelled, shutting down...")
        finally:
            self.running = False

    async def stop(self) -> None:
        self.running = False

    async def run(self) -> None:
        """
        Run the NATS consumer (connect + consume).
        """
        try:
            await self.connect()
            await self.consume()
        finally:
            await self.disconnect()
