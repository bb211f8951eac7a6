"""
Smart Notes Service - Main Application Entry Point

Long-running service that:
1. Connects to Neo4j as the note store
2. Loads the embedding model in the background
3. Re-queues notes left unprocessed by a previous run
4. Consumes capture events from NATS JetStream into the enrichment queue
"""

import asyncio
import logging
import signal
import sys
from dataclasses import dataclass
from typing import Optional

from prometheus_client import start_http_server

from smart_notes.adapters import GeminiGenerator, SentenceTransformerEmbedder
from smart_notes.config import Settings
from smart_notes.db import Neo4jConnection, Neo4jNoteStore, NoteStore
from smart_notes.enrichment import ProcessingQueue
from smart_notes.nats_integration import NATSConsumerConfig, NoteEventConsumer
from smart_notes.retrieval import EmbeddingService, QueryInterpreter, RetrievalService

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

logger = logging.getLogger(__name__)


@dataclass
class NoteServices:
    """Everything built on top of a note store."""

    store: NoteStore
    embedder: SentenceTransformerEmbedder
    generator: GeminiGenerator
    embeddings: EmbeddingService
    queue: ProcessingQueue
    retrieval: RetrievalService


def build_services(settings: Settings, store: NoteStore) -> NoteServices:
    """Wire adapters, the enrichment queue and the search engine around ``store``."""
    embedder = SentenceTransformerEmbedder(settings.embedding)
    generator = GeminiGenerator(settings.llm)
    embeddings = EmbeddingService(embedder, settings.embedding.fallback_dimensions)

    queue = ProcessingQueue(store, embeddings, generator, settings.queue)
    interpreter = QueryInterpreter(generator, settings.search.interpretation_timeout_seconds)
    retrieval = RetrievalService(store, embeddings, settings.search, interpreter)

    return NoteServices(
        store=store,
        embedder=embedder,
        generator=generator,
        embeddings=embeddings,
        queue=queue,
        retrieval=retrieval,
    )


class SmartNotesApplication:
    """Main application orchestrator for the Smart Notes service."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        nats_config: Optional[NATSConsumerConfig] = None,
    ):
        self.settings = settings or Settings()
        self.nats_config = nats_config or NATSConsumerConfig()
        self.neo4j_connection: Optional[Neo4jConnection] = None
        self.services: Optional[NoteServices] = None
        self.nats_consumer: Optional[NoteEventConsumer] = None
        self._model_load: Optional[asyncio.Task] = None

    async def startup(self) -> None:
        """Initialize all service components."""
        logger.info("=" * 80)
        logger.info("Smart Notes Service - Starting Up")
        logger.info("=" * 80)

        # 1. Connect to Neo4j
        logger.info("Connecting to Neo4j...")
        self.neo4j_connection = Neo4jConnection(self.settings.neo4j)
        store = Neo4jNoteStore(self.neo4j_connection)
        await asyncio.to_thread(store.ensure_schema)
        logger.info(f"✓ Connected to Neo4j at {self.settings.neo4j.uri}")

        # 2. Adapters, queue and search engine
        self.services = build_services(self.settings, store)
        self._model_load = asyncio.create_task(self.services.embedder.load())
        logger.info("✓ Embedding model loading in the background")
        if not self.services.generator.is_ready:
            logger.warning("Generator unavailable, enrichment will use rule-based fallbacks")

        # 3. Metrics
        if self.settings.app.enable_metrics:
            start_http_server(self.settings.app.metrics_port)
            logger.info(f"✓ Prometheus metrics on port {self.settings.app.metrics_port}")

        # 4. Resume work left over from the previous run
        requeued = await self.services.queue.requeue_unprocessed()
        logger.info(f"✓ Re-queued {requeued} unprocessed note(s)")

        # 5. NATS consumer
        self.nats_consumer = NoteEventConsumer(
            self.services.queue, store, self.nats_config
        )

        logger.info("=" * 80)
        logger.info("Smart Notes Service - Ready")
        logger.info("=" * 80)
        logger.info(f"  • Neo4j:     {self.settings.neo4j.uri}")
        logger.info(f"  • NATS:      {', '.join(self.nats_config.servers)}")
        logger.info(f"  • Stream:    {self.nats_config.stream_name}")
        logger.info(f"  • Consumer:  {self.nats_config.durable_name}")
        logger.info("=" * 80)

    async def run(self) -> None:
        """Start up and consume events until stopped."""
        try:
            await self.startup()
            logger.info("Starting NATS event consumption...")
            await self.nats_consumer.run()
        except Exception as e:
            logger.error(f"Fatal error: {e}", exc_info=True)
            raise
        finally:
            await self.shutdown()

    def request_stop(self) -> None:
        """Signal handler: let the consumer loop finish its current fetch."""
        logger.info("Received shutdown signal...")
        if self.nats_consumer:
            self.nats_consumer.running = False

    async def shutdown(self) -> None:
        """Gracefully shutdown all service components."""
        logger.info("=" * 80)
        logger.info("Smart Notes Service - Shutting Down")
        logger.info("=" * 80)

        # Unfinished notes stay unprocessed and are re-queued on next start
        if self._model_load and not self._model_load.done():
            self._model_load.cancel()

        if self.neo4j_connection:
            logger.info("Closing Neo4j connection...")
            try:
                self.neo4j_connection.close()
                logger.info("✓ Neo4j connection closed")
            except Exception as e:
                logger.warning(f"Error closing Neo4j: {e}")

        logger.info("Smart Notes Service - Stopped")


async def main(settings: Optional[Settings] = None) -> None:
    """Main entry point."""
    app = SmartNotesApplication(settings)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, app.request_stop)

    await app.run()


def run() -> None:
    """Console script entry point."""
    settings = Settings()
    logging.basicConfig(
        level=getattr(logging, settings.app.log_level),
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    try:
        asyncio.run(main(settings))
    except KeyboardInterrupt:
        logger.info("Shutdown complete")
    except Exception as e:
        logger.error(f"Application failed: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    run()
