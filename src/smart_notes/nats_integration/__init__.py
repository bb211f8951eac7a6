"""
NATS Integration for Smart Notes

Capture events arrive over NATS JetStream and drive the enrichment queue.

Components:
- consumer: JetStream pull consumer mapping events to queue operations
- config: Configuration for the consumer

Usage:
    from smart_notes.nats_integration import NoteEventConsumer

    consumer = NoteEventConsumer(queue, store)
    await consumer.run()
"""

from .config import NATSConsumerConfig
from .consumer import NoteEventConsumer

__all__ = [
    "NATSConsumerConfig",
    "NoteEventConsumer",
]
