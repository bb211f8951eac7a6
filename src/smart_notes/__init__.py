"""
============================================================================
Smart Notes - Note Enrichment and Retrieval Service
============================================================================
Background AI organization of notes plus hybrid keyword, semantic and
temporal search
============================================================================
"""

__version__ = "0.1.0"

from smart_notes.config import Settings
from smart_notes.db.connection import Neo4jConnection
from smart_notes.enrichment import ProcessingQueue
from smart_notes.retrieval import EmbeddingService, RetrievalService

__all__ = [
    "Settings",
    "Neo4jConnection",
    "ProcessingQueue",
    "EmbeddingService",
    "RetrievalService",
]
