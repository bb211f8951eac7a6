"""
============================================================================
Smart Notes - Retrieval Module
============================================================================
Hybrid keyword, semantic and temporal note search
============================================================================
"""

from smart_notes.retrieval.embedder import EmbeddingService
from smart_notes.retrieval.query_interpreter import QueryInterpreter
from smart_notes.retrieval.service import RetrievalService
from smart_notes.retrieval.temporal_parser import parse_temporal_query

__all__ = [
    "EmbeddingService",
    "QueryInterpreter",
    "RetrievalService",
    "parse_temporal_query",
]
