"""
============================================================================
Smart Notes - Pydantic Models
============================================================================
Type-safe data models for notes, tags and search results
============================================================================
"""

from .note import AIStatus, NoteCreate, NoteRecord, NoteType, NoteUpdate, Tag
from .search import AskResult, MatchType, SearchResponse, SearchResult, TemporalFilter

__all__ = [
    # Note
    "AIStatus",
    "NoteCreate",
    "NoteRecord",
    "NoteType",
    "NoteUpdate",
    "Tag",
    # Search
    "AskResult",
    "MatchType",
    "SearchResponse",
    "SearchResult",
    "TemporalFilter",
]
