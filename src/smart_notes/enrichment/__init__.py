"""
============================================================================
Smart Notes - Enrichment Module
============================================================================
Background pipeline that titles, classifies, tags and embeds new notes
============================================================================
"""

from smart_notes.enrichment.classifier import NoteClassifier, classify_with_rules
from smart_notes.enrichment.queue import (
    CancellationToken,
    NoteJob,
    ProcessingQueue,
    QueueStatus,
)
from smart_notes.enrichment.tag_generator import TagGenerator, extract_tags_with_rules
from smart_notes.enrichment.title_generator import TitleGenerator, fallback_title

__all__ = [
    "CancellationToken",
    "NoteClassifier",
    "NoteJob",
    "ProcessingQueue",
    "QueueStatus",
    "TagGenerator",
    "TitleGenerator",
    "classify_with_rules",
    "extract_tags_with_rules",
    "fallback_title",
]
