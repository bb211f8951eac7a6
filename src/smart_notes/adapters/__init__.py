"""
============================================================================
Smart Notes - Model Adapters
============================================================================
Generator / Embedder / OCR contracts and their concrete implementations
============================================================================
"""

from smart_notes.adapters.base import (
    Embedder,
    Generator,
    Message,
    ModelAdapter,
    OCR,
    is_available,
)
from smart_notes.adapters.gemini import GeminiGenerator
from smart_notes.adapters.sentence_transformer import SentenceTransformerEmbedder

__all__ = [
    "Embedder",
    "GeminiGenerator",
    "Generator",
    "Message",
    "ModelAdapter",
    "OCR",
    "SentenceTransformerEmbedder",
    "is_available",
]
