"""
============================================================================
Smart Notes - Database Module
============================================================================
Note store contract plus in-memory and Neo4j implementations
============================================================================
"""

from smart_notes.db.connection import Neo4jConnection
from smart_notes.db.neo4j_store import Neo4jNoteStore
from smart_notes.db.store import InMemoryNoteStore, NoteStore, new_note_id

__all__ = [
    "InMemoryNoteStore",
    "Neo4jConnection",
    "Neo4jNoteStore",
    "NoteStore",
    "new_note_id",
]
