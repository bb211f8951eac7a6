"""
============================================================================
Neo4j Note Store
============================================================================
Graph-backed NoteStore:

    (:Note {id, content, title, type, created_at, updated_at, is_processed,
            ai_status, ai_error, embedding})
        -[:TAGGED_WITH {is_auto}]->
    (:Tag {id, name})

Timestamps are stored as ISO-8601 strings and the embedding as a JSON
array string. Driver calls are synchronous and run off the event loop.
============================================================================
"""

import asyncio
import logging
from datetime import datetime
from typing import Any

from ..models import NoteCreate, NoteRecord, NoteUpdate, Tag
from .connection import Neo4jConnection
from .store import new_note_id, new_tag_id

logger = logging.getLogger(__name__)

_NOTE_FIELDS = """
    n.id AS id, n.content AS content, n.title AS title, n.type AS type,
    n.created_at AS created_at, n.updated_at AS updated_at,
    n.is_processed AS is_processed, n.ai_status AS ai_status,
    n.ai_error AS ai_error, n.embedding AS embedding
"""


class Neo4jNoteStore:
    """NoteStore over a Neo4j graph."""

    def __init__(self, connection: Neo4jConnection):
        self.connection = connection

    def ensure_schema(self) -> None:
        """Create uniqueness constraints for notes and tags."""
        self.connection.execute_write(
            "CREATE CONSTRAINT note_id IF NOT EXISTS FOR (n:Note) REQUIRE n.id IS UNIQUE"
        )
        self.connection.execute_write(
            "CREATE CONSTRAINT tag_name IF NOT EXISTS FOR (t:Tag) REQUIRE t.name IS UNIQUE"
        )
        logger.info("Neo4j note store schema ensured")

    @staticmethod
    def _to_note(row: dict[str, Any]) -> NoteRecord:
        return NoteRecord.model_validate(
            {k: v for k, v in row.items() if v is not None}
        )

    async def get(self, note_id: str) -> NoteRecord | None:
        rows = await asyncio.to_thread(
            self.connection.execute_read,
            f"MATCH (n:Note {{id: $id}}) RETURN {_NOTE_FIELDS}",
            {"id": note_id},
        )
        return self._to_note(rows[0]) if rows else None

    async def get_all(self) -> list[NoteRecord]:
        rows = await asyncio.to_thread(
            self.connection.execute_read,
            f"MATCH (n:Note) RETURN {_NOTE_FIELDS} ORDER BY n.created_at DESC",
        )
        return [self._to_note(row) for row in rows]

    async def create(self, fields: NoteCreate) -> NoteRecord:
        created_at = fields.created_at or datetime.now()
        note = NoteRecord(
            id=fields.id or new_note_id(created_at),
            content=fields.content,
            title=fields.title,
            type=fields.type,
            created_at=created_at,
            updated_at=fields.updated_at or created_at,
        )
        await asyncio.to_thread(
            self.connection.execute_write,
            """
            CREATE (n:Note {
                id: $id, content: $content, title: $title, type: $type,
                created_at: $created_at, updated_at: $updated_at,
                is_processed: false, ai_status: $ai_status
            })
            """,
            {
                "id": note.id,
                "content": note.content,
                "title": note.title,
                "type": note.type.value,
                "created_at": note.created_at.isoformat(),
                "updated_at": note.updated_at.isoformat(),
                "ai_status": note.ai_status.value,
            },
        )
        logger.debug(f"Created note {note.id}")
        return note

    async def update(self, note_id: str, fields: NoteUpdate) -> NoteRecord | None:
        changes = fields.model_dump(mode="json", exclude_unset=True)
        if not changes:
            return await self.get(note_id)

        # AI writes never count as edits
        rows = await asyncio.to_thread(
            self.connection.execute_write,
            f"""
            MATCH (n:Note {{id: $id}})
            WITH n, ($changes.content IS NOT NULL
                     AND $changes.content <> n.content) AS edited
            SET n += $changes
            SET n.updated_at = CASE WHEN edited THEN $now ELSE n.updated_at END
            RETURN {_NOTE_FIELDS}
            """,
            {"id": note_id, "changes": changes, "now": datetime.now().isoformat()},
        )
        return self._to_note(rows[0]) if rows else None

    async def add_tag(self, note_id: str, name: str, is_auto: bool = False) -> Tag:
        rows = await asyncio.to_thread(
            self.connection.execute_write,
            """
            MATCH (n:Note {id: $note_id})
            MERGE (t:Tag {name: $name})
            ON CREATE SET t.id = $tag_id
            MERGE (n)-[r:TAGGED_WITH]->(t)
            ON CREATE SET r.is_auto = $is_auto
            RETURN t.id AS id, t.name AS name, r.is_auto AS is_auto
            """,
            {"note_id": note_id, "name": name, "tag_id": new_tag_id(), "is_auto": is_auto},
        )
        if not rows:
            logger.warning(f"Tag '{name}' not attached: note {note_id} not found")
            return Tag(id=new_tag_id(), name=name, is_auto=is_auto)
        return Tag(**rows[0])

    async def remove_tag(self, note_id: str, tag_id: str) -> None:
        await asyncio.to_thread(
            self.connection.execute_write,
            """
            MATCH (:Note {id: $note_id})-[r:TAGGED_WITH]->(:Tag {id: $tag_id})
            DELETE r
            """,
            {"note_id": note_id, "tag_id": tag_id},
        )

    async def list_tags(self, note_id: str) -> list[Tag]:
        rows = await asyncio.to_thread(
            self.connection.execute_read,
            """
            MATCH (:Note {id: $note_id})-[r:TAGGED_WITH]->(t:Tag)
            RETURN t.id AS id, t.name AS name, coalesce(r.is_auto, false) AS is_auto
            ORDER BY t.name
            """,
            {"note_id": note_id},
        )
        return [Tag(**row) for row in rows]
