"""
============================================================================
Note Store
============================================================================
Async storage contract used by the enrichment queue and the search engine,
plus a dict-backed implementation for tests, demos and the CLI
============================================================================
"""

import asyncio
import logging
import uuid
from datetime import datetime
from typing import Protocol, runtime_checkable

from ..models import NoteCreate, NoteRecord, NoteUpdate, Tag

logger = logging.getLogger(__name__)


def new_note_id(now: datetime | None = None) -> str:
    """
    Generate a note id.

    Format: NOTE-{YYYYMMDDHHMMSS}-{short_uuid}
    Example: NOTE-20251114152030-a1b2c3
    """
    timestamp = (now or datetime.now()).strftime("%Y%m%d%H%M%S")
    return f"NOTE-{timestamp}-{uuid.uuid4().hex[:6]}"


def new_tag_id() -> str:
    return f"TAG-{uuid.uuid4().hex[:12]}"


@runtime_checkable
class NoteStore(Protocol):
    """Persistence collaborator. The core only mutates AI-derived fields."""

    async def get(self, note_id: str) -> NoteRecord | None: ...

    async def get_all(self) -> list[NoteRecord]: ...

    async def create(self, fields: NoteCreate) -> NoteRecord: ...

    async def update(self, note_id: str, fields: NoteUpdate) -> NoteRecord | None: ...

    async def add_tag(self, note_id: str, name: str, is_auto: bool = False) -> Tag: ...

    async def remove_tag(self, note_id: str, tag_id: str) -> None: ...

    async def list_tags(self, note_id: str) -> list[Tag]: ...


class InMemoryNoteStore:
    """
    Dict-backed NoteStore.

    Writes are last-write-wins. ``updated_at`` moves only when content
    changes, so AI enrichment never makes a note look freshly edited.
    """

    def __init__(self):
        self._notes: dict[str, NoteRecord] = {}
        self._tags: dict[str, list[Tag]] = {}
        self._lock = asyncio.Lock()

    async def get(self, note_id: str) -> NoteRecord | None:
        return self._notes.get(note_id)

    async def get_all(self) -> list[NoteRecord]:
        return sorted(self._notes.values(), key=lambda n: n.created_at, reverse=True)

    async def create(self, fields: NoteCreate) -> NoteRecord:
        now = datetime.now()
        created_at = fields.created_at or now
        note = NoteRecord(
            id=fields.id or new_note_id(created_at),
            content=fields.content,
            title=fields.title,
            type=fields.type,
            created_at=created_at,
            updated_at=fields.updated_at or created_at,
        )
        async with self._lock:
            self._notes[note.id] = note
            self._tags.setdefault(note.id, [])
        logger.debug(f"Created note {note.id}")
        return note

    async def update(self, note_id: str, fields: NoteUpdate) -> NoteRecord | None:
        async with self._lock:
            current = self._notes.get(note_id)
            if current is None:
                return None

            changes = fields.changes()
            if "content" in changes and changes["content"] != current.content:
                changes["updated_at"] = datetime.now()

            updated = current.model_copy(update=changes)
            self._notes[note_id] = updated
            return updated

    async def delete(self, note_id: str) -> bool:
        async with self._lock:
            self._tags.pop(note_id, None)
            return self._notes.pop(note_id, None) is not None

    async def add_tag(self, note_id: str, name: str, is_auto: bool = False) -> Tag:
        async with self._lock:
            tags = self._tags.setdefault(note_id, [])
            for tag in tags:
                if tag.name == name:
                    return tag
            tag = Tag(id=new_tag_id(), name=name, is_auto=is_auto)
            tags.append(tag)
            return tag

    async def remove_tag(self, note_id: str, tag_id: str) -> None:
        async with self._lock:
            tags = self._tags.get(note_id, [])
            self._tags[note_id] = [t for t in tags if t.id != tag_id]

    async def list_tags(self, note_id: str) -> list[Tag]:
        return list(self._tags.get(note_id, []))

    def __len__(self) -> int:
        return len(self._notes)
