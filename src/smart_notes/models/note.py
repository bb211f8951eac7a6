"""
============================================================================
Note Models
============================================================================
Pydantic models for notes, tags and their AI-derived fields
============================================================================
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class NoteType(str, Enum):
    """Note category. VOICE and SCAN are only ever set at capture time."""

    NOTE = "note"
    MEETING = "meeting"
    TASK = "task"
    IDEA = "idea"
    JOURNAL = "journal"
    REFERENCE = "reference"
    VOICE = "voice"
    SCAN = "scan"

    @property
    def is_capture_type(self) -> bool:
        return self in (NoteType.VOICE, NoteType.SCAN)


class AIStatus(str, Enum):
    """Enrichment lifecycle of a note."""

    IDLE = "idle"
    QUEUED = "queued"
    PROCESSING = "processing"
    ORGANIZED = "organized"
    FAILED = "failed"
    CANCELLED = "cancelled"


class Tag(BaseModel):
    """Tag attached to a note. ``is_auto`` marks pipeline-generated tags."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    is_auto: bool = False


class NoteRecord(BaseModel):
    """A stored note."""

    id: str
    content: str
    title: str | None = None
    type: NoteType = NoteType.NOTE
    created_at: datetime
    updated_at: datetime
    is_processed: bool = False
    ai_status: AIStatus = AIStatus.IDLE
    ai_error: str | None = None
    embedding: str | None = Field(
        default=None,
        description="JSON-serialized float vector; its length identifies the embedder",
    )


class NoteCreate(BaseModel):
    """Fields accepted when a note is captured."""

    id: str | None = None
    content: str
    title: str | None = None
    type: NoteType = NoteType.NOTE
    created_at: datetime | None = None
    updated_at: datetime | None = None


class NoteUpdate(BaseModel):
    """Partial update. Only explicitly set fields are written."""

    content: str | None = None
    title: str | None = None
    type: NoteType | None = None
    is_processed: bool | None = None
    ai_status: AIStatus | None = None
    ai_error: str | None = None
    embedding: str | None = None

    def changes(self) -> dict:
        return self.model_dump(exclude_unset=True)
