"""Shared fixtures: in-memory store, controllable fake model adapters, fast settings."""

import asyncio
from typing import Callable

import pytest

from smart_notes.adapters.base import Message
from smart_notes.config import QueueSettings, SearchSettings
from smart_notes.db.store import InMemoryNoteStore
from smart_notes.errors import ModelUnavailableError
from smart_notes.models import AIStatus, NoteUpdate
from smart_notes.retrieval.embedder import fallback_embedding


class FakeGenerator:
    """
    Generator double.

    ``reply`` is a string or a callable receiving the messages. Setting
    ``gate`` holds every call until the event is set; ``started`` fires
    when a call enters.
    """

    def __init__(self, reply: str | Callable[[list[Message]], str] = "", ready: bool = True):
        self.reply = reply
        self.ready = ready
        self.generating = False
        self.fail_with: Exception | None = None
        self.gate: asyncio.Event | None = None
        self.started = asyncio.Event()
        self.calls: list[list[Message]] = []

    @property
    def is_ready(self) -> bool:
        return self.ready

    @property
    def is_generating(self) -> bool:
        return self.generating

    @property
    def download_progress(self) -> float:
        return 1.0

    @property
    def error(self) -> str | None:
        return None

    async def generate(self, messages: list[Message]) -> str:
        if not self.ready:
            raise ModelUnavailableError("fake generator not ready")
        self.calls.append(messages)
        self.started.set()
        if self.fail_with is not None:
            raise self.fail_with

        self.generating = True
        try:
            if self.gate is not None:
                await self.gate.wait()
            return self.reply(messages) if callable(self.reply) else self.reply
        finally:
            self.generating = False

    def system_prompts(self) -> list[str]:
        return [call[0].content for call in self.calls]


class FakeEmbedder:
    """384-wide Embedder double built on the hashed embedding, so similarity is meaningful."""

    def __init__(self, dimensions: int = 384, ready: bool = True):
        self._dimensions = dimensions
        self.ready = ready
        self.generating = False
        self.fail_with: Exception | None = None
        self.calls: list[str] = []

    @property
    def is_ready(self) -> bool:
        return self.ready

    @property
    def is_generating(self) -> bool:
        return self.generating

    @property
    def download_progress(self) -> float:
        return 1.0 if self.ready else 0.0

    @property
    def error(self) -> str | None:
        return None

    @property
    def dimensions(self) -> int:
        return self._dimensions

    async def forward(self, text: str) -> list[float]:
        self.calls.append(text)
        if self.fail_with is not None:
            raise self.fail_with
        return fallback_embedding(text, self._dimensions)


class RecordingStore(InMemoryNoteStore):
    """InMemoryNoteStore that tracks how many notes are mid-pipeline at once."""

    def __init__(self):
        super().__init__()
        self.max_processing = 0
        self.status_log: list[tuple[str, AIStatus]] = []

    async def update(self, note_id: str, fields: NoteUpdate):
        note = await super().update(note_id, fields)
        if fields.ai_status is not None:
            self.status_log.append((note_id, fields.ai_status))
        processing = sum(
            1 for n in self._notes.values() if n.ai_status == AIStatus.PROCESSING
        )
        self.max_processing = max(self.max_processing, processing)
        return note


def scripted_reply(title: str = "Trip Planning", note_type: str = "idea", tags: str = "travel\njapan"):
    """Answer each pipeline prompt by its system message."""

    def reply(messages: list[Message]) -> str:
        system = messages[0].content
        if system.startswith("Create a short title"):
            return title
        if system.startswith("Classify notes"):
            return note_type
        if system.startswith("Suggest"):
            return tags
        return ""

    return reply


@pytest.fixture
def store():
    return InMemoryNoteStore()


@pytest.fixture
def recording_store():
    return RecordingStore()


@pytest.fixture
def generator():
    return FakeGenerator(scripted_reply())


@pytest.fixture
def embedder():
    return FakeEmbedder()


@pytest.fixture
def queue_settings():
    return QueueSettings(
        stage_delay_seconds=0,
        readiness_timeout_seconds=0,
        readiness_poll_seconds=0.01,
    )


@pytest.fixture
def search_settings():
    return SearchSettings()
