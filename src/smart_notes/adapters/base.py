"""
============================================================================
Model Adapter Contracts
============================================================================
Snapshot-capability interfaces for the on-device AI models. Callers poll
``is_ready``/``is_generating`` before invoking and must not assume
readiness is ever pushed to them.
============================================================================
"""

from dataclasses import dataclass
from typing import Literal, Protocol, runtime_checkable


@dataclass(frozen=True)
class Message:
    """One chat message sent to a Generator."""

    role: Literal["system", "user", "assistant"]
    content: str


@runtime_checkable
class ModelAdapter(Protocol):
    """State every adapter exposes."""

    @property
    def is_ready(self) -> bool: ...

    @property
    def is_generating(self) -> bool: ...

    @property
    def download_progress(self) -> float: ...

    @property
    def error(self) -> str | None: ...


@runtime_checkable
class Generator(ModelAdapter, Protocol):
    """Text completion model."""

    async def generate(self, messages: list[Message]) -> str: ...


@runtime_checkable
class Embedder(ModelAdapter, Protocol):
    """Text to fixed-width vector model."""

    @property
    def dimensions(self) -> int: ...

    async def forward(self, text: str) -> list[float]: ...


@runtime_checkable
class OCR(ModelAdapter, Protocol):
    """Image to text regions. Capture flows own it; the core never calls it."""

    async def forward(self, image: bytes) -> list[str]: ...


def is_available(adapter: ModelAdapter | None) -> bool:
    """True when the adapter exists, has loaded and is not mid-call."""
    return adapter is not None and adapter.is_ready and not adapter.is_generating
