"""Tests for the Gemini and SentenceTransformer adapters without loading models."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import numpy as np
import pytest
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage

from smart_notes.adapters.base import Embedder, Generator, Message
from smart_notes.adapters.gemini import GeminiGenerator, response_text, to_langchain_messages
from smart_notes.adapters.sentence_transformer import SentenceTransformerEmbedder
from smart_notes.config import EmbeddingSettings, LLMSettings
from smart_notes.errors import ModelError, ModelUnavailableError

pytestmark = pytest.mark.unit

MESSAGES = [Message("system", "Create a short title"), Message("user", "Buy milk")]


def test_message_conversion():
    converted = to_langchain_messages(MESSAGES + [Message("assistant", "ok")])

    assert [type(m) for m in converted] == [SystemMessage, HumanMessage, AIMessage]
    assert converted[1].content == "Buy milk"


@pytest.mark.parametrize(
    "content,expected",
    [
        ("Groceries", "Groceries"),
        ([{"type": "text", "text": "Grocery "}, {"type": "image"}, "List"], "Grocery List"),
    ],
)
def test_response_text(content, expected):
    assert response_text(content) == expected


class TestGeminiGenerator:
    def _unconfigured(self):
        return GeminiGenerator(LLMSettings(api_key=None))

    def test_without_key_not_ready(self):
        generator = self._unconfigured()

        assert not generator.is_ready
        assert generator.error == "API key not configured"
        assert generator.download_progress == 0.0
        assert isinstance(generator, Generator)

    async def test_generate_without_key(self):
        with pytest.raises(ModelUnavailableError):
            await self._unconfigured().generate(MESSAGES)

    async def test_generate(self):
        generator = self._unconfigured()
        generator.llm = MagicMock()
        generator.llm.ainvoke = AsyncMock(return_value=SimpleNamespace(content="  Groceries \n"))

        assert await generator.generate(MESSAGES) == "Groceries"
        assert not generator.is_generating

    async def test_provider_error_wrapped(self):
        generator = self._unconfigured()
        generator.llm = MagicMock()
        generator.llm.ainvoke = AsyncMock(side_effect=RuntimeError("quota"))

        with pytest.raises(ModelError, match="quota"):
            await generator.generate(MESSAGES)
        assert generator.error == "quota"
        assert not generator.is_generating


class TestSentenceTransformerEmbedder:
    def test_initial_state(self):
        embedder = SentenceTransformerEmbedder(EmbeddingSettings())

        assert not embedder.is_ready
        assert embedder.dimensions == 384
        assert isinstance(embedder, Embedder)

    async def test_forward_before_load(self):
        with pytest.raises(ModelUnavailableError):
            await SentenceTransformerEmbedder(EmbeddingSettings()).forward("Buy milk")

    async def test_forward_with_model(self):
        embedder = SentenceTransformerEmbedder(EmbeddingSettings())
        embedder._model = MagicMock()
        embedder._model.encode.return_value = np.array([0.5, 0.5])

        assert await embedder.forward("Buy milk") == [0.5, 0.5]
        assert not embedder.is_generating
