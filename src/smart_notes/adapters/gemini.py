"""
============================================================================
Gemini Generator
============================================================================
Generator adapter over Google Gemini via langchain. Without an API key the
adapter stays not-ready and every stage uses its rule-based fallback.
============================================================================
"""

import logging

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from langchain_google_genai import ChatGoogleGenerativeAI

from ..config import LLMSettings
from ..errors import ModelBusyError, ModelError, ModelUnavailableError
from .base import Message

logger = logging.getLogger(__name__)

_MESSAGE_TYPES = {
    "system": SystemMessage,
    "user": HumanMessage,
    "assistant": AIMessage,
}


def to_langchain_messages(messages: list[Message]) -> list[BaseMessage]:
    return [_MESSAGE_TYPES[m.role](content=m.content) for m in messages]


def response_text(content: str | list) -> str:
    """Flatten a chat response body that may arrive as content blocks."""
    if isinstance(content, str):
        return content
    parts = []
    for block in content:
        if isinstance(block, str):
            parts.append(block)
        elif isinstance(block, dict) and block.get("type") == "text":
            parts.append(block.get("text", ""))
    return "".join(parts)


class GeminiGenerator:
    """
    Generator adapter using Gemini 2.5 Flash Lite.

    One call at a time: ``generate`` raises ModelBusyError while a previous
    call is still in flight.
    """

    def __init__(self, settings: LLMSettings):
        """
        Initialize the Gemini chat model.

        Args:
            settings: LLM configuration (model, key, sampling)
        """
        self.settings = settings
        self.llm: ChatGoogleGenerativeAI | None = None
        self._generating = False
        self._error: str | None = None

        if settings.api_key is None:
            logger.warning("GOOGLE_API_KEY not provided. AI generation will be disabled.")
            self._error = "API key not configured"
            return

        try:
            self.llm = ChatGoogleGenerativeAI(
                model=settings.model_name,
                google_api_key=settings.api_key.get_secret_value(),
                temperature=settings.temperature,
                max_output_tokens=settings.max_tokens,
                timeout=settings.timeout,
            )
            logger.info(f"Initialized GeminiGenerator with model: {settings.model_name}")
        except Exception as e:
            logger.warning(f"Failed to initialize LLM: {e}. AI generation will be disabled.")
            self._error = str(e)
            self.llm = None

    @property
    def is_ready(self) -> bool:
        return self.llm is not None

    @property
    def is_generating(self) -> bool:
        return self._generating

    @property
    def download_progress(self) -> float:
        # Hosted model, nothing to download
        return 1.0 if self.llm is not None else 0.0

    @property
    def error(self) -> str | None:
        return self._error

    async def generate(self, messages: list[Message]) -> str:
        """
        Complete a chat conversation.

        Raises:
            ModelUnavailableError: no model configured
            ModelBusyError: another call is in flight
            ModelError: the provider call failed
        """
        if self.llm is None:
            raise ModelUnavailableError("Generator is not configured")
        if self._generating:
            raise ModelBusyError("Generator is busy")

        self._generating = True
        try:
            response = await self.llm.ainvoke(to_langchain_messages(messages))
        except Exception as e:
            self._error = str(e)
            raise ModelError(f"Generation failed: {e}") from e
        finally:
            self._generating = False

        text = response_text(response.content).strip()
        logger.debug(f"Generator response: {text[:200]}")
        return text
