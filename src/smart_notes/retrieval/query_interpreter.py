"""
============================================================================
Query Interpreter
============================================================================
Asks the Generator to turn a conversational query ("what did I think
about the Japan trip last month?") into search terms, topics and a
temporal hint. Callers fall back to plain search on any failure.
============================================================================
"""

import asyncio
import json
import logging
import re

from pydantic import ValidationError

from ..adapters.base import Generator, Message
from ..errors import InterpretationError, ModelUnavailableError
from ..models import AskResult

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are a helpful assistant that interprets natural language queries about finding notes. Analyze the user's query and extract:

1. Search terms - specific keywords or phrases to search for
2. Temporal hints - any time-related references (dates, periods, "recent", "last week", etc.)
3. Topics - main subjects or themes mentioned
4. Interpreted query - a clear, concise rephrasing of what the user is asking for

Respond with ONLY valid JSON in this exact format (no extra text, no markdown):
{
    "searchTerms": ["term1", "term2"],
    "temporalHint": "specific time reference or null",
    "topics": ["topic1", "topic2"],
    "interpretedQuery": "clear rephrasing of the query"
}

Guidelines:
- Extract concrete search terms that would appear in notes
- Recognize temporal expressions like "yesterday", "last month", "this week", "recently"
- Identify topics like "work", "personal", "ideas", "meeting"
- Keep the interpreted query concise but clear
- If there is no temporal hint, use null
- Focus on what the user wants to find, not how to find it"""

NATURAL_LANGUAGE_PATTERNS = [
    # Question starters
    re.compile(
        r"^(what|when|where|how|why|who|which|whose|do you|can you|find|show|"
        r"tell me|let's|let us|help me|remind me)\b",
        re.I,
    ),
    # Conversational
    re.compile(r"\b(i (wrote|thought|was thinking|noted)|my (notes|thoughts))\b", re.I),
    # Time-based
    re.compile(r"\b(recently|yesterday|last (week|month|year)|this (week|month|year))\b", re.I),
    # Topic-based
    re.compile(r"\b(about|regarding|concerning) \w+", re.I),
    re.compile(r"\b(ideas?|concepts?|thoughts?|notes?) (about|on|for|from|regarding)\b", re.I),
]

MIN_WORDS = 3


def should_interpret(query: str) -> bool:
    """
    Heuristic for natural-language queries worth sending to the Generator.

    Short keyword queries ("japan trip") go straight to hybrid search.
    """
    query = query.strip()
    if query.endswith("?") and len(query.split()) >= 2:
        return True
    if len(query.split()) < MIN_WORDS:
        return False
    return any(p.search(query) for p in NATURAL_LANGUAGE_PATTERNS)


def extract_json_object(text: str) -> str | None:
    """Slice from the first '{' to the last '}'."""
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end == -1 or end <= start:
        return None
    return text[start : end + 1]


def _clean_response(text: str) -> str:
    text = re.sub(r"^```(?:json)?\s*", "", text.strip(), flags=re.IGNORECASE)
    text = re.sub(r"\s*```$", "", text)
    return text.strip()


def parse_interpretation(raw: str) -> AskResult:
    """
    Parse and validate a Generator response.

    Raises:
        InterpretationError: no JSON object, invalid JSON or wrong field types
    """
    cleaned = _clean_response(raw)
    candidate = cleaned if cleaned.startswith("{") else extract_json_object(cleaned)
    if not candidate:
        raise InterpretationError("Generator did not return JSON")

    try:
        payload = json.loads(candidate)
    except json.JSONDecodeError as e:
        raise InterpretationError(f"Invalid JSON in interpretation: {e}") from e

    if not isinstance(payload, dict):
        raise InterpretationError("Interpretation is not a JSON object")

    try:
        result = AskResult.model_validate(payload)
    except ValidationError as e:
        raise InterpretationError(f"Invalid interpretation fields: {e}") from e

    if not result.search_terms and not result.topics:
        raise InterpretationError("Interpretation has no search terms or topics")
    return result


class QueryInterpreter:
    """
    LLM-backed query interpretation.

    Example:
        ```python
        interpreter = QueryInterpreter(generator, timeout=15.0)
        if interpreter.is_ready and should_interpret(query):
            result = await interpreter.interpret(query)
        ```
    """

    def __init__(self, generator: Generator | None, timeout: float = 15.0):
        self.generator = generator
        self.timeout = timeout

    @property
    def is_ready(self) -> bool:
        return self.generator is not None and self.generator.is_ready

    async def interpret(self, query: str) -> AskResult:
        """
        Interpret a natural-language query.

        Raises:
            ModelUnavailableError: no Generator or not loaded
            InterpretationError: timeout, model failure or malformed output
        """
        if not self.is_ready:
            raise ModelUnavailableError("Generator not ready for query interpretation")

        messages = [
            Message(role="system", content=SYSTEM_PROMPT),
            Message(role="user", content=f'Please analyze this query: "{query}"'),
        ]

        try:
            raw = await asyncio.wait_for(self.generator.generate(messages), self.timeout)
        except asyncio.TimeoutError as e:
            raise InterpretationError(
                f"Interpretation timed out after {self.timeout}s"
            ) from e
        except Exception as e:
            raise InterpretationError(f"Generator failed: {e}") from e

        result = parse_interpretation(raw)
        logger.info(
            f"Interpreted '{query}' as '{result.interpreted_query}' "
            f"(terms={result.search_terms}, topics={result.topics}, "
            f"temporal_hint={result.temporal_hint})"
        )
        return result
