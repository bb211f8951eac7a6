"""Tests for query normalization and LLM query interpretation."""

import asyncio
import json

import pytest

from conftest import FakeGenerator
from smart_notes.errors import InterpretationError, ModelError, ModelUnavailableError
from smart_notes.retrieval.query_interpreter import (
    QueryInterpreter,
    extract_json_object,
    parse_interpretation,
    should_interpret,
)
from smart_notes.retrieval.query_processor import normalize_text, process_search_query

pytestmark = pytest.mark.unit

INTERPRETATION = {
    "searchTerms": ["kyoto", "temples"],
    "topics": ["travel"],
    "temporalHint": "last month",
    "interpretedQuery": "Kyoto temple notes from last month",
}


class TestQueryProcessor:
    def test_normalize(self):
        assert normalize_text("  What's the PLAN?!  for   Q3 ") == "what's the plan for q3"

    def test_drops_stopwords_and_filler(self):
        processed = process_search_query("find my ideas about travel")

        assert processed.keywords == ["ideas", "travel"]
        assert processed.keyword_query == "ideas travel"

    def test_quoted_phrases_first(self):
        processed = process_search_query('"design review" notes design')

        assert processed.phrases == ["design review"]
        assert processed.terms == ["design review", "design", "review"]

    def test_duplicates_removed(self):
        assert process_search_query("budget Budget BUDGET").keywords == ["budget"]


class TestShouldInterpret:
    @pytest.mark.parametrize(
        "query",
        [
            "what did I write about japan?",
            "kyoto trip?",
            "show me my notes about the garden",
            "ideas about the product launch",
        ],
    )
    def test_natural_language(self, query):
        assert should_interpret(query)

    @pytest.mark.parametrize("query", ["japan", "kyoto temples", "quarterly budget spreadsheet", "why?"])
    def test_keyword_queries(self, query):
        assert not should_interpret(query)


class TestParseInterpretation:
    def test_plain_json(self):
        result = parse_interpretation(json.dumps(INTERPRETATION))

        assert result.search_terms == ["kyoto", "temples"]
        assert result.topics == ["travel"]
        assert result.temporal_hint == "last month"
        assert result.interpreted_query == "Kyoto temple notes from last month"

    def test_code_fence_and_chatter(self):
        raw = "Sure!\n```json\n" + json.dumps(INTERPRETATION) + "\n```"
        assert parse_interpretation(raw).search_terms == ["kyoto", "temples"]

    def test_null_hint(self):
        payload = dict(INTERPRETATION, temporalHint="null")
        assert parse_interpretation(json.dumps(payload)).temporal_hint is None

    @pytest.mark.parametrize(
        "raw",
        [
            "no json here",
            "{not valid json}",
            json.dumps({"searchTerms": "kyoto", "interpretedQuery": "x"}),
            json.dumps({"searchTerms": [], "topics": [], "interpretedQuery": "x"}),
            json.dumps({"topics": ["travel"]}),
        ],
    )
    def test_invalid(self, raw):
        with pytest.raises(InterpretationError):
            parse_interpretation(raw)

    def test_extract_json_object(self):
        assert extract_json_object('noise {"a": 1} trailing') == '{"a": 1}'
        assert extract_json_object("} backwards {") is None


class TestQueryInterpreter:
    async def test_interpret(self):
        generator = FakeGenerator(json.dumps(INTERPRETATION))
        interpreter = QueryInterpreter(generator)

        result = await interpreter.interpret("what did I note about kyoto temples last month?")

        assert result.temporal_hint == "last month"
        assert generator.calls[0][0].role == "system"
        assert "kyoto temples" in generator.calls[0][1].content

    async def test_not_ready(self):
        interpreter = QueryInterpreter(FakeGenerator(ready=False))

        assert not interpreter.is_ready
        with pytest.raises(ModelUnavailableError):
            await interpreter.interpret("what about kyoto?")

    async def test_timeout(self):
        generator = FakeGenerator(json.dumps(INTERPRETATION))
        generator.gate = asyncio.Event()
        interpreter = QueryInterpreter(generator, timeout=0.01)

        with pytest.raises(InterpretationError):
            await interpreter.interpret("what about kyoto?")

    async def test_model_error(self):
        generator = FakeGenerator()
        generator.fail_with = ModelError("oom")
        interpreter = QueryInterpreter(generator)

        with pytest.raises(InterpretationError):
            await interpreter.interpret("what about kyoto?")

    async def test_unexpected_generator_error(self):
        generator = FakeGenerator()
        generator.fail_with = RuntimeError("native OOM")
        interpreter = QueryInterpreter(generator)

        with pytest.raises(InterpretationError, match="native OOM"):
            await interpreter.interpret("what about kyoto?")
