"""
============================================================================
Search Models
============================================================================
Ranked results, temporal windows and LLM query interpretations
============================================================================
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field, field_validator

from smart_notes.models.note import NoteRecord


class MatchType(str, Enum):
    """Which retrieval signal produced a result."""

    SEMANTIC = "semantic"
    KEYWORD = "keyword"
    BOTH = "both"


class SearchResult(NoteRecord):
    """A note plus its relevance score and provenance."""

    relevance_score: float
    match_type: MatchType

    @classmethod
    def from_note(
        cls, note: NoteRecord, relevance_score: float, match_type: MatchType
    ) -> "SearchResult":
        return cls(
            **note.model_dump(),
            relevance_score=relevance_score,
            match_type=match_type,
        )


@dataclass
class TemporalFilter:
    """A half-open time window ``[start_time, end_time)`` parsed from a query."""

    start_time: datetime
    end_time: datetime
    description: str
    query: str  # query text with the temporal phrase removed

    def contains(self, moment: datetime) -> bool:
        return self.start_time <= moment < self.end_time


class AskResult(BaseModel):
    """Structured interpretation of a natural-language query."""

    interpreted_query: str = Field(alias="interpretedQuery")
    search_terms: list[str] = Field(alias="searchTerms")
    topics: list[str] = Field(default_factory=list)
    temporal_hint: str | None = Field(default=None, alias="temporalHint")

    model_config = {"populate_by_name": True}

    @field_validator("search_terms", "topics")
    @classmethod
    def strip_blank(cls, values: list[str]) -> list[str]:
        return [v.strip() for v in values if isinstance(v, str) and v.strip()]

    @field_validator("temporal_hint")
    @classmethod
    def normalize_hint(cls, v: str | None) -> str | None:
        if v is None:
            return None
        v = v.strip()
        if not v or v.lower() in ("null", "none"):
            return None
        return v


@dataclass
class SearchResponse:
    """Results of one search call with the filters that shaped them."""

    results: list[SearchResult] = field(default_factory=list)
    temporal_filter: TemporalFilter | None = None
    interpreted_query: str | None = None
