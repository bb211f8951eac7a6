"""
============================================================================
Query Processing
============================================================================
Normalizes free-text queries into the keyword form both scorers use
============================================================================
"""

import re
from dataclasses import dataclass, field

from .embedder import STOP_WORDS

# Words that say how to search rather than what to search for
QUERY_FILLER_WORDS = frozenset(
    {"find", "show", "tell", "note", "notes", "wrote", "write", "written"}
)

_NON_ALNUM = re.compile(r"[^a-z0-9\s']")
_QUOTED = re.compile(r'"([^"]{1,80})"')


@dataclass
class ProcessedQuery:
    original: str
    normalized: str
    keywords: list[str] = field(default_factory=list)
    phrases: list[str] = field(default_factory=list)

    @property
    def terms(self) -> list[str]:
        """Quoted phrases first, then single keywords."""
        return self.phrases + self.keywords

    @property
    def keyword_query(self) -> str:
        return " ".join(self.terms).strip()


def normalize_text(text: str) -> str:
    """Lowercase, replace everything but letters, digits and apostrophes, collapse spaces."""
    return " ".join(_NON_ALNUM.sub(" ", text.strip().lower()).split())


def process_search_query(query: str) -> ProcessedQuery:
    normalized = normalize_text(query)

    phrases = []
    for match in _QUOTED.finditer(query):
        inner = normalize_text(match.group(1))
        if inner and inner not in phrases:
            phrases.append(inner)

    keywords: list[str] = []
    for token in normalized.split():
        if len(token) < 2 or token in STOP_WORDS or token in QUERY_FILLER_WORDS:
            continue
        if token not in keywords:
            keywords.append(token)

    return ProcessedQuery(
        original=query,
        normalized=normalized,
        keywords=keywords,
        phrases=phrases,
    )
