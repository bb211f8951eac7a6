"""
============================================================================
Retrieval Service
============================================================================
Hybrid note search combining:

- keyword scoring over titles and content
- semantic similarity through the Embedding Service
- temporal windows parsed from the query ("last month", "2 hours ago")

plus an optional LLM interpretation step for conversational queries and
a related-notes lookup. Stored embeddings whose length does not match the
active embedder are regenerated on read and persisted.
============================================================================
"""

import asyncio
import logging
from datetime import datetime

from ..adapters.base import is_available
from ..config import SearchSettings
from ..db.store import NoteStore
from ..models import (
    MatchType,
    NoteRecord,
    NoteUpdate,
    SearchResponse,
    SearchResult,
    TemporalFilter,
)
from .embedder import EmbeddingService, parse_vector, serialize_vector
from .query_interpreter import QueryInterpreter, should_interpret
from .query_processor import process_search_query
from .temporal_parser import is_temporal_only, parse_temporal_query

logger = logging.getLogger(__name__)

TITLE_MATCH_WEIGHT = 0.4
CONTENT_MATCH_WEIGHT = 0.1
CONTENT_MATCH_CAP = 0.5


def _by_score(results: list[SearchResult]) -> list[SearchResult]:
    return sorted(results, key=lambda r: r.relevance_score, reverse=True)


class RetrievalService:
    """
    Hybrid keyword + semantic + temporal note search.

    Example:
        ```python
        service = RetrievalService(store, embeddings, settings.search, interpreter)

        results = await service.search("travel ideas last month")
        response = await service.ask("what did I write about Japan yesterday?")
        related = await service.find_related(note_id)
        ```
    """

    def __init__(
        self,
        store: NoteStore,
        embeddings: EmbeddingService,
        settings: SearchSettings,
        interpreter: QueryInterpreter | None = None,
    ):
        """
        Initialize retrieval service.

        Args:
            store: Note store to read notes from and persist refreshed vectors to
            embeddings: Embedding service for query and note vectors
            settings: Thresholds, bonus and limits
            interpreter: Optional LLM query interpreter for ``ask``
        """
        self.store = store
        self.embeddings = embeddings
        self.settings = settings
        self.interpreter = interpreter

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def search(self, query: str, now: datetime | None = None) -> list[SearchResult]:
        """Ranked results for ``query``."""
        response = await self.search_enhanced(query, now=now)
        return response.results

    async def search_enhanced(self, query: str, now: datetime | None = None) -> SearchResponse:
        """
        Ranked results plus the temporal filter that shaped them.

        Args:
            query: Free-text query, possibly containing a time phrase
            now: Reference time for relative time phrases

        Returns:
            SearchResponse (empty for a blank query)
        """
        if not query.strip():
            return SearchResponse()

        logger.info(f"Starting search for: '{query}'")
        temporal_filter = parse_temporal_query(query, now=now)
        if temporal_filter:
            logger.info(f"Temporal filter detected: {temporal_filter.description}")

        remainder = (temporal_filter.query if temporal_filter else query).strip()
        notes = await self.store.get_all()

        if temporal_filter and is_temporal_only(remainder):
            logger.info(f"Temporal-only query, filtering notes by time: {temporal_filter.description}")
            return SearchResponse(
                results=self._rank_by_time(notes, temporal_filter),
                temporal_filter=temporal_filter,
            )

        processed = process_search_query(remainder)
        terms = processed.terms or processed.normalized.split()
        text = processed.keyword_query or processed.normalized or remainder

        semantic, keyword = await asyncio.gather(
            self._semantic_search(notes, text),
            self._keyword_search(notes, terms),
        )
        merged = self._merge(semantic, keyword)

        if temporal_filter:
            merged = [r for r in merged if temporal_filter.contains(r.created_at)]

        results = _by_score(merged)[: self.settings.max_results]
        logger.info(
            f"Search complete: {len(results)} results "
            f"({len(semantic)} semantic, {len(keyword)} keyword)"
        )
        return SearchResponse(results=results, temporal_filter=temporal_filter)

    async def ask(self, query: str, now: datetime | None = None) -> SearchResponse:
        """
        Search with LLM query interpretation when the query reads as natural
        language and a Generator is ready. Never fails because of the
        interpretation step; plain search is used instead.
        """
        if not query.strip():
            return SearchResponse()

        if (
            self.interpreter is None
            or not self.interpreter.is_ready
            or not should_interpret(query)
        ):
            logger.debug("Query interpretation skipped, using regular search")
            return await self.search_enhanced(query, now=now)

        try:
            interpretation = await self.interpreter.interpret(query)
        except Exception as e:
            logger.warning(f"Query interpretation failed, falling back: {e}")
            return await self.search_enhanced(query, now=now)

        combined = " ".join(interpretation.search_terms)
        unique_topics = [
            topic
            for topic in interpretation.topics
            if not any(topic.lower() in term.lower() for term in interpretation.search_terms)
        ]
        if unique_topics:
            combined = f"{combined} {' '.join(unique_topics)}"

        hint = interpretation.temporal_hint
        query_for_search = f"notes from {hint} {combined}" if hint else combined
        query_for_search = " ".join(query_for_search.split())
        logger.info(f"Combined search query: '{query_for_search}'")

        response = await self.search_enhanced(query_for_search, now=now)

        if hint and response.temporal_filter is None:
            temporal_filter = parse_temporal_query(f"notes from {hint}", now=now)
            if temporal_filter:
                logger.info(f"Applied interpreted temporal hint: {temporal_filter.description}")
                response.results = [
                    r for r in response.results if temporal_filter.contains(r.created_at)
                ]
                response.temporal_filter = temporal_filter

        response.interpreted_query = interpretation.interpreted_query
        return response

    async def find_related(self, note_id: str, limit: int | None = None) -> list[SearchResult]:
        """
        Notes semantically close to ``note_id``, excluding the note itself.

        Returns:
            Up to ``limit`` results; empty when the note does not exist
        """
        limit = limit or self.settings.related_limit
        notes = await self.store.get_all()
        target = next((n for n in notes if n.id == note_id), None)
        if target is None:
            logger.warning(f"Related notes requested for missing note {note_id}")
            return []

        target_vector = parse_vector(target.embedding)
        if target_vector is None or (
            self.embeddings.is_fallback(target_vector)
            and is_available(self.embeddings.embedder)
        ):
            target_vector = await self._regenerate(target, target_vector)

        threshold = (
            self.settings.related_neural_threshold
            if self.embeddings.is_neural(target_vector)
            else self.settings.related_fallback_threshold
        )

        results = []
        for note in notes:
            if note.id == note_id or not note.content.strip():
                continue
            score = await self._score_note(note, target_vector)
            if score is not None and score > threshold:
                results.append(SearchResult.from_note(note, score, MatchType.SEMANTIC))

        return _by_score(results)[:limit]

    # ------------------------------------------------------------------
    # Scorers
    # ------------------------------------------------------------------

    def _rank_by_time(
        self, notes: list[NoteRecord], temporal_filter: TemporalFilter
    ) -> list[SearchResult]:
        """Created-in-window before edited-in-window, then newest first."""
        window = max((temporal_filter.end_time - temporal_filter.start_time).total_seconds(), 1.0)
        ranked = []
        for note in notes:
            created_match = temporal_filter.contains(note.created_at)
            if not created_match and not temporal_filter.contains(note.updated_at):
                continue
            moment = note.created_at if created_match else note.updated_at
            elapsed = (moment - temporal_filter.start_time).total_seconds()
            recency = min(max(elapsed / window, 0.0), 1.0)
            ranked.append((created_match, moment, note, (2.0 if created_match else 1.0) + recency))

        ranked.sort(key=lambda item: (item[0], item[1]), reverse=True)
        return [
            SearchResult.from_note(note, score, MatchType.KEYWORD)
            for _, _, note, score in ranked[: self.settings.max_results]
        ]

    async def _keyword_search(self, notes: list[NoteRecord], terms: list[str]) -> list[SearchResult]:
        terms = [t.lower() for t in terms if len(t) >= 2]
        if not terms:
            return []

        results = []
        for note in notes:
            title = (note.title or "").lower()
            content = note.content.lower()
            if not any(term in title or term in content for term in terms):
                continue

            score = 0.0
            for term in terms:
                if term in title:
                    score += TITLE_MATCH_WEIGHT
                score += min(content.count(term) * CONTENT_MATCH_WEIGHT, CONTENT_MATCH_CAP)

            normalized = min(score / len(terms), 1.0)
            results.append(SearchResult.from_note(note, normalized, MatchType.KEYWORD))

        logger.debug(f"Keyword search found {len(results)} matches for {terms}")
        return results

    async def _semantic_search(self, notes: list[NoteRecord], text: str) -> list[SearchResult]:
        query_vector = await self.embeddings.generate(text)
        neural = self.embeddings.is_neural(query_vector)
        threshold = self.settings.neural_threshold if neural else self.settings.fallback_threshold
        floor = self.settings.neural_floor if neural else self.settings.fallback_floor

        scored: list[tuple[NoteRecord, float]] = []
        for note in notes:
            if not note.content.strip():
                continue
            score = await self._score_note(note, query_vector)
            if score is not None:
                scored.append((note, score))

        matches = [
            SearchResult.from_note(note, score, MatchType.SEMANTIC)
            for note, score in scored
            if score > threshold
        ]
        logger.debug(
            f"Semantic search: {len(matches)} of {len(scored)} notes above {threshold} "
            f"({'neural' if neural else 'fallback'} query vector)"
        )
        if matches or not scored:
            return _by_score(matches)

        scored.sort(key=lambda item: item[1], reverse=True)
        top = [item for item in scored if item[1] > floor][: self.settings.low_confidence_limit]
        if not top:
            return []

        logger.info(
            f"No strong semantic matches, returning top {len(top)} "
            f"low-confidence results (best: {top[0][1]:.2f})"
        )
        return [SearchResult.from_note(note, score, MatchType.SEMANTIC) for note, score in top]

    def _merge(self, semantic: list[SearchResult], keyword: list[SearchResult]) -> list[SearchResult]:
        merged: dict[str, SearchResult] = {r.id: r for r in semantic}
        for result in keyword:
            existing = merged.get(result.id)
            if existing is None:
                merged[result.id] = result
                continue
            merged[result.id] = existing.model_copy(
                update={
                    "relevance_score": (existing.relevance_score + result.relevance_score) / 2
                    + self.settings.both_bonus,
                    "match_type": MatchType.BOTH,
                }
            )
        return list(merged.values())

    # ------------------------------------------------------------------
    # Embedding freshness
    # ------------------------------------------------------------------

    async def _score_note(self, note: NoteRecord, reference: list[float]) -> float | None:
        """Similarity to ``reference``, refreshing a stale stored vector first."""
        vector = parse_vector(note.embedding)
        if vector is None or len(vector) != len(reference):
            vector = await self._regenerate(note, vector)

        similarity = self.embeddings.similarity(reference, vector)
        if similarity.dimension_mismatch:
            # Embedder changed availability mid-search
            logger.debug(f"Skipping note {note.id}: vector width still differs from query")
            return None
        return similarity.score

    async def _regenerate(self, note: NoteRecord, stored: list[float] | None) -> list[float]:
        fresh = await self.embeddings.generate(note.content)

        if (
            stored is not None
            and not self.embeddings.is_fallback(stored)
            and self.embeddings.is_fallback(fresh)
        ):
            # Keep the stored neural vector while the model is unavailable
            return fresh

        await self.store.update(note.id, NoteUpdate(embedding=serialize_vector(fresh)))
        logger.debug(f"Regenerated embedding for note {note.id}: {len(fresh)} dimensions")
        return fresh
