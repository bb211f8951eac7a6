"""
============================================================================
Embedding Service
============================================================================
Wraps the neural Embedder (all-MiniLM-L6-v2, 384 dimensions) with a
deterministic hashed bag-of-words fallback (256 buckets) used whenever
the model is absent, loading, busy or failing.

Vectors from the two schemes are told apart only by their length, so a
stored vector is stale whenever its length differs from what the active
embedder produces.
============================================================================
"""

import hashlib
import json
import logging
import math
import re
from collections import Counter
from typing import NamedTuple

import numpy as np

from ..adapters.base import Embedder, is_available

logger = logging.getLogger(__name__)

STOP_WORDS = frozenset(
    """
    a an the and or but in on at to for of with by from as is was are were
    been be have has had do does did will would could should may might must
    shall can need dare ought used i me my myself we our ours ourselves you
    your yours yourself yourselves he him his himself she her hers herself
    it its itself they them their theirs themselves what which who whom this
    that these those am being having doing if because until while about
    against between into through during before after above below up down
    out off over under again further then once here there when where why
    how all each few more most other some such no nor not only own same so
    than too very just
    """.split()
)

_PUNCTUATION = re.compile(r"[^\w\s]")


class Similarity(NamedTuple):
    """Cosine similarity plus whether the vectors had different lengths."""

    score: float
    dimension_mismatch: bool


def tokenize(text: str) -> list[str]:
    """Lowercase, strip punctuation, drop short tokens and stopwords."""
    words = _PUNCTUATION.sub(" ", text.lower()).split()
    return [w for w in words if len(w) >= 2 and w not in STOP_WORDS]


def _bucket(token: str, buckets: int) -> int:
    # Stable across processes, unlike the builtin hash()
    digest = hashlib.md5(token.encode("utf-8")).digest()
    return int.from_bytes(digest[:4], "little") % buckets


def fallback_embedding(text: str, dimensions: int = 256) -> list[float]:
    """
    Deterministic non-neural embedding.

    Each token at position ``i`` adds ``1/(1+ln(i+1)) * (1+ln(tf))`` to its
    hash bucket; the result is L2-normalized. Text with no surviving tokens
    yields the zero vector.
    """
    tokens = tokenize(text)
    counts = Counter(tokens)
    vector = np.zeros(dimensions, dtype=np.float64)

    for index, token in enumerate(tokens):
        position_weight = 1.0 / (1.0 + math.log(index + 1))
        tf_weight = 1.0 + math.log(counts[token])
        vector[_bucket(token, dimensions)] += position_weight * tf_weight

    norm = np.linalg.norm(vector)
    if norm > 0:
        vector /= norm
    return vector.tolist()


def cosine_similarity(a: list[float], b: list[float]) -> Similarity:
    """
    Cosine similarity over the overlapping prefix of ``a`` and ``b``.

    Never raises on a length mismatch; the mismatch is reported instead.
    Zero-magnitude input scores 0.
    """
    mismatch = len(a) != len(b)
    if mismatch:
        logger.debug(f"Dimension mismatch: {len(a)} vs {len(b)}")

    n = min(len(a), len(b))
    if n == 0:
        return Similarity(0.0, mismatch)

    va = np.asarray(a[:n], dtype=np.float64)
    vb = np.asarray(b[:n], dtype=np.float64)
    magnitude = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if magnitude == 0.0:
        return Similarity(0.0, mismatch)
    return Similarity(float(np.dot(va, vb) / magnitude), mismatch)


def serialize_vector(vector: list[float]) -> str:
    return json.dumps([float(x) for x in vector])


def parse_vector(raw: str | None) -> list[float] | None:
    """Decode a stored embedding; None when missing or malformed."""
    if not raw:
        return None
    try:
        values = json.loads(raw)
    except (TypeError, ValueError):
        return None
    if not isinstance(values, list) or not values:
        return None
    if not all(isinstance(v, (int, float)) and not isinstance(v, bool) for v in values):
        return None
    return [float(v) for v in values]


class EmbeddingService:
    """
    Text to vector with graceful degradation.

    Example:
        ```python
        service = EmbeddingService(embedder)
        query_vec = await service.generate("travel plans")
        score, mismatch = service.similarity(query_vec, note_vec)
        ```
    """

    def __init__(self, embedder: Embedder | None = None, fallback_dimensions: int = 256):
        """
        Initialize embedding service.

        Args:
            embedder: Neural embedder adapter; may be absent
            fallback_dimensions: Bucket count of the hashed fallback
        """
        self.embedder = embedder
        self.fallback_dimensions = fallback_dimensions

    @property
    def neural_dimensions(self) -> int | None:
        return self.embedder.dimensions if self.embedder is not None else None

    async def generate(self, text: str) -> list[float]:
        """Neural vector when the embedder is free, else the fallback vector."""
        if is_available(self.embedder):
            try:
                embedding = await self.embedder.forward(text)
                logger.debug(f"Neural embedding generated: {len(embedding)} dimensions")
                return embedding
            except Exception as e:
                logger.warning(f"Neural embedding generation failed, using fallback: {e}")
        else:
            logger.debug(
                f"Using fallback embedding (model ready: "
                f"{bool(self.embedder and self.embedder.is_ready)}, generating: "
                f"{bool(self.embedder and self.embedder.is_generating)})"
            )

        return self.fallback_embedding(text)

    def fallback_embedding(self, text: str) -> list[float]:
        return fallback_embedding(text, self.fallback_dimensions)

    def is_neural(self, vector: list[float]) -> bool:
        return self.neural_dimensions is not None and len(vector) == self.neural_dimensions

    def is_fallback(self, vector: list[float]) -> bool:
        return len(vector) == self.fallback_dimensions

    def similarity(self, a: list[float], b: list[float]) -> Similarity:
        return cosine_similarity(a, b)
