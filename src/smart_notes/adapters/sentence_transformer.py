"""
============================================================================
SentenceTransformer Embedder
============================================================================
Neural Embedder adapter (all-MiniLM-L6-v2, 384 dimensions by default).
The model loads in a worker thread so the event loop keeps serving
fallback embeddings until it is ready.
============================================================================
"""

import asyncio
import logging

from sentence_transformers import SentenceTransformer

from ..config import EmbeddingSettings
from ..errors import ModelBusyError, ModelError, ModelUnavailableError

logger = logging.getLogger(__name__)


class SentenceTransformerEmbedder:
    """
    Embedder adapter over SentenceTransformers.

    Accepts one call at a time; a second concurrent ``forward`` raises
    ModelBusyError instead of queueing behind the first.
    """

    def __init__(self, settings: EmbeddingSettings):
        """
        Initialize the adapter without loading the model.

        Args:
            settings: Embedding model configuration
        """
        self.settings = settings
        self._model: SentenceTransformer | None = None
        self._dimensions = settings.dimensions
        self._generating = False
        self._progress = 0.0
        self._error: str | None = None

    @property
    def is_ready(self) -> bool:
        return self._model is not None

    @property
    def is_generating(self) -> bool:
        return self._generating

    @property
    def download_progress(self) -> float:
        return self._progress

    @property
    def error(self) -> str | None:
        return self._error

    @property
    def dimensions(self) -> int:
        return self._dimensions

    async def load(self) -> bool:
        """
        Load the model in a worker thread.

        Returns:
            True when the model is ready; False if loading failed
        """
        if self._model is not None:
            return True

        logger.info(
            f"Loading embedding model: {self.settings.model_name} "
            f"on device: {self.settings.device}"
        )
        try:
            model = await asyncio.to_thread(
                SentenceTransformer,
                self.settings.model_name,
                device=self.settings.device,
                cache_folder=self.settings.cache_folder,
            )
        except Exception as e:
            self._error = str(e)
            logger.error(f"Failed to load embedding model: {e}", exc_info=True)
            return False

        dimensions = model.get_sentence_embedding_dimension()
        if dimensions and dimensions != self.settings.dimensions:
            logger.warning(
                f"Model reports {dimensions} dimensions, "
                f"configured {self.settings.dimensions}; using the model's value"
            )
            self._dimensions = dimensions

        self._model = model
        self._progress = 1.0
        self._error = None
        logger.info(f"Model loaded successfully. Embedding dimensions: {self._dimensions}")
        return True

    async def forward(self, text: str) -> list[float]:
        """
        Embed a single text.

        Raises:
            ModelUnavailableError: model not loaded
            ModelBusyError: another call is in flight
            ModelError: the library failed during encoding
        """
        if self._model is None:
            raise ModelUnavailableError("Embedding model is not loaded")
        if self._generating:
            raise ModelBusyError("Embedding model is busy")

        self._generating = True
        try:
            embedding = await asyncio.to_thread(
                self._model.encode,
                text,
                normalize_embeddings=self.settings.normalize_embeddings,
                convert_to_numpy=True,
            )
        except Exception as e:
            raise ModelError(f"Embedding failed: {e}") from e
        finally:
            self._generating = False

        return embedding.tolist()
