"""Embedding backends.

Every backend satisfies :class:`Embedder`: ``embed`` maps a batch of texts to a
2-D float32 array with one row per input, in input order, and
``embed_query`` embeds a single text.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Protocol, Sequence

import numpy as np
from sentence_transformers import SentenceTransformer

from ragmark.errors import EmbeddingError

DEFAULT_MODEL = "sentence-transformers/all-mpnet-base-v2"

logger = logging.getLogger(__name__)


class Embedder(Protocol):
    def embed(self, texts: Sequence[str] | Iterable[str]) -> np.ndarray: ...

    def embed_query(self, text: str) -> np.ndarray: ...


@dataclass(slots=True)
class EmbeddingConfig:
    model_name: str = DEFAULT_MODEL
    batch_size: int = 16
    normalize: bool = True
    device: str | None = None


class EmbeddingModel:
    """Thin wrapper around `SentenceTransformer` for query and document embeddings."""

    def __init__(self, config: EmbeddingConfig | None = None) -> None:
        self.config = config or EmbeddingConfig()
        try:
            self._model = SentenceTransformer(self.config.model_name, device=self.config.device)
        except Exception as exc:
            raise EmbeddingError(
                f"failed to load model {self.config.model_name!r}: {exc}"
            ) from exc
        self.dimension = int(self._model.get_sentence_embedding_dimension())
        logger.info(
            "Loaded model %s (dimension %d, device %s)",
            self.config.model_name,
            self.dimension,
            self.config.device or "auto",
        )

    def embed(self, texts: Sequence[str] | Iterable[str]) -> np.ndarray:
        """Return float32 embeddings for input texts."""
        sentences = list(texts)
        if not sentences:
            return np.empty((0, self.dimension), dtype="float32")
        try:
            embeddings = self._model.encode(
                sentences,
                batch_size=self.config.batch_size,
                show_progress_bar=False,
                convert_to_numpy=True,
                normalize_embeddings=self.config.normalize,
            )
        except Exception as exc:
            raise EmbeddingError(f"failed to embed {len(sentences)} texts: {exc}") from exc
        return embeddings.astype("float32", copy=False)

    def embed_query(self, text: str) -> np.ndarray:
        """Convenience wrapper for single-query embedding."""
        return self.embed([text])[0]
