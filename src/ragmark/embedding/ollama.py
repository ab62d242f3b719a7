"""Ollama embedding backend."""

from __future__ import annotations

import logging
from typing import Iterable, Sequence

import httpx
import numpy as np

from ragmark.errors import EmbeddingError

DEFAULT_OLLAMA_URL = "http://127.0.0.1:11434"
DEFAULT_OLLAMA_MODEL = "nomic-embed-text"

logger = logging.getLogger(__name__)


class OllamaEmbedder:
    """Client for the Ollama ``/api/embed`` endpoint.

    A single request embeds the whole batch, so a failure is all-or-nothing.
    Timeouts are configured on the underlying ``httpx.Client``.
    """

    def __init__(
        self,
        model: str = DEFAULT_OLLAMA_MODEL,
        *,
        base_url: str = DEFAULT_OLLAMA_URL,
        timeout: float = 60.0,
        client: httpx.Client | None = None,
    ) -> None:
        self.model = model
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.Client(timeout=timeout)

    def close(self) -> None:
        self._client.close()

    def embed(self, texts: Sequence[str] | Iterable[str]) -> np.ndarray:
        inputs = list(texts)
        if not inputs:
            return np.empty((0, 0), dtype="float32")

        logger.debug("ollama_embed_request model=%s inputs=%d", self.model, len(inputs))
        try:
            response = self._client.post(
                f"{self.base_url}/api/embed",
                json={"model": self.model, "input": inputs},
            )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as exc:
            logger.error(
                "ollama_embed_error status=%s url=%s", exc.response.status_code, self.base_url
            )
            raise EmbeddingError(
                f"ollama returned HTTP {exc.response.status_code} for model {self.model!r}"
            ) from exc
        except httpx.HTTPError as exc:
            logger.error("ollama_connection_error error=%s url=%s", exc, self.base_url)
            raise EmbeddingError(f"failed to reach ollama at {self.base_url}: {exc}") from exc
        except ValueError as exc:
            raise EmbeddingError(f"ollama returned invalid JSON: {exc}") from exc

        embeddings = data.get("embeddings") if isinstance(data, dict) else None
        if not isinstance(embeddings, list):
            raise EmbeddingError("ollama response has no 'embeddings' list")
        if not embeddings:
            return np.empty((0, 0), dtype="float32")
        try:
            vectors = np.asarray(embeddings, dtype="float32")
        except ValueError as exc:
            raise EmbeddingError(f"ollama returned ragged embeddings: {exc}") from exc
        if vectors.ndim != 2:
            raise EmbeddingError(f"ollama returned embeddings of shape {vectors.shape}")

        logger.debug("ollama_embed_response vectors=%d dimension=%d", *vectors.shape)
        return vectors

    def embed_query(self, text: str) -> np.ndarray:
        vectors = self.embed([text])
        if len(vectors) != 1:
            raise EmbeddingError(f"expected 1 query embedding, received {len(vectors)}")
        return vectors[0]
