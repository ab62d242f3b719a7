"""Query-time context retrieval."""

from __future__ import annotations

import logging
from typing import List

from ragmark.embedding.encoder import Embedder
from ragmark.errors import ValidationError
from ragmark.index.storage import SQLiteStore
from ragmark.models import Chunk, NearestChunk

LOGGER = logging.getLogger(__name__)

DEFAULT_CONTEXT_WINDOW = 10
DEFAULT_NEAREST_LIMIT = 10


class Retriever:
    """Finds the chunks nearest a query and widens each hit to its neighbours."""

    def __init__(
        self,
        embedder: Embedder,
        store: SQLiteStore,
        *,
        context_window: int = DEFAULT_CONTEXT_WINDOW,
        limit: int = DEFAULT_NEAREST_LIMIT,
    ) -> None:
        if context_window < 0:
            raise ValidationError("context_window must not be negative")
        self.embedder = embedder
        self.store = store
        self.context_window = context_window
        self.limit = limit

    def nearest(self, query: str) -> List[NearestChunk]:
        """Embed `query` and return the closest stored chunks.

        Raises ValidationError for an empty query and also for one that is
        only whitespace, before the embedder is called.
        """
        if not query or not query.strip():
            raise ValidationError("query must not be empty")
        vector = self.embedder.embed_query(query)
        hits = self.store.select_nearest_chunks(vector, self.limit)
        LOGGER.info("Found %d nearest chunks", len(hits))
        for hit in hits:
            LOGGER.debug("hit path=%s index=%d distance=%.4f", hit.path, hit.index, hit.distance)
        return hits

    def get_context(self, query: str) -> List[Chunk]:
        """Return the windowed context for `query`, nearest hit first.

        Each (path, index) appears once, at the position of its first
        occurrence.
        """
        hits = self.nearest(query)
        return self.expand(hits)

    def expand(self, hits: List[NearestChunk]) -> List[Chunk]:
        seen: set[tuple[str, int]] = set()
        context: List[Chunk] = []
        for hit in hits:
            window = self.store.select_chunk_range(
                hit.path,
                hit.index - self.context_window,
                hit.index + self.context_window,
            )
            for chunk in window:
                if chunk.key in seen:
                    continue
                seen.add(chunk.key)
                context.append(chunk)
        LOGGER.debug("Expanded %d hits into %d context chunks", len(hits), len(context))
        return context
