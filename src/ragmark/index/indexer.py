"""Incremental document indexing pipeline."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable

from ragmark.embedding.encoder import Embedder
from ragmark.errors import PartialBatchError, RagmarkError
from ragmark.index.storage import SQLiteStore
from ragmark.models import Chunk, SourceDocument
from ragmark.utils.text import split_lines

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class IndexStats:
    inserted: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0
    processed_files: list[str] = field(default_factory=list)
    errors: Dict[str, RagmarkError] = field(default_factory=dict)

    def increment(self, status: str, path: str) -> None:
        if status == "inserted":
            self.inserted += 1
        elif status == "updated":
            self.updated += 1
        elif status == "skipped":
            self.skipped += 1
        else:
            self.failed += 1
        self.processed_files.append(path)

    def record_failure(self, path: str, error: RagmarkError) -> None:
        self.increment("failed", path)
        self.errors[path] = error


class Indexer:
    """Keeps the store in step with a document source, one document at a time."""

    def __init__(
        self,
        embedder: Embedder,
        store: SQLiteStore,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.embedder = embedder
        self.store = store
        self.clock = clock

    def index(self, documents: Iterable[SourceDocument]) -> IndexStats:
        """Index every document the walker yields.

        A failing document is logged and counted; the sweep moves on. Its
        timestamp is not advanced, so the next sweep picks it up again.
        """
        stats = IndexStats()
        for document in documents:
            try:
                status = self.index_document(document)
            except RagmarkError as exc:
                LOGGER.error("Failed to index %s: %s", document.path, exc)
                stats.record_failure(document.path, exc)
                continue
            stats.increment(status, document.path)
        LOGGER.info(
            "Index complete: %d inserted, %d updated, %d skipped, %d failed",
            stats.inserted,
            stats.updated,
            stats.skipped,
            stats.failed,
        )
        return stats

    def index_document(self, document: SourceDocument) -> str:
        """Reindex a single document if its source changed.

        Returns:
            'inserted' for a first-time path, 'updated' for a reindexed one,
            'skipped' when the stored copy is up to date.
        """
        path = document.path
        record, existed = self.store.upsert_document(path)

        # last_updated holds processing time, compared here against source mtime.
        if document.mtime <= record.last_updated:
            LOGGER.debug("Up to date: %s", path)
            return "skipped"

        LOGGER.info("Processing: %s", path)
        self.store.upsert_fulltext(path, document.title, document.text, document.summary)

        lines = split_lines(document.text)
        LOGGER.debug("Split %s into %d chunks", path, len(lines))
        if lines:
            chunks = self._embed_chunks(path, lines)
            self.store.replace_chunks(path, chunks)
        else:
            LOGGER.warning("No text chunks in %s", path)
            self.store.delete_chunks(path)

        self.store.update_last_updated(path, self.clock())
        return "updated" if existed else "inserted"

    def _embed_chunks(self, path: str, lines: list[str]) -> list[Chunk]:
        embeddings = self.embedder.embed(lines)
        if len(embeddings) != len(lines):
            raise PartialBatchError(path, expected=len(lines), received=len(embeddings))
        return [
            Chunk(path=path, index=index, text=text, embedding=vector)
            for index, (text, vector) in enumerate(zip(lines, embeddings))
        ]
