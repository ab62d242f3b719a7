"""Core ragmark data models."""

from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np


@dataclass(slots=True)
class Document:
    """Indexing state for a single source path."""

    path: str
    last_updated: float = 0.0


@dataclass(slots=True)
class Chunk:
    """One line of document text paired with its embedding."""

    path: str
    index: int
    text: str
    embedding: np.ndarray | None = field(default=None, compare=False, repr=False)

    @property
    def key(self) -> tuple[str, int]:
        return (self.path, self.index)


@dataclass(slots=True)
class NearestChunk:
    """Chunk returned by a nearest-neighbour query."""

    chunk: Chunk
    distance: float

    @property
    def path(self) -> str:
        return self.chunk.path

    @property
    def index(self) -> int:
        return self.chunk.index


@dataclass(slots=True)
class FullTextEntry:
    """Keyword-searchable projection of a document."""

    path: str
    title: str
    text: str
    summary: str


@dataclass(slots=True)
class FullTextHit:
    path: str
    title: str
    summary: str
    rank: float


@dataclass(slots=True)
class SourceDocument:
    """Extracted document content handed to the indexer by a walker."""

    path: str
    mtime: float
    text: str
    title: str = ""
    summary: str = ""
