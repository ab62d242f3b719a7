"""Error taxonomy shared by the indexing and retrieval pipeline."""

from __future__ import annotations


class RagmarkError(Exception):
    """Base class for all errors raised by ragmark."""


class ValidationError(RagmarkError, ValueError):
    """Raised when caller input is rejected before any work is done."""


class StorageError(RagmarkError):
    """Raised when a store read, write or (de)serialisation fails."""

    def __init__(self, operation: str, message: str) -> None:
        super().__init__(f"{operation}: {message}")
        self.operation = operation


class EmbeddingError(RagmarkError):
    """Raised when the embedding backend fails or answers malformed data."""


class PartialBatchError(EmbeddingError):
    """The embedding backend returned a different number of vectors than requested."""

    def __init__(self, path: str, expected: int, received: int) -> None:
        super().__init__(
            f"{path}: expected {expected} embeddings, received {received}"
        )
        self.path = path
        self.expected = expected
        self.received = received
