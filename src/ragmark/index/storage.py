"""SQLite store for documents, chunk embeddings and the full-text projection."""

from __future__ import annotations

import logging
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Sequence

import numpy as np

from ragmark.errors import StorageError, ValidationError
from ragmark.models import Chunk, Document, FullTextEntry, FullTextHit, NearestChunk

LOGGER = logging.getLogger(__name__)

EPOCH = 0.0


def encode_embedding(vector: np.ndarray | Sequence[float]) -> bytes:
    return np.asarray(vector, dtype="float32").ravel().tobytes()


def decode_embedding(blob: bytes) -> np.ndarray:
    return np.frombuffer(blob, dtype="float32")


def quote_fulltext_query(query: str) -> str:
    """Turn free text into an FTS5 expression of quoted terms.

    Terms with no letters or digits are dropped since the tokenizer would
    index nothing for them.
    """
    terms = [term for term in query.split() if any(ch.isalnum() for ch in term)]
    return " ".join('"' + term.replace('"', '""') + '"' for term in terms)


class SQLiteStore:
    """Persistence layer for documents, chunks and their embeddings.

    All state lives in the database. The single connection is shared between
    threads and guarded by a re-entrant lock, so callers may share one store.
    """

    def __init__(
        self,
        db_path: Path | str,
        *,
        dimension: int | None = None,
        timeout: float = 5.0,
    ) -> None:
        self.db_path = Path(db_path)
        self.dimension = dimension
        self._lock = threading.RLock()
        self._depth = 0
        try:
            self._conn = sqlite3.connect(
                self.db_path, timeout=timeout, check_same_thread=False
            )
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA journal_mode=WAL;")
            self._conn.execute("PRAGMA synchronous=NORMAL;")
        except sqlite3.Error as exc:
            raise StorageError("open", f"{self.db_path}: {exc}") from exc
        self._ensure_schema()

    @property
    def connection(self) -> sqlite3.Connection:
        return self._conn

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Run the enclosed statements atomically.

        Transactions nest: only the outermost block commits or rolls back.
        """
        with self._lock:
            self._depth += 1
            try:
                yield self._conn
            except BaseException:
                self._depth -= 1
                if self._depth == 0:
                    self._conn.rollback()
                raise
            self._depth -= 1
            if self._depth == 0:
                self._conn.commit()

    @contextmanager
    def _storage_errors(self, operation: str) -> Iterator[None]:
        try:
            yield
        except (sqlite3.Error, ValueError) as exc:
            LOGGER.debug("Store operation %s failed: %s", operation, exc)
            raise StorageError(operation, str(exc)) from exc

    def _ensure_schema(self) -> None:
        with self._storage_errors("ensure_schema"), self.transaction() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS document (
                    id INTEGER PRIMARY KEY,
                    path TEXT NOT NULL UNIQUE,
                    last_updated REAL NOT NULL DEFAULT 0
                )
                """
            )
            conn.execute(
                """
                CREATE VIRTUAL TABLE IF NOT EXISTS document_fulltext USING fts5(
                    path UNINDEXED,
                    title,
                    text,
                    summary
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS chunk (
                    id INTEGER PRIMARY KEY,
                    path TEXT NOT NULL,
                    chunk_index INTEGER NOT NULL,
                    text TEXT NOT NULL,
                    UNIQUE(path, chunk_index)
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS chunk_embedding (
                    path TEXT NOT NULL,
                    chunk_index INTEGER NOT NULL,
                    embedding BLOB NOT NULL,
                    PRIMARY KEY(path, chunk_index)
                )
                """
            )

    # Documents

    def upsert_document(self, path: str) -> tuple[Document, bool]:
        """Return the document row for `path`, creating it if needed.

        Returns:
            (document, existed). A new row starts with an epoch last-updated
            value so that any source document is considered stale.
        """
        with self._storage_errors("upsert_document"), self.transaction() as conn:
            row = conn.execute(
                "SELECT path, last_updated FROM document WHERE path = ?", (path,)
            ).fetchone()
            if row is not None:
                return Document(path=row["path"], last_updated=row["last_updated"]), True

            cursor = conn.execute(
                "INSERT OR IGNORE INTO document(path, last_updated) VALUES (?, ?)",
                (path, EPOCH),
            )
            row = conn.execute(
                "SELECT path, last_updated FROM document WHERE path = ?", (path,)
            ).fetchone()
            return (
                Document(path=row["path"], last_updated=row["last_updated"]),
                cursor.rowcount == 0,
            )

    def get_document(self, path: str) -> Document | None:
        with self._storage_errors("get_document"), self._lock:
            row = self._conn.execute(
                "SELECT path, last_updated FROM document WHERE path = ?", (path,)
            ).fetchone()
        if row is None:
            return None
        return Document(path=row["path"], last_updated=row["last_updated"])

    def update_last_updated(self, path: str, timestamp: float) -> bool:
        """Set last-updated for an existing document; absent paths are left absent."""
        with self._storage_errors("update_last_updated"), self.transaction() as conn:
            cursor = conn.execute(
                "UPDATE document SET last_updated = ? WHERE path = ?",
                (float(timestamp), path),
            )
        if cursor.rowcount == 0:
            LOGGER.debug("No document row for %s, last_updated not set", path)
        return cursor.rowcount > 0

    # Full-text projection

    def upsert_fulltext(self, path: str, title: str, text: str, summary: str) -> None:
        with self._storage_errors("upsert_fulltext"), self.transaction() as conn:
            conn.execute("DELETE FROM document_fulltext WHERE path = ?", (path,))
            conn.execute(
                """
                INSERT INTO document_fulltext(path, title, text, summary)
                VALUES (?, ?, ?, ?)
                """,
                (path, title, text, summary),
            )

    def get_fulltext(self, path: str) -> FullTextEntry | None:
        with self._storage_errors("get_fulltext"), self._lock:
            row = self._conn.execute(
                "SELECT path, title, text, summary FROM document_fulltext WHERE path = ?",
                (path,),
            ).fetchone()
        if row is None:
            return None
        return FullTextEntry(
            path=row["path"], title=row["title"], text=row["text"], summary=row["summary"]
        )

    def search_fulltext(
        self, query: str, *, limit: int = 10, raw: bool = False
    ) -> List[FullTextHit]:
        """Keyword search over title, text and summary, best match first.

        Each whitespace-separated term is matched as a quoted phrase, so
        punctuation in the query is treated as text. Pass ``raw=True`` to use
        FTS5 query syntax (``AND``, ``OR``, prefix ``*``) as written.
        """
        if not query or not query.strip():
            raise ValidationError("full-text query must not be empty")
        if limit <= 0:
            return []
        expression = query if raw else quote_fulltext_query(query)
        if not expression:
            LOGGER.debug("Query %r has no searchable terms", query)
            return []
        with self._storage_errors("search_fulltext"), self._lock:
            rows = self._conn.execute(
                """
                SELECT path, title, summary, bm25(document_fulltext) AS score
                FROM document_fulltext
                WHERE document_fulltext MATCH ?
                ORDER BY score
                LIMIT ?
                """,
                (expression, limit),
            ).fetchall()
        return [
            FullTextHit(
                path=row["path"], title=row["title"], summary=row["summary"], rank=row["score"]
            )
            for row in rows
        ]

    # Chunks

    def delete_chunks(self, path: str) -> int:
        with self._storage_errors("delete_chunks"), self.transaction() as conn:
            conn.execute("DELETE FROM chunk_embedding WHERE path = ?", (path,))
            cursor = conn.execute("DELETE FROM chunk WHERE path = ?", (path,))
        return cursor.rowcount

    def insert_chunks(self, chunks: Sequence[Chunk]) -> None:
        """Insert chunk rows and their embeddings as given.

        The caller owns (path, index); ordering is not re-derived here. All
        embeddings in the batch must share one length.
        """
        if not chunks:
            return
        with self._storage_errors("insert_chunks"):
            blobs = [self._checked_blob(chunk) for chunk in chunks]
            lengths = {len(blob) for blob in blobs}
            if len(lengths) != 1:
                raise ValueError("embeddings in one batch differ in length")
            with self.transaction() as conn:
                conn.executemany(
                    "INSERT INTO chunk(path, chunk_index, text) VALUES (?, ?, ?)",
                    [(chunk.path, chunk.index, chunk.text) for chunk in chunks],
                )
                conn.executemany(
                    """
                    INSERT INTO chunk_embedding(path, chunk_index, embedding)
                    VALUES (?, ?, ?)
                    """,
                    [
                        (chunk.path, chunk.index, sqlite3.Binary(blob))
                        for chunk, blob in zip(chunks, blobs)
                    ],
                )

    def replace_chunks(self, path: str, chunks: Sequence[Chunk]) -> None:
        """Delete all chunks for `path` and insert `chunks` in one transaction."""
        with self.transaction():
            self.delete_chunks(path)
            self.insert_chunks(chunks)

    def _checked_blob(self, chunk: Chunk) -> bytes:
        if chunk.embedding is None:
            raise ValueError(f"chunk {chunk.path}#{chunk.index} has no embedding")
        vector = np.asarray(chunk.embedding, dtype="float32").ravel()
        if self.dimension is not None and vector.shape[0] != self.dimension:
            raise ValueError(
                f"chunk {chunk.path}#{chunk.index} has dimension {vector.shape[0]}, "
                f"expected {self.dimension}"
            )
        return encode_embedding(vector)

    def select_chunks(self, path: str) -> List[Chunk]:
        """All chunks for `path`, ascending by index."""
        with self._storage_errors("select_chunks"), self._lock:
            rows = self._conn.execute(
                """
                SELECT c.path, c.chunk_index, c.text, e.embedding
                FROM chunk c
                LEFT JOIN chunk_embedding e
                    ON e.path = c.path AND e.chunk_index = c.chunk_index
                WHERE c.path = ?
                ORDER BY c.chunk_index
                """,
                (path,),
            ).fetchall()
            return [self._row_to_chunk(row) for row in rows]

    def select_chunk_range(self, path: str, start: int, end: int) -> List[Chunk]:
        """Chunks for `path` with index in [start, end], ascending.

        Bounds outside the stored indices simply match nothing there.
        """
        with self._storage_errors("select_chunk_range"), self._lock:
            rows = self._conn.execute(
                """
                SELECT c.path, c.chunk_index, c.text, e.embedding
                FROM chunk c
                LEFT JOIN chunk_embedding e
                    ON e.path = c.path AND e.chunk_index = c.chunk_index
                WHERE c.path = ? AND c.chunk_index BETWEEN ? AND ?
                ORDER BY c.chunk_index
                """,
                (path, start, end),
            ).fetchall()
            return [self._row_to_chunk(row) for row in rows]

    def select_nearest_chunks(
        self, vector: np.ndarray | Sequence[float], limit: int
    ) -> List[NearestChunk]:
        """Up to `limit` chunks corpus-wide, nearest first by Euclidean distance.

        Equal distances keep insertion order.
        """
        if limit <= 0:
            return []
        with self._storage_errors("select_nearest_chunks"), self._lock:
            query = np.asarray(vector, dtype="float32").ravel()
            rows = self._conn.execute(
                """
                SELECT c.path, c.chunk_index, c.text, e.embedding
                FROM chunk c
                JOIN chunk_embedding e
                    ON e.path = c.path AND e.chunk_index = c.chunk_index
                ORDER BY c.id
                """
            ).fetchall()
            if not rows:
                return []

            embeddings = np.vstack([decode_embedding(row["embedding"]) for row in rows])
            if embeddings.shape[1] != query.shape[0]:
                raise ValueError(
                    f"query has dimension {query.shape[0]}, "
                    f"stored embeddings have {embeddings.shape[1]}"
                )
            distances = np.linalg.norm(embeddings - query, axis=1)
            order = np.argsort(distances, kind="stable")[:limit]

            return [
                NearestChunk(
                    chunk=Chunk(
                        path=rows[idx]["path"],
                        index=rows[idx]["chunk_index"],
                        text=rows[idx]["text"],
                        embedding=embeddings[idx],
                    ),
                    distance=float(distances[idx]),
                )
                for idx in order
            ]

    @staticmethod
    def _row_to_chunk(row: sqlite3.Row) -> Chunk:
        blob = row["embedding"]
        return Chunk(
            path=row["path"],
            index=row["chunk_index"],
            text=row["text"],
            embedding=decode_embedding(blob) if blob is not None else None,
        )
