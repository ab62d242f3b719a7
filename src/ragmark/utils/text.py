"""Text helpers including line-based chunking."""

from __future__ import annotations

import html
from typing import Iterable


def split_lines(text: str) -> list[str]:
    """Split extracted text into retrieval chunks, one per non-blank line.

    Lines are trimmed and HTML entities are unescaped; blank lines are dropped
    and source order is kept.
    """
    if not text:
        return []

    chunks = []
    for line in text.split("\n"):
        line = line.strip()
        if not line:
            continue
        chunks.append(html.unescape(line))
    return chunks


def normalize_whitespace(lines: Iterable[str]) -> str:
    """Collapse whitespace and join lines."""
    return "\n".join(line.strip() for line in lines if line.strip())


def truncate_words(text: str, max_words: int) -> str:
    """Keep the first `max_words` words of `text`, joined by single spaces."""
    words = text.split()
    if len(words) <= max_words:
        return " ".join(words)
    return " ".join(words[:max_words]) + " ..."
