"""Prompt templates for the downstream language model."""

from __future__ import annotations

from typing import Sequence

from ragmark.models import Chunk

CHAT_PREAMBLE = (
    "Use the following pieces of context to answer the question at the end. "
    "If you don't know the answer, just say that you don't know, "
    "don't try to make up an answer.\n"
)


def chat_prompt(context: Sequence[Chunk], question: str) -> str:
    parts = [CHAT_PREAMBLE]
    for chunk in context:
        parts.append(f"Context from {chunk.path}:\n{chunk.text}\n\n")
    parts.append(f"Question: {question}\nSuccinct Answer: ")
    return "".join(parts)
