"""Markdown and plain-text document loading.

Reads files from disk and turns them into :class:`SourceDocument` records for
the indexer. Rendering is not attempted: the body text is the file content
with front matter removed.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterator, Sequence

from ragmark.models import SourceDocument
from ragmark.utils.files import iter_text_paths
from ragmark.utils.text import normalize_whitespace, truncate_words

LOGGER = logging.getLogger(__name__)

SUMMARY_WORDS = 70

PUBLISH_DATE_KEYS = ("publishdate", "date")
EXPIRY_DATE_KEY = "expirydate"


def split_front_matter(content: str) -> tuple[Dict[str, str], str]:
    """Separate a leading ``---`` delimited block of ``key: value`` lines."""
    lines = content.split("\n")
    if not lines or lines[0].strip() != "---":
        return {}, content

    for end, line in enumerate(lines[1:], start=1):
        if line.strip() == "---":
            break
    else:
        return {}, content

    meta: Dict[str, str] = {}
    for line in lines[1:end]:
        key, sep, value = line.partition(":")
        if not sep:
            continue
        meta[key.strip().lower()] = value.strip().strip("\"'")
    return meta, "\n".join(lines[end + 1 :])


def extract_title(meta: Dict[str, str], body: str, path: Path) -> str:
    if meta.get("title"):
        return meta["title"]
    for line in body.split("\n"):
        stripped = line.strip()
        if stripped.startswith("# "):
            return stripped[2:].strip()
    return path.stem


def extract_summary(meta: Dict[str, str], body: str) -> str:
    summary = meta.get("summary") or meta.get("description")
    if summary:
        return summary
    for paragraph in body.split("\n\n"):
        text = normalize_whitespace(
            line for line in paragraph.split("\n") if not line.lstrip().startswith("#")
        )
        if text:
            return truncate_words(text, SUMMARY_WORDS)
    return ""


def parse_front_matter_date(value: str) -> datetime | None:
    """Parse an ISO date or datetime; naive values are taken as UTC."""
    value = value.strip()
    if not value:
        return None
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _front_matter_date(meta: Dict[str, str], key: str, path: Path) -> datetime | None:
    raw = meta.get(key)
    if not raw:
        return None
    parsed = parse_front_matter_date(raw)
    if parsed is None:
        LOGGER.warning("Ignoring unparseable %s %r in %s", key, raw, path)
    return parsed


def is_unpublished(meta: Dict[str, str], path: Path, now: datetime | None = None) -> bool:
    """True for drafts, pages dated in the future and expired pages."""
    if meta.get("draft", "").lower() == "true":
        LOGGER.debug("Skipping draft %s", path)
        return True

    now = now or datetime.now(timezone.utc)
    for key in PUBLISH_DATE_KEYS:
        published = _front_matter_date(meta, key, path)
        if published is not None:
            if published > now:
                LOGGER.debug("Skipping future page %s (%s)", path, published)
                return True
            break

    expires = _front_matter_date(meta, EXPIRY_DATE_KEY, path)
    if expires is not None and expires <= now:
        LOGGER.debug("Skipping expired page %s (%s)", path, expires)
        return True
    return False


def load_document(path: Path, *, now: datetime | None = None) -> SourceDocument | None:
    """Read a document from disk; drafts, future and expired pages return None."""
    content = path.read_text(encoding="utf-8", errors="replace")
    meta, body = split_front_matter(content)
    if is_unpublished(meta, path, now):
        return None

    return SourceDocument(
        path=str(path),
        mtime=path.stat().st_mtime,
        text=body,
        title=extract_title(meta, body, path),
        summary=extract_summary(meta, body),
    )


class DirectoryWalker:
    """Restartable, path-ordered sequence of documents under the given roots.

    Each iteration rescans the file system, so one walker can feed several
    sweeps.
    """

    def __init__(self, roots: Sequence[Path]) -> None:
        self.roots = [Path(root) for root in roots]

    def paths(self) -> list[Path]:
        return sorted(iter_text_paths(self.roots))

    def __iter__(self) -> Iterator[SourceDocument]:
        for path in self.paths():
            try:
                document = load_document(path)
            except OSError as exc:
                LOGGER.error("Failed to read %s: %s", path, exc)
                continue
            if document is not None:
                yield document
