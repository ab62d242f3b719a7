"""Application configuration defaults."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from ragmark.embedding.encoder import DEFAULT_MODEL
from ragmark.embedding.ollama import DEFAULT_OLLAMA_MODEL, DEFAULT_OLLAMA_URL

Backend = Literal["sentence-transformers", "ollama"]


def _get_default_db_path() -> Path:
    """Prefer a local data/ database when running from a checkout."""
    local_db = Path("data/ragmark.db")
    if local_db.exists():
        return local_db
    return Path.home() / ".ragmark" / "ragmark.db"


@dataclass(slots=True)
class AppConfig:
    db_path: Path | None = None
    backend: Backend = "sentence-transformers"
    model_name: str | None = None
    ollama_url: str = DEFAULT_OLLAMA_URL
    timeout: float = 60.0
    context_window: int = 10
    nearest_limit: int = 10

    def __post_init__(self) -> None:
        if self.db_path is None:
            self.db_path = _get_default_db_path()
        if self.model_name is None:
            self.model_name = (
                DEFAULT_OLLAMA_MODEL if self.backend == "ollama" else DEFAULT_MODEL
            )

    def resolve_db_path(self, base_dir: Path | None = None) -> Path:
        if self.db_path is None:
            self.db_path = _get_default_db_path()
        if Path(self.db_path).is_absolute() or base_dir is None:
            return Path(self.db_path)
        return base_dir / self.db_path
