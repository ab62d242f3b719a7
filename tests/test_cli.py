"""Tests for CLI commands."""

from __future__ import annotations

import logging
from pathlib import Path
from unittest.mock import MagicMock, patch

import numpy as np
import pytest
from typer.testing import CliRunner

from ragmark.cli import _build_embedder, _ensure_db_parent, _setup_logging, app
from ragmark.config import AppConfig
from ragmark.embedding.ollama import OllamaEmbedder
from ragmark.errors import EmbeddingError
from ragmark.index.storage import SQLiteStore


runner = CliRunner()


class FakeEmbedder:
    """Maps each text to a vector derived from its length."""

    def embed(self, texts):
        return np.array([[len(t), 1.0, 0.0] for t in texts], dtype="float32")

    def embed_query(self, text):
        return self.embed([text])[0]


@pytest.fixture
def corpus(tmp_path: Path) -> Path:
    docs = tmp_path / "docs"
    docs.mkdir()
    (docs / "fish.md").write_text("---\ntitle: Fish\n---\nsalmon\nswim upstream\n")
    (docs / "birds.md").write_text("# Birds\n\nsparrows fly south\n")
    return docs


@pytest.fixture
def indexed_db(tmp_path: Path, corpus: Path) -> Path:
    db_path = tmp_path / "index.db"
    with patch("ragmark.cli._build_embedder", return_value=FakeEmbedder()):
        result = runner.invoke(app, ["index", str(corpus), "--db", str(db_path)])
    assert result.exit_code == 0
    return db_path


class TestSetupLogging:
    """Tests for _setup_logging helper."""

    def test_setup_logging_verbose(self) -> None:
        """Verbose mode sets DEBUG level."""
        with patch("ragmark.cli.logging.basicConfig") as mock_config:
            _setup_logging(verbose=True)
            assert mock_config.call_args[1]["level"] == logging.DEBUG

    def test_setup_logging_normal(self) -> None:
        """Normal mode sets INFO level."""
        with patch("ragmark.cli.logging.basicConfig") as mock_config:
            _setup_logging(verbose=False)
            assert mock_config.call_args[1]["level"] == logging.INFO


class TestEnsureDbParent:
    def test_creates_directory(self, tmp_path: Path) -> None:
        db_path = tmp_path / "subdir" / "test.db"
        _ensure_db_parent(db_path)
        assert db_path.parent.exists()


class TestBuildEmbedder:
    """Tests for backend selection."""

    def test_ollama_backend(self) -> None:
        config = AppConfig(db_path=Path("/x.db"), backend="ollama", ollama_url="http://host:1")
        embedder = _build_embedder(config)
        assert isinstance(embedder, OllamaEmbedder)
        assert embedder.model == "nomic-embed-text"
        assert embedder.base_url == "http://host:1"
        embedder.close()

    @patch("ragmark.cli.EmbeddingModel")
    def test_sentence_transformers_backend(self, mock_model: MagicMock) -> None:
        config = AppConfig(db_path=Path("/x.db"), model_name="tiny")
        _build_embedder(config)
        assert mock_model.call_args[0][0].model_name == "tiny"


class TestIndexCommand:
    """Tests for the index command."""

    def test_index_no_documents(self, tmp_path: Path) -> None:
        empty_dir = tmp_path / "empty"
        empty_dir.mkdir()

        result = runner.invoke(app, ["index", str(empty_dir), "--db", str(tmp_path / "t.db")])

        assert result.exit_code == 0
        assert "No documents found" in result.stdout

    def test_index_writes_store(self, tmp_path: Path, corpus: Path) -> None:
        db_path = tmp_path / "nested" / "index.db"
        with patch("ragmark.cli._build_embedder", return_value=FakeEmbedder()):
            result = runner.invoke(app, ["index", str(corpus), "--db", str(db_path), "-v"])

        assert result.exit_code == 0
        assert "Inserted: 2" in result.stdout
        store = SQLiteStore(db_path)
        fish = str(corpus / "fish.md")
        assert [c.text for c in store.select_chunks(fish)] == ["salmon", "swim upstream"]
        assert store.get_fulltext(fish).title == "Fish"
        store.close()

    def test_second_run_skips(self, indexed_db: Path, corpus: Path) -> None:
        with patch("ragmark.cli._build_embedder", return_value=FakeEmbedder()):
            result = runner.invoke(app, ["index", str(corpus), "--db", str(indexed_db)])

        assert result.exit_code == 0
        assert "skipped: 2" in result.stdout

    def test_reports_failures(self, tmp_path: Path, corpus: Path) -> None:
        embedder = MagicMock()
        embedder.embed.side_effect = EmbeddingError("backend down")
        with patch("ragmark.cli._build_embedder", return_value=embedder):
            result = runner.invoke(app, ["index", str(corpus), "--db", str(tmp_path / "t.db")])

        assert result.exit_code == 0
        assert "failed: 2" in result.stdout
        assert "down" in result.stdout

    def test_model_load_failure_exits(self, tmp_path: Path, corpus: Path) -> None:
        with patch(
            "ragmark.cli._build_embedder", side_effect=EmbeddingError("failed to load model x")
        ):
            result = runner.invoke(app, ["index", str(corpus), "--db", str(tmp_path / "t.db")])

        assert result.exit_code == 1
        assert "failed to load model" in result.stdout
        assert not isinstance(result.exception, EmbeddingError)

    def test_unknown_backend(self, tmp_path: Path, corpus: Path) -> None:
        result = runner.invoke(
            app, ["index", str(corpus), "--db", str(tmp_path / "t.db"), "--backend", "nope"]
        )
        assert result.exit_code != 0


class TestContextCommand:
    """Tests for the context command."""

    def test_database_not_found(self, tmp_path: Path) -> None:
        result = runner.invoke(app, ["context", "q", "--db", str(tmp_path / "missing.db")])
        assert result.exit_code != 0

    def test_shows_context(self, indexed_db: Path) -> None:
        with patch("ragmark.cli._build_embedder", return_value=FakeEmbedder()):
            result = runner.invoke(app, ["context", "salmon", "--db", str(indexed_db)])

        assert result.exit_code == 0
        assert "salmon" in result.stdout

    def test_empty_database(self, tmp_path: Path) -> None:
        db_path = tmp_path / "empty.db"
        SQLiteStore(db_path).close()
        with patch("ragmark.cli._build_embedder", return_value=FakeEmbedder()):
            result = runner.invoke(app, ["context", "anything", "--db", str(db_path)])

        assert result.exit_code == 0
        assert "No context found" in result.stdout

    def test_empty_query_fails(self, indexed_db: Path) -> None:
        with patch("ragmark.cli._build_embedder", return_value=FakeEmbedder()):
            result = runner.invoke(app, ["context", "", "--db", str(indexed_db)])

        assert result.exit_code == 1
        assert "query must not be empty" in result.stdout


class TestSearchCommand:
    """Tests for the keyword search command."""

    def test_search_with_results(self, indexed_db: Path) -> None:
        result = runner.invoke(app, ["search", "sparrows", "--db", str(indexed_db)])

        assert result.exit_code == 0
        assert "Birds" in result.stdout

    def test_search_no_results(self, indexed_db: Path) -> None:
        result = runner.invoke(app, ["search", "elephant", "--db", str(indexed_db)])

        assert result.exit_code == 0
        assert "No matches found" in result.stdout

    def test_search_punctuated_query(self, indexed_db: Path) -> None:
        result = runner.invoke(app, ["search", "sparrows, south?", "--db", str(indexed_db)])

        assert result.exit_code == 0
        assert "Birds" in result.stdout

    def test_search_raw_bad_query(self, indexed_db: Path) -> None:
        result = runner.invoke(app, ["search", '"open', "--raw", "--db", str(indexed_db)])
        assert result.exit_code == 1


class TestPromptCommand:
    """Tests for the prompt command."""

    def test_prompt_without_context(self) -> None:
        result = runner.invoke(app, ["prompt", "What is up?", "--no-context"])

        assert result.exit_code == 0
        assert "Question: What is up?" in result.stdout
        assert "Context from" not in result.stdout

    def test_prompt_with_context(self, indexed_db: Path) -> None:
        with patch("ragmark.cli._build_embedder", return_value=FakeEmbedder()):
            result = runner.invoke(app, ["prompt", "salmon", "--db", str(indexed_db)])

        assert result.exit_code == 0
        assert "Context from" in result.stdout
        assert "Question: salmon" in result.stdout
