"""Command line interface for ragmark."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List

import typer
from rich.console import Console
from rich.table import Table

from ragmark.config import AppConfig
from ragmark.embedding.encoder import Embedder, EmbeddingConfig, EmbeddingModel
from ragmark.embedding.ollama import OllamaEmbedder
from ragmark.errors import RagmarkError
from ragmark.index.indexer import Indexer
from ragmark.index.retriever import Retriever
from ragmark.index.storage import SQLiteStore
from ragmark.ingestion.text_loader import DirectoryWalker
from ragmark.prompts import chat_prompt


console = Console()
app = typer.Typer(help="ragmark - keyword and semantic retrieval over document text")


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="[%(levelname)s] %(message)s")


def _ensure_db_parent(db_path: Path) -> None:
    db_path.parent.mkdir(parents=True, exist_ok=True)


def _build_embedder(config: AppConfig) -> Embedder:
    if config.backend == "ollama":
        return OllamaEmbedder(config.model_name, base_url=config.ollama_url, timeout=config.timeout)
    return EmbeddingModel(EmbeddingConfig(model_name=config.model_name))


def _make_config(db: Path | None, backend: str, model: str | None, ollama_url: str) -> AppConfig:
    if backend not in ("sentence-transformers", "ollama"):
        raise typer.BadParameter(f"Unknown backend: {backend}")
    return AppConfig(
        db_path=db if db is not None else AppConfig().db_path,
        backend=backend,
        model_name=model,
        ollama_url=ollama_url,
    )


def _open_existing_store(config: AppConfig) -> SQLiteStore:
    resolved_db = config.resolve_db_path(Path.cwd())
    if not resolved_db.exists():
        raise typer.BadParameter(f"Database not found: {resolved_db}")
    return SQLiteStore(resolved_db)


@app.command()
def index(
    inputs: List[Path] = typer.Argument(
        ..., help="Directories or files with markdown/text to index.", resolve_path=True
    ),
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
    backend: str = typer.Option(
        "sentence-transformers", help="Embedding backend: sentence-transformers or ollama"
    ),
    model: str = typer.Option(None, help="Embedding model name"),
    ollama_url: str = typer.Option(AppConfig().ollama_url, "--ollama-url", help="Ollama base URL"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Index documents whose source changed since the last run."""
    _setup_logging(verbose)
    config = _make_config(db, backend, model, ollama_url)

    resolved_db = config.resolve_db_path(Path.cwd())
    _ensure_db_parent(resolved_db)

    walker = DirectoryWalker(inputs)
    if not walker.paths():
        console.print("[yellow]No documents found.[/yellow]")
        return

    try:
        embedder = _build_embedder(config)
        store = SQLiteStore(resolved_db)
    except RagmarkError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1)
    try:
        console.print(f"Indexing into [bold]{resolved_db}[/bold]...")
        stats = Indexer(embedder, store).index(walker)
    finally:
        store.close()

    console.print(
        f"Inserted: {stats.inserted}, updated: {stats.updated}, "
        f"skipped: {stats.skipped}, failed: {stats.failed}"
    )
    for path, error in stats.errors.items():
        console.print(f"[red]{path}[/red]: {error}")


@app.command()
def context(
    query: str = typer.Argument(..., help="Query text"),
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
    backend: str = typer.Option(
        "sentence-transformers", help="Embedding backend: sentence-transformers or ollama"
    ),
    model: str = typer.Option(None, help="Embedding model name"),
    ollama_url: str = typer.Option(AppConfig().ollama_url, "--ollama-url", help="Ollama base URL"),
    window: int = typer.Option(
        AppConfig().context_window, help="Neighbouring chunks to include on each side"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Show the context retrieved for a query."""
    _setup_logging(verbose)
    config = _make_config(db, backend, model, ollama_url)
    store = _open_existing_store(config)
    try:
        retriever = Retriever(
            _build_embedder(config), store, context_window=window, limit=config.nearest_limit
        )
        chunks = retriever.get_context(query)
    except RagmarkError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1)
    finally:
        store.close()

    if not chunks:
        console.print("[yellow]No context found.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Document")
    table.add_column("Chunk")
    table.add_column("Text")
    for chunk in chunks:
        table.add_row(chunk.path, str(chunk.index), chunk.text[:180])
    console.print(table)


@app.command()
def search(
    query: str = typer.Argument(..., help="Full-text query"),
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
    limit: int = typer.Option(10, help="Number of results to display"),
    raw: bool = typer.Option(False, "--raw", help="Pass the query to FTS5 unchanged"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Keyword search over document titles, text and summaries."""
    _setup_logging(verbose)
    config = AppConfig(db_path=db if db is not None else AppConfig().db_path)
    store = _open_existing_store(config)
    try:
        hits = store.search_fulltext(query, limit=limit, raw=raw)
    except RagmarkError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1)
    finally:
        store.close()

    if not hits:
        console.print("[yellow]No matches found.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Rank")
    table.add_column("Document")
    table.add_column("Title")
    table.add_column("Summary")
    for hit in hits:
        table.add_row(f"{hit.rank:.4f}", hit.path, hit.title, hit.summary[:120])
    console.print(table)


@app.command()
def prompt(
    question: str = typer.Argument(..., help="Question to ask"),
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
    backend: str = typer.Option(
        "sentence-transformers", help="Embedding backend: sentence-transformers or ollama"
    ),
    model: str = typer.Option(None, help="Embedding model name"),
    ollama_url: str = typer.Option(AppConfig().ollama_url, "--ollama-url", help="Ollama base URL"),
    no_context: bool = typer.Option(False, "--no-context", help="Skip context retrieval"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Print the chat prompt that would be sent to the language model."""
    _setup_logging(verbose)
    chunks = []
    if not no_context:
        config = _make_config(db, backend, model, ollama_url)
        store = _open_existing_store(config)
        try:
            retriever = Retriever(
                _build_embedder(config),
                store,
                context_window=config.context_window,
                limit=config.nearest_limit,
            )
            chunks = retriever.get_context(question)
        except RagmarkError as exc:
            console.print(f"[red]{exc}[/red]")
            raise typer.Exit(code=1)
        finally:
            store.close()
    console.print(chat_prompt(chunks, question), markup=False, highlight=False, soft_wrap=True)
