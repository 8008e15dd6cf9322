"""CLI entrypoint for QuickRAG."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import NoReturn, Optional

import typer

from quickrag.core.config import DEFAULT_CONFIG_PATH, Settings, write_default_config
from quickrag.core.errors import QuickRAGError
from quickrag.core.logging import configure_logging
from quickrag.core.metrics import render_metrics
from quickrag.db.store import SQLiteUnitStore
from quickrag.ingest.embeddings import create_provider
from quickrag.ingest.pipeline import IndexPipeline
from quickrag.retrieval.search import QueryService

app = typer.Typer(name="quickrag", help="Index local documents for semantic search", no_args_is_help=True)


def _fail(message: str) -> NoReturn:
    typer.echo(f"Error: {message}", err=True)
    raise typer.Exit(code=1)


def _load_settings(config: Optional[Path], **overrides: object) -> Settings:
    try:
        return Settings.from_yaml(config).with_overrides(**overrides)
    except QuickRAGError as exc:
        _fail(str(exc))


@app.command()
def init(
    path: Path = typer.Option(DEFAULT_CONFIG_PATH, "--path", help="Where to write the config file"),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing config file"),
) -> None:
    """Write a config file populated with the default settings."""
    target = path.expanduser()
    if target.exists() and not force:
        _fail(f"Config file already exists: {target} (use --force to overwrite)")
    written = write_default_config(target)
    typer.echo(json.dumps({"config": str(written)}, indent=2))


@app.command()
def index(
    directory: Path = typer.Argument(..., help="Directory of documents to index"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Index database path"),
    clear: bool = typer.Option(False, "--clear", help="Rebuild the index from scratch"),
    provider: Optional[str] = typer.Option(None, "--provider", help="hashed, openai, voyageai or ollama"),
    model: Optional[str] = typer.Option(None, "--model", help="Embedding model name"),
    api_key: Optional[str] = typer.Option(None, "--api-key", help="API key for the embedding service"),
    base_url: Optional[str] = typer.Option(None, "--base-url", help="Override the embedding service URL"),
    chunk_size: Optional[int] = typer.Option(None, "--chunk-size", help="Target unit size in tokens"),
    chunk_overlap: Optional[int] = typer.Option(None, "--chunk-overlap", help="Overlap between units"),
    strategy: Optional[str] = typer.Option(None, "--strategy", help="recursive-token or simple"),
    config: Optional[Path] = typer.Option(None, "--config", help="Config file path"),
    json_logs: bool = typer.Option(False, "--json-logs", help="Emit logs as JSON lines"),
    metrics: bool = typer.Option(False, "--metrics", help="Print Prometheus metrics after the run"),
) -> None:
    """Index a directory, embedding only new or changed content."""
    configure_logging(use_json=json_logs)
    settings = _load_settings(
        config,
        db_path=output,
        provider=provider,
        model=model,
        api_key=api_key,
        base_url=base_url,
        chunk_size=chunk_size,
        chunk_overlap=chunk_overlap,
        chunk_strategy=strategy,
    )
    try:
        embedder = create_provider(settings)
        store = SQLiteUnitStore(settings.db_path)
    except QuickRAGError as exc:
        _fail(str(exc))
    try:
        pipeline = IndexPipeline(store, embedder, settings)
        report = asyncio.run(pipeline.run(directory, clear=clear))
    except (QuickRAGError, FileNotFoundError) as exc:
        _fail(str(exc))
    finally:
        store.close()
        embedder.close()
    payload = {"database": str(settings.db_path), **report.to_dict()}
    typer.echo(json.dumps(payload, indent=2))
    if metrics:
        typer.echo(render_metrics(), err=True)


@app.command()
def query(
    database: Path = typer.Argument(..., help="Index database path"),
    text: str = typer.Argument(..., help="Query text"),
    top_k: int = typer.Option(5, "--top-k", "-k", min=1, help="Number of results to return"),
    provider: Optional[str] = typer.Option(None, "--provider", help="Provider used to build the index"),
    model: Optional[str] = typer.Option(None, "--model", help="Model used to build the index"),
    api_key: Optional[str] = typer.Option(None, "--api-key", help="API key for the embedding service"),
    base_url: Optional[str] = typer.Option(None, "--base-url", help="Override the embedding service URL"),
    config: Optional[Path] = typer.Option(None, "--config", help="Config file path"),
) -> None:
    """Search an index for the units closest to a query."""
    configure_logging()
    settings = _load_settings(
        config, db_path=database, provider=provider, model=model, api_key=api_key, base_url=base_url
    )
    try:
        embedder = create_provider(settings)
        store = SQLiteUnitStore(settings.db_path, must_exist=True)
    except QuickRAGError as exc:
        _fail(str(exc))
    try:
        result = asyncio.run(QueryService(store, embedder).query(text, top_k=top_k))
    except (QuickRAGError, ValueError) as exc:
        _fail(str(exc))
    finally:
        store.close()
        embedder.close()
    typer.echo(json.dumps(result, indent=2))


@app.command()
def stats(
    database: Path = typer.Argument(..., help="Index database path"),
) -> None:
    """Show how many units each indexed file contributes."""
    try:
        store = SQLiteUnitStore(database.expanduser(), must_exist=True)
    except QuickRAGError as exc:
        _fail(str(exc))
    try:
        files = store.file_stats()
        total = store.count_units()
        dimensions = store.vector_dimensions()
    except QuickRAGError as exc:
        _fail(str(exc))
    finally:
        store.close()
    payload = {
        "database": str(database),
        "files": len(files),
        "units": total,
        "dimensions": dimensions,
        "per_file": [
            {
                "file_path": item.file_path,
                "units": item.units,
                "mtime": item.mtime,
                "indexed_at": item.indexed_at,
            }
            for item in files
        ],
    }
    typer.echo(json.dumps(payload, indent=2))


if __name__ == "__main__":
    app()
