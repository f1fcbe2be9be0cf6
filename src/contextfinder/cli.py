"""Command line interface for ContextFinder."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from contextfinder.catalog.resolver import NO_MATCH_MESSAGE, CatalogResolver, find_entry
from contextfinder.catalog.store import Catalog, load_catalog
from contextfinder.config import AppConfig
from contextfinder.embedding.cache import EmbeddingCache, RedisCacheBackend
from contextfinder.embedding.encoder import EmbeddingConfig, EmbeddingModel
from contextfinder.errors import CatalogError, ParseError, VectorStoreError
from contextfinder.generation.answer import GeminiAnswerGenerator
from contextfinder.index.indexer import Indexer
from contextfinder.index.storage import SQLiteVectorStore
from contextfinder.ingestion.fetcher import Fetcher
from contextfinder.pipeline import AnswerPipeline
from contextfinder.retrieval.context import Context
from contextfinder.retrieval.coordinator import RetrievalCoordinator
from contextfinder.retrieval.sources import default_sources


console = Console()
app = typer.Typer(help="ContextFinder - grounded answers from web and catalog search")


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="[%(levelname)s] %(message)s")


def _ensure_db_parent(db_path: Path) -> None:
    db_path.parent.mkdir(parents=True, exist_ok=True)


def _load_catalog(config: AppConfig) -> Catalog:
    path = config.resolve_catalog_path(Path.cwd())
    try:
        return load_catalog(path)
    except (CatalogError, ParseError) as exc:
        raise typer.BadParameter(str(exc)) from exc


def _open_store(config: AppConfig, dimension: int) -> SQLiteVectorStore:
    resolved_db = config.resolve_db_path(Path.cwd())
    _ensure_db_parent(resolved_db)
    try:
        return SQLiteVectorStore(resolved_db, dimension=dimension)
    except VectorStoreError as exc:
        raise typer.BadParameter(str(exc)) from exc


def _build_coordinator(
    config: AppConfig,
    *,
    api_key: str,
    cx_id: str,
) -> tuple[RetrievalCoordinator, SQLiteVectorStore]:
    # Configuration-level failures surface here, before any worker starts.
    catalog = _load_catalog(config)
    embedder = EmbeddingModel(EmbeddingConfig(model_name=config.model_name))
    store = _open_store(config, embedder.dimension)

    backend = RedisCacheBackend.from_url(config.redis_url) if config.redis_url else None
    cache = EmbeddingCache(backend, max_size=config.cache_size)
    indexer = Indexer(
        embedder,
        store,
        cache=cache,
        cache_threshold=config.cache_similarity_threshold,
        chunk_chars=config.chunk_chars,
        overlap=config.overlap,
    )
    fetcher = Fetcher(
        max_retries=config.max_retries,
        retry_delay=config.retry_delay,
        timeout=config.fetch_timeout,
    )
    coordinator = RetrievalCoordinator(
        default_sources(
            api_key,
            cx_id,
            web_results=config.web_results,
            catalog_results=config.catalog_results,
        ),
        fetcher,
        CatalogResolver(fetcher, catalog, threshold=config.match_threshold),
        indexer,
        store,
        max_workers=config.max_workers,
        search_limit=config.search_limit,
        score_threshold=config.score_threshold,
        dedupe_links=config.dedupe_links,
    )
    return coordinator, store


def _print_context(context: Context) -> None:
    if context.is_empty:
        console.print("[yellow]No context retrieved.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("#")
    table.add_column("Title")
    table.add_column("Link")
    table.add_column("Snippet")
    for number, chunk in enumerate(context.chunks, start=1):
        table.add_row(str(number), chunk.title, chunk.link, chunk.text[:180])
    console.print(table)


def _print_sources(context: Context) -> None:
    if context.is_empty:
        return
    console.print("[bold]Sources[/bold]")
    for number, link in enumerate(context.sources, start=1):
        console.print(f"[{number}] {link}", markup=False, highlight=False)


def _config_from_options(
    db: Optional[Path],
    model: str,
    catalog: Path,
    redis_url: Optional[str] = None,
) -> AppConfig:
    return AppConfig(
        db_path=db if db is not None else AppConfig().db_path,
        model_name=model,
        catalog_path=catalog,
        redis_url=redis_url,
    )


@app.command()
def ask(
    query: str = typer.Argument(..., help="Question to answer"),
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
    model: str = typer.Option(AppConfig().model_name, help="Sentence-transformer model name"),
    catalog: Path = typer.Option(AppConfig().catalog_path, "--catalog", help="Catalog JSON file"),
    api_key: str = typer.Option(..., envvar="GOOGLE_API_KEY", help="Custom Search API key"),
    cx_id: str = typer.Option(..., envvar="CX_ID", help="Custom Search engine id"),
    genai_key: str = typer.Option(..., envvar="G_API_KEY", help="Gemini API key"),
    redis_url: Optional[str] = typer.Option(None, envvar="REDIS_URL", help="Redis URL for the embedding cache"),
    show_context: bool = typer.Option(False, "--show-context", help="Print retrieved chunks"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Retrieve context for QUERY and generate a cited answer."""
    _setup_logging(verbose)
    config = _config_from_options(db, model, catalog, redis_url)
    coordinator, store = _build_coordinator(config, api_key=api_key, cx_id=cx_id)
    generator = GeminiAnswerGenerator(genai_key, model=config.generation_model)
    pipeline = AnswerPipeline(coordinator, generator, store)

    try:
        answer = asyncio.run(pipeline.answer(query))
    finally:
        store.close()

    if show_context:
        _print_context(answer.context)
    if not answer.grounded:
        console.print("[yellow]No sources found; the answer is not grounded.[/yellow]")
    console.print(answer.text)
    _print_sources(answer.context)


@app.command()
def retrieve(
    query: str = typer.Argument(..., help="Query text"),
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
    model: str = typer.Option(AppConfig().model_name, help="Sentence-transformer model name"),
    catalog: Path = typer.Option(AppConfig().catalog_path, "--catalog", help="Catalog JSON file"),
    api_key: str = typer.Option(..., envvar="GOOGLE_API_KEY", help="Custom Search API key"),
    cx_id: str = typer.Option(..., envvar="CX_ID", help="Custom Search engine id"),
    redis_url: Optional[str] = typer.Option(None, envvar="REDIS_URL", help="Redis URL for the embedding cache"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Run retrieval only and show the assembled context."""
    _setup_logging(verbose)
    config = _config_from_options(db, model, catalog, redis_url)
    coordinator, store = _build_coordinator(config, api_key=api_key, cx_id=cx_id)
    try:
        report = asyncio.run(coordinator.retrieve(query))
    finally:
        store.close()

    console.print(
        f"Results: {len(report.results)}, scraped: {len(report.documents)}, "
        f"failed: {len(report.failures)}"
    )
    _print_context(report.context)


@app.command()
def resolve(
    title: str = typer.Argument(..., help="Talk title as scraped"),
    speaker: str = typer.Option("", "--speaker", help="Speaker name"),
    catalog: Path = typer.Option(AppConfig().catalog_path, "--catalog", help="Catalog JSON file"),
    threshold: float = typer.Option(AppConfig().match_threshold, help="Minimum similarity (0-100)"),
) -> None:
    """Look a talk up in the catalog."""
    loaded = _load_catalog(AppConfig(catalog_path=catalog))
    entry = find_entry(title, speaker, loaded, threshold=threshold)
    if entry is None:
        console.print(f"[yellow]{NO_MATCH_MESSAGE}[/yellow]")
        raise typer.Exit(code=1)

    console.print(f"[bold]{entry.title}[/bold] - {entry.speaker}")
    console.print(entry.transcript[:500])


@app.command()
def stats(
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
) -> None:
    """Show what the vector store holds."""
    config = AppConfig(db_path=db if db is not None else AppConfig().db_path)
    resolved_db = config.resolve_db_path(Path.cwd())
    if not resolved_db.exists():
        console.print("[yellow]Database not found.[/yellow]")
        return

    try:
        store = SQLiteVectorStore.open_existing(resolved_db)
    except VectorStoreError as exc:
        raise typer.BadParameter(str(exc)) from exc
    try:
        counts = store.get_stats()
    finally:
        store.close()
    console.print(
        f"Documents: {counts['document_count']}, chunks: {counts['chunk_count']}, "
        f"answers: {counts['answer_count']}"
    )
