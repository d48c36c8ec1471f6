"""Setup shared by the index, query and evaluate commands."""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path

import typer
from loguru import logger
from rich.console import Console

from codequery.cli.errors import (
    err_config,
    err_no_api_key,
    err_path_not_found,
    err_store,
    err_store_unavailable,
    err_unsupported_language,
    warn_failures,
)
from codequery.config import CodequeryConfig, ConfigError, load_config
from codequery.context import RunContext, build_context
from codequery.errors import LoaderError, StoreError, StoreUnavailableError
from codequery.ingest.indexer import IngestSettings, run_ingestion
from codequery.ingest.languages import SupportedLanguage
from codequery.ingest.models import RunStats
from codequery.rag.llm_client import api_key_env, provider_of, validate_api_key

console = Console()

_LOG_FORMAT = "<level>{level: <8}</level> {message}"


def configure_logging(verbose: bool) -> None:
    """Send loguru output to stderr: DEBUG with --verbose, WARNING otherwise."""
    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if verbose else "WARNING", format=_LOG_FORMAT)


def require_path(path: Path) -> None:
    if not path.exists():
        console.print(err_path_not_found(str(path)))
        raise typer.Exit(1)


def open_context(
    language: str, db: Path | None, *, use_cache: bool = True
) -> tuple[CodequeryConfig, RunContext]:
    """Load config, check API keys and open store + cache. Exits 1 on failure."""
    try:
        cfg = load_config()
    except ConfigError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1)

    try:
        lang = SupportedLanguage.from_name(language)
    except ValueError as exc:
        console.print(err_unsupported_language(str(exc)))
        raise typer.Exit(1)

    models = cfg.models
    for model in (models.prompt_model, models.answer_model, models.embedding_model):
        try:
            validate_api_key(model)
        except EnvironmentError:
            console.print(err_no_api_key(provider_of(model), api_key_env(model) or ""))
            raise typer.Exit(1)

    db_path = db if db is not None else Path(cfg.store.path)
    try:
        context = build_context(cfg, lang, use_cache=use_cache, db_path=db_path)
    except StoreUnavailableError as exc:
        console.print(err_store_unavailable(str(db_path), str(exc)))
        raise typer.Exit(1)
    except ConfigError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1)
    return cfg, context


def index(cfg: CodequeryConfig, context: RunContext, path: Path) -> RunStats:
    """Run ingestion for *path* and print the run summary. Exits 1 on fatal errors."""
    settings = IngestSettings.from_config(cfg, path, context.language)
    try:
        with console.status(f"Indexing {path}…"):
            stats = asyncio.run(run_ingestion(settings, context))
    except LoaderError as exc:
        console.print(f"[red]Error:[/] {exc}")
        raise typer.Exit(1)
    except StoreError as exc:
        console.print(err_store(str(exc)))
        raise typer.Exit(1)

    print_stats(stats)
    return stats


def print_stats(stats: RunStats) -> None:
    console.print(
        f"[green]✓[/] {stats.items_loaded} loaded · {stats.items_cached} cached · "
        f"{stats.items_empty} empty · {stats.chunks} chunks · {stats.stored} stored"
    )
    if stats.failed:
        by_stage = ", ".join(f"{stage}: {n}" for stage, n in sorted(stats.failures_by_stage.items()))
        console.print(
            f"[red]✗[/] {stats.items_failed} items failed · {stats.failed} failures ({by_stage})"
        )
        console.print(warn_failures(stats.items_failed))
