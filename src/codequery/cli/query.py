"""codequery query: answer a question about an indexed directory."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Annotated

import typer
from rich.markdown import Markdown

from codequery.cli.common import console, index, open_context, require_path
from codequery.errors import QueryError
from codequery.rag.pipeline import build_query_pipeline


def query_cmd(
    query: Annotated[str, typer.Argument(help="The question to answer.")],
    language: Annotated[
        str,
        typer.Option("--language", "-l", help="Language of the indexed code."),
    ],
    path: Annotated[
        Path,
        typer.Option("--path", "-p", help="Directory to index before answering."),
    ] = Path("./"),
    skip_index: Annotated[
        bool,
        typer.Option("--skip-index", help="Answer from the existing index only."),
    ] = False,
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Vector store file (default: store.path from config)."),
    ] = None,
) -> None:
    """Index PATH (cheap when nothing changed), then answer QUERY from it."""
    if not skip_index:
        require_path(path)
    cfg, context = open_context(language, db)
    try:
        if not skip_index:
            index(cfg, context, path)

        pipeline = build_query_pipeline(context, top_k=cfg.retrieval.top_k)
        try:
            with console.status("Answering…"):
                question = asyncio.run(pipeline.query(query))
        except QueryError as exc:
            console.print(f"[red]✗ No answer:[/] {exc}")
            raise typer.Exit(1)

        console.print(Markdown(question.answer or ""))
        if question.documents:
            sources = sorted({doc.path for doc in question.documents})
            console.print("\n[dim]Sources: " + ", ".join(sources) + "[/]")
    finally:
        context.close()
