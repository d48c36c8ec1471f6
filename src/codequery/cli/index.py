"""codequery index: index code and markdown under a directory."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer

from codequery.cli.common import index, open_context, require_path


def index_cmd(
    language: Annotated[
        str,
        typer.Option("--language", "-l", help="Language of the code to index (e.g. python, rust)."),
    ],
    path: Annotated[
        Path,
        typer.Option("--path", "-p", help="Directory to index."),
    ] = Path("./"),
    no_cache: Annotated[
        bool,
        typer.Option("--no-cache", help="Index every file, even ones indexed before."),
    ] = False,
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Vector store file (default: store.path from config)."),
    ] = None,
) -> None:
    """Index a directory into the vector store. Unchanged files are skipped."""
    require_path(path)
    cfg, context = open_context(language, db, use_cache=not no_cache)
    try:
        index(cfg, context, path)
    finally:
        context.close()
