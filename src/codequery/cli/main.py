"""codequery CLI entry point."""

from __future__ import annotations

import importlib.metadata
from typing import Annotated

import typer

from codequery.cli.common import configure_logging
from codequery.cli.evaluate import evaluate_cmd
from codequery.cli.index import index_cmd
from codequery.cli.query import query_cmd


def _installed_version() -> str:
    try:
        return importlib.metadata.version("codequery")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"codequery {_installed_version()}")
        raise typer.Exit()


app = typer.Typer(
    name="codequery",
    help=(
        "codequery: ask questions about a code base.\n\n"
        "  codequery index     Index code and markdown into the vector store.\n"
        "  codequery query     Answer a question from the index.\n"
        "  codequery evaluate  Answer a question set and write a RAGAS dataset."
    ),
    add_completion=False,
)


@app.callback()
def main_callback(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Log pipeline progress to stderr."),
    ] = False,
) -> None:
    """codequery: ask questions about a code base."""
    configure_logging(verbose)


app.command("index")(index_cmd)
app.command("query")(query_cmd)
app.command("evaluate")(evaluate_cmd)


@app.command("version")
def version_cmd() -> None:
    """Show the installed codequery version."""
    typer.echo(f"codequery {_installed_version()}")


if __name__ == "__main__":
    app()
