"""codequery rich error messages: what went wrong and what to do about it.

Usage:
    from codequery.cli.errors import err_no_api_key
    console.print(err_no_api_key("openai"))
    raise typer.Exit(1)
"""

from __future__ import annotations


def err_no_api_key(provider: str, env_var: str) -> str:
    """No API key for *provider*.

    Example:
        No API key for 'openai'. Set:  export OPENAI_API_KEY=sk-...
    """
    return (
        f"[red]Error:[/] No API key for '{provider}'.\n"
        f"  Set:  export {env_var}=sk-..."
    )


def err_config(message: str) -> str:
    return (
        f"[red]Error:[/] Invalid configuration.\n"
        f"  {message}\n"
        "  Fix codequery.yaml (or ~/.codequery/config.yaml) and retry."
    )


def err_store_unavailable(db_path: str, reason: str) -> str:
    return (
        f"[red]Error:[/] Cannot open the vector store at '{db_path}'.\n"
        f"  {reason}\n"
        "  Check the path is writable, or pass another one with --db PATH."
    )


def err_store(reason: str) -> str:
    return (
        f"[red]Error:[/] Vector store error: {reason}\n"
        "  If the embedding model changed, set another retrieval.collection\n"
        "  in codequery.yaml or remove the store file and index again."
    )


def err_unsupported_language(message: str) -> str:
    return f"[red]Error:[/] {message}\n  Pass one of them with --language."


def err_path_not_found(path: str) -> str:
    return (
        f"[red]Error:[/] Path not found: '{path}'\n"
        "  Pass the directory to index with --path DIR."
    )


def err_dataset(path: str, reason: str) -> str:
    return (
        f"[red]Error:[/] Cannot load evaluation dataset '{path}'.\n"
        f"  {reason}\n"
        '  Expected a JSON list of {"question": ..., "ground_truth": ...} objects,\n'
        '  a list of strings, or {"questions": [...]}.'
    )


def err_no_questions() -> str:
    return (
        "[red]Error:[/] No questions to evaluate.\n"
        "  Pass questions as arguments, a dataset with --file FILE, "
        "or use --generate-questions."
    )


def err_output_unwritable(path: str, reason: str) -> str:
    return (
        f"[red]Error:[/] Cannot write output file '{path}'.\n"
        f"  {reason}"
    )


def warn_failures(failed: int) -> str:
    return (
        f"[yellow]⚠[/] {failed} item(s) failed and were not fully stored.\n"
        "  Re-run the command to retry them; run with --verbose for details."
    )
