"""codequery evaluate: index, answer a question set and write a RAGAS dataset.

The collection is deleted and rebuilt first, so every evaluation starts from
the same index (pass --keep-collection to reuse it).
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Annotated

import typer

from codequery.cli.common import console, index, open_context, require_path
from codequery.cli.errors import err_dataset, err_no_questions, err_output_unwritable
from codequery.errors import DatasetError, QueryError
from codequery.rag import question_generation
from codequery.rag.evaluator import EvaluationDataset, RagasEvaluator
from codequery.rag.pipeline import build_query_pipeline


def evaluate_cmd(
    language: Annotated[
        str,
        typer.Option("--language", "-l", help="Language of the code to index."),
    ],
    output: Annotated[
        Path,
        typer.Option("--output", "-o", help="File to write the results to."),
    ],
    questions: Annotated[
        list[str] | None,
        typer.Argument(help="Questions to evaluate (or use --file)."),
    ] = None,
    path: Annotated[
        Path,
        typer.Option("--path", "-p", help="Directory to index."),
    ] = Path("./"),
    file: Annotated[
        Path | None,
        typer.Option("--file", "-f", help="Dataset JSON with questions and ground truths."),
    ] = None,
    record_ground_truth: Annotated[
        bool,
        typer.Option("--record-ground-truth", "-r", help="Record the answers as ground truth."),
    ] = False,
    generate_questions: Annotated[
        bool,
        typer.Option(
            "--generate-questions", "-g", help="Generate a question set instead of evaluating."
        ),
    ] = False,
    num_questions: Annotated[
        int,
        typer.Option("--num-questions", "-n", help="Questions to generate with -g."),
    ] = 100,
    keep_collection: Annotated[
        bool,
        typer.Option("--keep-collection", help="Reuse the existing collection."),
    ] = False,
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Vector store file (default: store.path from config)."),
    ] = None,
) -> None:
    """Evaluate retrieval and answers over PATH; write one JSON entry per question."""
    dataset: EvaluationDataset | None = None
    if not generate_questions:
        dataset = _load_dataset(file, questions or [])

    require_path(path)
    cfg, context = open_context(language, db)
    try:
        if not keep_collection:
            context.store.delete_collection(context.collection)
            if context.cache is not None:
                context.cache.clear()
        index(cfg, context, path)

        if generate_questions:
            pipeline = build_query_pipeline(context, top_k=cfg.retrieval.top_k)
            try:
                with console.status("Generating questions…"):
                    generated = asyncio.run(
                        question_generation.generate_questions(
                            pipeline,
                            path.resolve().name,
                            context.language.value,
                            num_questions,
                        )
                    )
            except QueryError as exc:
                console.print(f"[red]✗ Question generation failed:[/] {exc}")
                raise typer.Exit(1)
            _write(output, lambda: question_generation.write_questions(generated, output))
            console.print(f"[green]✓[/] {len(generated)} questions written to {output}")
            return

        evaluator = RagasEvaluator.from_prepared_questions(dataset)
        pipeline = build_query_pipeline(context, top_k=cfg.retrieval.top_k, evaluator=evaluator)
        with console.status(f"Answering {len(dataset)} questions…"):
            answered = asyncio.run(pipeline.query_all(evaluator.questions()))

        if record_ground_truth:
            evaluator.record_answers_as_ground_truth()
        _write(output, lambda: evaluator.dataset.write(output))

        failed = sum(1 for q in answered if q.error)
        console.print(
            f"[green]✓[/] {len(answered) - failed} answered, {failed} failed; "
            f"results written to {output}"
        )
        for q in answered:
            if q.error:
                console.print(f"  [red]✗[/] {q.original}: {q.error}")
    finally:
        context.close()


def _load_dataset(file: Path | None, questions: list[str]) -> EvaluationDataset:
    if file is not None and questions:
        console.print("[red]Error:[/] Pass either --file or questions, not both.")
        raise typer.Exit(1)
    try:
        if file is not None:
            dataset = EvaluationDataset.from_file(file)
        else:
            dataset = EvaluationDataset.from_questions(questions)
    except DatasetError as exc:
        source = str(file) if file is not None else "command line"
        console.print(err_dataset(source, str(exc)))
        raise typer.Exit(1)
    if not len(dataset):
        console.print(err_no_questions())
        raise typer.Exit(1)
    return dataset


def _write(output: Path, write) -> None:
    try:
        write()
    except OSError as exc:
        console.print(err_output_unwritable(str(output), str(exc)))
        raise typer.Exit(1)
