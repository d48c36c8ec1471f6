"""Query pipeline: transform -> retrieve -> answer, with an optional evaluator tap.

    pipeline = (
        QueryPipeline(concurrency=10)
        .evaluate_with(evaluator)
        .then_transform_query(GenerateSubquestions(client, "python"))
        .then_transform_query(EmbedQuery(client))
        .then_retrieve(SimilarityRetriever(store, "codequery"))
        .then_answer(SimpleAnswer(answer_client))
    )
    answered = await pipeline.query_all(evaluator.questions())

Stages run in registration order. A failure in any stage fails only that
question: ``query`` raises QueryError, ``query_all`` records the error on the
question and carries on.
"""

from __future__ import annotations

import asyncio
from collections import Counter
from typing import TYPE_CHECKING

from loguru import logger

from codequery.errors import DatasetError, PipelineError, QueryError
from codequery.rag.answerer import SimpleAnswer
from codequery.rag.evaluator import RagasEvaluator
from codequery.rag.question import Question
from codequery.rag.retriever import SimilarityRetriever
from codequery.rag.transformers import EmbedQuery, GenerateSubquestions, QueryTransformer

if TYPE_CHECKING:
    from codequery.context import RunContext


class QueryPipeline:
    """Fluent builder and runner for question answering.

    Args:
        concurrency: Maximum questions in flight in ``query_all``.
    """

    def __init__(self, concurrency: int = 10) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        self.concurrency = concurrency
        self._transformers: list[QueryTransformer] = []
        self._retriever: SimilarityRetriever | None = None
        self._answerer: SimpleAnswer | None = None
        self._evaluator: RagasEvaluator | None = None

    def evaluate_with(self, evaluator: RagasEvaluator) -> QueryPipeline:
        self._evaluator = evaluator
        return self

    def then_transform_query(self, transformer: QueryTransformer) -> QueryPipeline:
        self._transformers.append(transformer)
        return self

    def then_retrieve(self, retriever: SimilarityRetriever) -> QueryPipeline:
        self._retriever = retriever
        return self

    def then_answer(self, answerer: SimpleAnswer) -> QueryPipeline:
        self._answerer = answerer
        return self

    async def query(self, question: str | Question) -> Question:
        """Answer one question.

        Raises:
            QueryError: If a stage fails; ``exc.question`` holds the question
                with its ``error`` set.
            PipelineError: If no answerer was configured.
        """
        if self._answerer is None:
            raise PipelineError("QueryPipeline needs an answerer; call then_answer() first")
        if isinstance(question, str):
            question = Question(original=question)

        try:
            await self._run_stages(question)
        except Exception as exc:
            question.error = str(exc) or type(exc).__name__
            logger.warning("Question failed: {!r}: {}", question.original, question.error)
            if self._evaluator is not None:
                self._evaluator.on_failed(question)
            if isinstance(exc, QueryError):
                exc.question = question
                raise
            raise QueryError(f"Query failed: {question.error}", question=question) from exc
        return question

    async def query_all(self, questions: list[str | Question]) -> list[Question]:
        """Answer every question with bounded concurrency.

        The result has one Question per input, in input order; failed
        questions carry their ``error`` instead of an answer.

        Raises:
            DatasetError: If an evaluator is attached and a question repeats.
        """
        if self._evaluator is not None:
            texts = [q.original if isinstance(q, Question) else q for q in questions]
            repeated = [t for t, n in Counter(texts).items() if n > 1]
            if repeated:
                raise DatasetError(f"duplicate question {repeated[0]!r}")
        semaphore = asyncio.Semaphore(self.concurrency)

        async def _one(question: str | Question) -> Question:
            async with semaphore:
                try:
                    return await self.query(question)
                except QueryError as exc:
                    return exc.question

        return list(await asyncio.gather(*(_one(q) for q in questions)))

    async def _run_stages(self, question: Question) -> None:
        for transformer in self._transformers:
            await transformer.transform(question)
            if self._evaluator is not None:
                self._evaluator.on_transformed(question)

        if self._retriever is not None:
            await self._retriever.retrieve(question)
            if self._evaluator is not None:
                self._evaluator.on_retrieved(question)

        await self._answerer.answer(question)
        if self._evaluator is not None:
            self._evaluator.on_answered(question)


def build_query_pipeline(
    context: RunContext,
    *,
    top_k: int = 20,
    evaluator: RagasEvaluator | None = None,
) -> QueryPipeline:
    """The standard chain: sub-questions, embedding, similarity search, answer."""
    pipeline = QueryPipeline(concurrency=context.concurrency)
    if evaluator is not None:
        pipeline.evaluate_with(evaluator)
    return (
        pipeline.then_transform_query(GenerateSubquestions(context.client, context.language.value))
        .then_transform_query(EmbedQuery(context.client))
        .then_retrieve(SimilarityRetriever(context.store, context.collection, top_k=top_k))
        .then_answer(SimpleAnswer(context.answer_client))
    )
