"""Query transformers: rewrite or embed a question before retrieval."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import ClassVar

from codequery.errors import QueryError
from codequery.rag.llm_client import LLMClient
from codequery.rag.question import Question

_SUBQUESTIONS_PROMPT = """\
Your job is to help a query tool find the right context in a {language} code base.

Given the following question, write {num_questions} additional questions that
are closely related to it. The questions will be used to search for relevant
code and documentation, so make them specific: mention identifiers, files or
concepts where the question implies them.

# Requirements
* Respond only with the questions, one per line, no numbering and no markdown.
* Do not answer the questions.

# Question
{question}
"""


class QueryTransformer(ABC):
    """Question -> Question, in the TRANSFORMED state."""

    name: ClassVar[str] = "transform"

    @abstractmethod
    async def transform(self, question: Question) -> Question: ...


class GenerateSubquestions(QueryTransformer):
    """Expand the question with related sub-questions to widen retrieval.

    The rewritten text is the original question followed by the sub-questions,
    one per line.
    """

    name = "generate_subquestions"

    def __init__(self, client: LLMClient, language: str, num_questions: int = 5) -> None:
        self._client = client
        self.language = language
        self.num_questions = num_questions

    async def transform(self, question: Question) -> Question:
        prompt = _SUBQUESTIONS_PROMPT.format(
            language=self.language,
            num_questions=self.num_questions,
            question=question.current,
        )
        response = await self._client.complete(prompt)
        subquestions = [line.strip() for line in response.splitlines() if line.strip()]
        question.transformed("\n".join([question.original, *subquestions]))
        return question


class EmbedQuery(QueryTransformer):
    """Attach the embedding of the current question text."""

    name = "embed"

    def __init__(self, client: LLMClient) -> None:
        self._client = client

    async def transform(self, question: Question) -> Question:
        vectors = await self._client.embed([question.current])
        if len(vectors) != 1:
            raise QueryError(
                f"Embedding returned {len(vectors)} vectors for one question",
                question=question,
            )
        question.embedded(vectors[0])
        return question
