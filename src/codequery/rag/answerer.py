"""Answerer: a grounded answer from exactly the retrieved context."""

from __future__ import annotations

from codequery.rag.llm_client import LLMClient
from codequery.rag.question import Question

_ANSWER_PROMPT = """\
Answer the question based on the context below.

## Constraints
* Do not make up anything that is not in the context.
* Do not use outside knowledge.
* If the context does not contain the answer, say that you do not know.
* Refer to files and identifiers by the names used in the context.

## Question
{question}

## Context
{context}
"""


class SimpleAnswer:
    """One completion per question over the retrieved documents."""

    def __init__(self, client: LLMClient) -> None:
        self._client = client

    def build_prompt(self, question: Question) -> str:
        context = "\n\n".join(
            f"[{doc.path}]\n{doc.text}" for doc in question.documents
        )
        return _ANSWER_PROMPT.format(
            question=question.original,
            context=context or "(no context was retrieved)",
        )

    async def answer(self, question: Question) -> Question:
        response = await self._client.complete(self.build_prompt(question))
        question.answered(response.strip())
        return question
