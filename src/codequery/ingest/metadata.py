"""Metadata enrichment: LLM-generated question/answer pairs per chunk.

The generated text is stored in the chunk metadata and becomes part of the
embedding input (see codequery.ingest.embedder), so questions a chunk answers
are matched by questions users ask. The chunk text itself is never touched.
"""

from __future__ import annotations

from abc import abstractmethod
from typing import ClassVar

from codequery.ingest.models import Chunk
from codequery.ingest.stages import Transformer
from codequery.rag.llm_client import LLMClient

QA_CODE_KEY = "Questions and Answers (code)"
QA_TEXT_KEY = "Questions and Answers"

_QA_CODE_PROMPT = """\
You are a code assistant helping to build a search index for a code base.

Given the following code snippet, write {num_questions} questions a developer \
could ask that this snippet answers, each followed by a concise answer. \
Focus on what the code does, how it is used, and what it depends on.

Only use information present in the snippet.

Format:
Q1: <question>
A1: <answer>
...

Code (from {path}):
```
{code}
```
"""

_QA_TEXT_PROMPT = """\
You are a documentation assistant helping to build a search index.

Given the following text, write {num_questions} questions a reader could ask \
that this text answers, each followed by a concise answer.

Only use information present in the text.

Format:
Q1: <question>
A1: <answer>
...

Text (from {path}):
{text}
"""


class _MetadataQA(Transformer):
    """One completion per chunk; the response is stored under ``metadata_key``."""

    name: ClassVar[str] = "metadata"
    metadata_key: ClassVar[str]

    def __init__(self, client: LLMClient, num_questions: int = 5) -> None:
        if num_questions < 1:
            raise ValueError("num_questions must be >= 1")
        self._client = client
        self.num_questions = num_questions

    async def transform(self, chunk: Chunk) -> Chunk:
        response = await self._client.complete(self.prompt(chunk))
        chunk.metadata[self.metadata_key] = response.strip()
        return chunk

    @abstractmethod
    def prompt(self, chunk: Chunk) -> str:
        """The completion prompt for *chunk*."""


class MetadataQACode(_MetadataQA):
    """Questions and answers for a code chunk."""

    metadata_key = QA_CODE_KEY

    def prompt(self, chunk: Chunk) -> str:
        return _QA_CODE_PROMPT.format(
            num_questions=self.num_questions, path=chunk.path, code=chunk.text
        )


class MetadataQAText(_MetadataQA):
    """Questions and answers for a markdown / prose chunk."""

    metadata_key = QA_TEXT_KEY

    def prompt(self, chunk: Chunk) -> str:
        return _QA_TEXT_PROMPT.format(
            num_questions=self.num_questions, path=chunk.path, text=chunk.text
        )
