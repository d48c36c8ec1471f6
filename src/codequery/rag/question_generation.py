"""Generate an evaluation question set from the indexed project itself.

The query pipeline is asked to describe the project, then to write questions
about that description. The result is written as ``{"questions": [...]}``,
which ``EvaluationDataset.from_file`` reads back.
"""

from __future__ import annotations

import json
from pathlib import Path

from loguru import logger

from codequery.rag.pipeline import QueryPipeline

_DESCRIBE_PROMPT = (
    "What is the {project} project written in {language} about? "
    "Provide an elaborate answer with examples."
)

_QUESTIONS_PROMPT = """\
Your goal is to generate {count} questions about the given project description. \
Questions can be about the project, how different parts can be used, features, \
architecture, testing, dependencies, and so on.

# Requirements
* Only respond with the questions, separated by a new line with no other text.
* Questions should be varied and concise.
* Provide a balance of technical questions, and questions that explore the \
meaning and usage of the project.
* Questions must be a single line.
* Questions can not include markdown.

# Example response

<question 1>?
<question 2>?

---

# Project description
{description}
"""


async def generate_questions(
    pipeline: QueryPipeline, project_name: str, language: str, count: int = 100
) -> list[str]:
    """Return up to *count* distinct questions about the indexed project.

    Raises:
        QueryError: If either query fails.
    """
    described = await pipeline.query(
        _DESCRIBE_PROMPT.format(project=project_name, language=language)
    )
    description = described.answer or ""
    logger.debug("Project description:\n{}", description)

    answered = await pipeline.query(
        _QUESTIONS_PROMPT.format(count=count, description=description)
    )
    lines = (line.strip() for line in (answered.answer or "").splitlines())
    # The written file is read back as a dataset, which rejects duplicates.
    return list(dict.fromkeys(line for line in lines if line))[:count]


def write_questions(questions: list[str], path: Path) -> None:
    path.write_text(json.dumps({"questions": questions}, indent=2), encoding="utf-8")
