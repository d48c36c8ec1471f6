"""RAGAS-style evaluation: record what the query pipeline did for each question.

The dataset file read by ``codequery evaluate --file`` may be any of::

    [{"question": "...", "ground_truth": "..."}, ...]
    ["question one", "question two"]
    {"questions": [...]}            # as written by --generate-questions

The output (``EvaluationDataset.to_json``) is a list with one object per
question, ready to load into a ``ragas`` notebook::

    {"question", "ground_truth", "transformed_questions",
     "retrieved_context", "answer", "error"}
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

from loguru import logger

from codequery.errors import DatasetError
from codequery.rag.question import Question


@dataclass
class EvaluationEntry:
    question: str
    ground_truth: str | None = None
    transformed_questions: list[str] = field(default_factory=list)
    retrieved_context: list[str] = field(default_factory=list)
    answer: str | None = None
    error: str | None = None


class EvaluationDataset:
    """Ordered mapping of question text to its EvaluationEntry.

    Each entry stands for exactly one question of the run.

    Raises:
        DatasetError: If a question is blank or appears twice.
    """

    def __init__(self, entries: list[EvaluationEntry] | None = None) -> None:
        self._entries: dict[str, EvaluationEntry] = {}
        for i, entry in enumerate(entries or []):
            if not entry.question.strip():
                raise DatasetError(f"Entry {i}: question is blank")
            if entry.question in self._entries:
                raise DatasetError(f"Entry {i}: duplicate question {entry.question!r}")
            self._entries[entry.question] = entry

    @classmethod
    def from_questions(cls, questions: list[str]) -> EvaluationDataset:
        """Raises DatasetError on blank or duplicate questions."""
        return cls([EvaluationEntry(question=q) for q in questions])

    @classmethod
    def from_json(cls, text: str) -> EvaluationDataset:
        """Parse any of the accepted dataset shapes.

        Raises:
            DatasetError: If the text is not JSON or has an unknown shape.
        """
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise DatasetError(f"Dataset is not valid JSON: {exc}") from exc

        if isinstance(data, dict):
            if "questions" not in data:
                raise DatasetError("Dataset object must have a 'questions' key")
            data = data["questions"]
        if not isinstance(data, list):
            raise DatasetError("Dataset must be a list of questions")

        entries: list[EvaluationEntry] = []
        for i, raw in enumerate(data):
            entries.append(_parse_entry(raw, i))
        return cls(entries)

    @classmethod
    def from_file(cls, path: Path) -> EvaluationDataset:
        """Raises DatasetError if *path* cannot be read or parsed."""
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as exc:
            raise DatasetError(f"Cannot read dataset {path}: {exc}") from exc
        return cls.from_json(text)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self):
        return iter(self._entries.values())

    def __contains__(self, question: str) -> bool:
        return question in self._entries

    def entry(self, question: str) -> EvaluationEntry:
        """Return the entry for *question*, adding one if it is new."""
        if question not in self._entries:
            self._entries[question] = EvaluationEntry(question=question)
        return self._entries[question]

    def questions(self) -> list[str]:
        return list(self._entries)

    def to_json(self) -> str:
        return json.dumps([asdict(e) for e in self._entries.values()], indent=2)

    def write(self, path: Path) -> None:
        path.write_text(self.to_json(), encoding="utf-8")


def _parse_entry(raw: Any, index: int) -> EvaluationEntry:
    if isinstance(raw, str):
        return EvaluationEntry(question=raw)
    if isinstance(raw, dict) and isinstance(raw.get("question"), str):
        ground_truth = raw.get("ground_truth")
        if ground_truth is not None and not isinstance(ground_truth, str):
            raise DatasetError(f"Entry {index}: 'ground_truth' must be a string")
        return EvaluationEntry(question=raw["question"], ground_truth=ground_truth)
    raise DatasetError(
        f"Entry {index}: expected a string or an object with a 'question' string"
    )


class RagasEvaluator:
    """Taps the query pipeline and fills an EvaluationDataset.

    Args:
        dataset: Prepared questions (and optional ground truths).
    """

    def __init__(self, dataset: EvaluationDataset | None = None) -> None:
        self.dataset = dataset if dataset is not None else EvaluationDataset()

    @classmethod
    def from_prepared_questions(cls, dataset: EvaluationDataset) -> RagasEvaluator:
        return cls(dataset)

    def questions(self) -> list[str]:
        return self.dataset.questions()

    def on_transformed(self, question: Question) -> None:
        self.dataset.entry(question.original).transformed_questions = question.transformations

    def on_retrieved(self, question: Question) -> None:
        self.dataset.entry(question.original).retrieved_context = [
            doc.text for doc in question.documents
        ]

    def on_answered(self, question: Question) -> None:
        self.dataset.entry(question.original).answer = question.answer

    def on_failed(self, question: Question) -> None:
        self.dataset.entry(question.original).error = question.error

    def record_answers_as_ground_truth(self) -> int:
        """Use every answer as the ground truth of its question.

        Returns:
            Number of entries updated. Unanswered questions keep their
            ground truth.
        """
        updated = 0
        for entry in self.dataset:
            if entry.answer is not None:
                entry.ground_truth = entry.answer
                updated += 1
        logger.info("Recorded {} answers as ground truth", updated)
        return updated

    def to_json(self) -> str:
        return self.dataset.to_json()
