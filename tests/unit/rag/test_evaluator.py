"""Tests for EvaluationDataset and RagasEvaluator."""

from __future__ import annotations

import json

import pytest

from codequery.errors import DatasetError
from codequery.rag.evaluator import EvaluationDataset, EvaluationEntry, RagasEvaluator
from codequery.rag.question import Document, Question


# ------------------------------------------------------------------
# EvaluationDataset parsing
# ------------------------------------------------------------------


def test_from_json_objects_with_ground_truth():
    data = json.dumps([
        {"question": "What is X?", "ground_truth": "X is a thing."},
        {"question": "What is Y?"},
    ])
    dataset = EvaluationDataset.from_json(data)
    entries = list(dataset)
    assert [e.question for e in entries] == ["What is X?", "What is Y?"]
    assert entries[0].ground_truth == "X is a thing."
    assert entries[1].ground_truth is None


def test_from_json_plain_strings():
    dataset = EvaluationDataset.from_json('["one?", "two?"]')
    assert dataset.questions() == ["one?", "two?"]


def test_from_json_generated_questions_object():
    dataset = EvaluationDataset.from_json('{"questions": ["a?", "b?"]}')
    assert len(dataset) == 2
    assert "a?" in dataset


@pytest.mark.parametrize("text,message", [
    ("not json", "not valid JSON"),
    ('{"items": []}', "'questions' key"),
    ('"just a string"', "list of questions"),
    ("[42]", "Entry 0"),
    ('[{"question": "q", "ground_truth": 3}]', "must be a string"),
])
def test_from_json_rejects_bad_shapes(text, message):
    with pytest.raises(DatasetError, match=message):
        EvaluationDataset.from_json(text)


def test_from_file_missing(tmp_path):
    with pytest.raises(DatasetError, match="Cannot read dataset"):
        EvaluationDataset.from_file(tmp_path / "missing.json")


def test_from_questions_rejects_blank():
    with pytest.raises(DatasetError, match="Entry 1: question is blank"):
        EvaluationDataset.from_questions(["a?", "  ", "b?"])


def test_from_questions_rejects_duplicates():
    with pytest.raises(DatasetError, match="Entry 1: duplicate question 'a\\?'"):
        EvaluationDataset.from_questions(["a?", "a?"])


@pytest.mark.parametrize("text,message", [
    ('[{"question": "Q", "ground_truth": "one"}, {"question": "Q", "ground_truth": "two"}]',
     "duplicate question"),
    ('["Q", ""]', "question is blank"),
])
def test_from_json_rejects_duplicate_and_blank(text, message):
    with pytest.raises(DatasetError, match=message):
        EvaluationDataset.from_json(text)


def test_entry_creates_missing():
    dataset = EvaluationDataset()
    entry = dataset.entry("new?")
    assert entry is dataset.entry("new?")
    assert dataset.questions() == ["new?"]


def test_write_and_read_back(tmp_path):
    dataset = EvaluationDataset([EvaluationEntry(question="q?", ground_truth="gt", answer="a")])
    path = tmp_path / "out.json"
    dataset.write(path)
    raw = json.loads(path.read_text(encoding="utf-8"))
    assert raw == [{
        "question": "q?",
        "ground_truth": "gt",
        "transformed_questions": [],
        "retrieved_context": [],
        "answer": "a",
        "error": None,
    }]
    assert EvaluationDataset.from_file(path).questions() == ["q?"]


# ------------------------------------------------------------------
# RagasEvaluator hooks
# ------------------------------------------------------------------


def _walked_question() -> Question:
    q = Question(original="How?")
    q.transformed("How?\nWhere?")
    q.retrieved([Document(id="1", path="a.py", text="ctx one", distance=0.0),
                 Document(id="2", path="b.py", text="ctx two", distance=0.5)])
    q.answered("Like this.")
    return q


def test_hooks_fill_entry():
    evaluator = RagasEvaluator.from_prepared_questions(EvaluationDataset.from_questions(["How?"]))
    q = _walked_question()
    evaluator.on_transformed(q)
    evaluator.on_retrieved(q)
    evaluator.on_answered(q)

    entry = evaluator.dataset.entry("How?")
    assert entry.transformed_questions == ["How?\nWhere?"]
    assert entry.retrieved_context == ["ctx one", "ctx two"]
    assert entry.answer == "Like this."
    assert entry.error is None


def test_on_failed_records_error():
    evaluator = RagasEvaluator()
    q = Question(original="Broken?")
    q.error = "timeout"
    evaluator.on_failed(q)
    assert evaluator.dataset.entry("Broken?").error == "timeout"


def test_record_answers_as_ground_truth():
    dataset = EvaluationDataset.from_questions(["a?", "b?"])
    dataset.entry("a?").answer = "A."
    evaluator = RagasEvaluator(dataset)

    assert evaluator.record_answers_as_ground_truth() == 1
    assert dataset.entry("a?").ground_truth == "A."
    assert dataset.entry("b?").ground_truth is None


def test_questions_in_dataset_order():
    evaluator = RagasEvaluator(EvaluationDataset.from_questions(["z?", "a?"]))
    assert evaluator.questions() == ["z?", "a?"]
