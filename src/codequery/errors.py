"""Exception hierarchy shared by the ingestion and query pipelines."""

from __future__ import annotations


class CodequeryError(Exception):
    """Base class for all codequery errors."""


class LoaderError(CodequeryError):
    """Source enumeration failed (root missing or unreadable). Aborts the run."""


class PipelineError(CodequeryError):
    """A pipeline was wired or driven incorrectly."""


class PipelineTypeError(PipelineError, TypeError):
    """A stage's input unit type does not match what the pipeline produces."""


class StoreError(CodequeryError):
    """A vector store operation failed."""


class StoreUnavailableError(StoreError):
    """The vector store could not be opened. Fatal: a run needs a destination."""


class QueryError(CodequeryError):
    """A question failed in the query pipeline.

    Attributes:
        question: The Question that failed (its ``error`` field is set).
    """

    def __init__(self, message: str, question: object | None = None) -> None:
        super().__init__(message)
        self.question = question


class InvalidTransitionError(QueryError):
    """A Question was moved to an earlier lifecycle state."""


class DatasetError(CodequeryError):
    """An evaluation dataset file could not be parsed."""
