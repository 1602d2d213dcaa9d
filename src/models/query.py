"""Query, answer and result models.

One :class:`Answer` exists per (document, query) pair; a run's output is a
:class:`ProcessingResult` holding one :class:`FileResult` per document in
upload order plus one :class:`ExtractionDebug` trace per document.
"""

from __future__ import annotations

from enum import Enum

from pydantic import Field

from src.models.rag import CamelModel, SegmentMatch


class QueryType(str, Enum):  # noqa: UP042 - StrEnum requires Python 3.11+
    """Open question or true/false condition."""

    QUESTION = "question"
    CONDITION = "condition"


class Verdict(str, Enum):  # noqa: UP042
    """Leading token of a condition answer."""

    TRUE = "true"
    FALSE = "false"
    UNKNOWN = "unknown"


class Query(CamelModel):
    """A user query with its classified type."""

    text: str = Field(min_length=1)
    query_type: QueryType = Field(alias="type")


class AnswerDebug(CamelModel):
    """Retrieval trace: ranked matches and the context sent to synthesis."""

    relevant_chunks: list[SegmentMatch] = Field(default_factory=list)
    context_used: list[str] = Field(default_factory=list)


class Answer(CamelModel):
    """Result of answering one query against one document."""

    query: str
    answer: str
    confidence: float = Field(ge=0.0, le=1.0)
    sources: list[str] = Field(default_factory=list)
    query_type: QueryType = Field(alias="type")
    verdict: Verdict | None = None
    debug_info: AnswerDebug | None = None


class FileResult(CamelModel):
    """All answers for one document, in query order."""

    filename: str
    answers: list[Answer] = Field(default_factory=list)


class ExtractionDebug(CamelModel):
    """Raw extraction text and resulting segment texts for one document."""

    filename: str
    raw_extraction: str = ""
    chunks: list[str] = Field(default_factory=list)


class ProcessingResult(CamelModel):
    """Aggregate output of one run."""

    file_results: list[FileResult] = Field(default_factory=list)
    debug_info: list[ExtractionDebug] = Field(default_factory=list)
