"""Run progress models for the document pipeline.

A run moves through these steps:

    starting -> chunking -> chunks_created ->
      (per document: processing_file -> [processing / embedding_prep /
       chunk_processed]* -> embeddings_ready -> storing_embeddings ->
       embeddings_stored -> [answering / question_answered]*)
    -> completed

with ``error`` reachable from anywhere.  Each transition is published as a
:class:`ProgressEvent`; the stream is serialized as newline-delimited JSON
with camelCase keys.
"""

from __future__ import annotations

import time
from enum import Enum

from pydantic import Field

from src.models.query import ExtractionDebug, FileResult, ProcessingResult
from src.models.rag import CamelModel


class PipelineStep(str, Enum):  # noqa: UP042 - StrEnum requires Python 3.11+
    """Step tags carried by progress events."""

    STARTING = "starting"
    CHUNKING = "chunking"
    CHUNKS_CREATED = "chunks_created"
    PROCESSING_FILE = "processing_file"
    PROCESSING = "processing"
    EMBEDDING_PREP = "embedding_prep"
    CHUNK_PROCESSED = "chunk_processed"
    EMBEDDINGS_READY = "embeddings_ready"
    STORING_EMBEDDINGS = "storing_embeddings"
    EMBEDDINGS_STORED = "embeddings_stored"
    ANSWERING = "answering"
    QUESTION_ANSWERED = "question_answered"
    COMPLETED = "completed"
    ERROR = "error"

    @property
    def advances(self) -> bool:
        """Whether an event with this step moves the step counter forward.

        ``totalSteps = slices * 2 + queries * documents + base`` counts
        exactly these: two per slice, one per answered query, plus the
        run-level starting / chunks_created / completed steps.
        """
        return self in _ADVANCING_STEPS


_ADVANCING_STEPS = frozenset(
    {
        PipelineStep.STARTING,
        PipelineStep.CHUNKS_CREATED,
        PipelineStep.PROCESSING,
        PipelineStep.CHUNK_PROCESSED,
        PipelineStep.QUESTION_ANSWERED,
        PipelineStep.COMPLETED,
    }
)


class ProgressEventType(str, Enum):  # noqa: UP042
    PROGRESS = "progress"
    COMPLETION = "completion"
    ERROR = "error"


class ResultsPayload(CamelModel):
    """Final payload attached to the completion event."""

    results: list[FileResult] = Field(default_factory=list)
    debug_info: list[ExtractionDebug] = Field(default_factory=list)

    @classmethod
    def from_processing_result(cls, result: ProcessingResult) -> ResultsPayload:
        return cls(results=result.file_results, debug_info=result.debug_info)


class ProgressEvent(CamelModel):
    """A timestamped notification of pipeline advancement."""

    kind: ProgressEventType = Field(default=ProgressEventType.PROGRESS, alias="type")
    step: PipelineStep
    message: str
    filename: str | None = None
    chunk_id: str | None = None
    current_step: int = Field(ge=0)
    total_steps: int = Field(ge=0)
    timestamp: int = Field(
        default_factory=lambda: int(time.time() * 1000),
        description="Unix epoch milliseconds.",
    )
    results: ResultsPayload | None = None
    error: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.kind is not ProgressEventType.PROGRESS

    def to_ndjson(self) -> str:
        """Serialize as one NDJSON line (camelCase keys, nulls omitted)."""
        return self.model_dump_json(by_alias=True, exclude_none=True) + "\n"
