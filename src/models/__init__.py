"""tenderLens domain models -- re-exports all public model classes.

    - document.py -- uploads, page slices and extracted text
    - rag.py      -- segments, the versioned segment metadata, index records
    - query.py    -- queries, answers, per-file results
    - pipeline.py -- progress steps and streamed progress events
"""

from __future__ import annotations

from src.models.document import DocumentSlice, ExtractedText, SourceDocument
from src.models.pipeline import (
    PipelineStep,
    ProgressEvent,
    ProgressEventType,
    ResultsPayload,
)
from src.models.query import (
    Answer,
    AnswerDebug,
    ExtractionDebug,
    FileResult,
    ProcessingResult,
    Query,
    QueryType,
    Verdict,
)
from src.models.rag import (
    SEGMENT_METADATA_VERSION,
    IndexMatch,
    IndexRecord,
    Segment,
    SegmentMatch,
    SegmentMetadata,
)

__all__ = [
    "SEGMENT_METADATA_VERSION",
    "Answer",
    "AnswerDebug",
    "DocumentSlice",
    "ExtractedText",
    "ExtractionDebug",
    "FileResult",
    "IndexMatch",
    "IndexRecord",
    "PipelineStep",
    "ProcessingResult",
    "ProgressEvent",
    "ProgressEventType",
    "Query",
    "QueryType",
    "ResultsPayload",
    "Segment",
    "SegmentMatch",
    "SegmentMetadata",
    "SourceDocument",
    "Verdict",
]
