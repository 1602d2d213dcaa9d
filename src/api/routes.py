"""FastAPI API routes for the tenderLens pipeline.

Service dependencies are resolved from ``app.state`` via FastAPI's
``Depends`` using the ``Annotated`` pattern.

    Endpoint            Method  Description
    /api/v1/ingest      POST    Upload PDFs + queries -> NDJSON progress stream
    /api/v1/health      GET     Health check + provider status

The ingest response is ``text/plain`` newline-delimited JSON: one
:class:`~src.models.pipeline.ProgressEvent` per line, terminated by exactly
one ``completion`` or ``error`` event.  If the client goes away mid-stream
the run task is cancelled.
"""

from __future__ import annotations

import asyncio
import re
from collections.abc import AsyncIterator
from typing import Annotated, Any

import structlog
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.datastructures import FormData, UploadFile

from src.api.middleware import error_response
from src.api.schemas import ErrorResponse, HealthResponse
from src.config.app_config import AppConfig
from src.models.document import SourceDocument
from src.models.pipeline import ProgressEvent
from src.pipeline.orchestrator import DocumentQueryPipeline
from src.pipeline.progress_tracker import ProgressTracker
from src.services.upload_validator import (
    check_file_size,
    is_pdf_upload,
    normalize_queries,
    validate_batch,
)
from src.utils.errors import DocumentValidationError
from src.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)

# All routes in this file are prefixed with /api/v1.
router = APIRouter(prefix="/api/v1")

# Read uploads in 64 KB increments so oversized files are rejected before
# they are fully buffered.
_UPLOAD_CHUNK_SIZE = 64 * 1024

_QUESTION_FIELD = re.compile(r"^questions\.(\d+)\.question$")

_VERSION = "0.1.0"


# ---------------------------------------------------------------------------
# Dependency injection helpers -- resolve singletons from app.state
# ---------------------------------------------------------------------------


def _get_pipeline(request: Request) -> DocumentQueryPipeline:
    """Return the pipeline orchestrator from application state."""
    return request.app.state.pipeline


def _get_progress_tracker(request: Request) -> ProgressTracker:
    """Return the progress tracker from application state."""
    return request.app.state.progress_tracker


def _get_app_config(request: Request) -> AppConfig:
    return request.app.state.app_config


PipelineDep = Annotated[DocumentQueryPipeline, Depends(_get_pipeline)]
TrackerDep = Annotated[ProgressTracker, Depends(_get_progress_tracker)]
AppConfigDep = Annotated[AppConfig, Depends(_get_app_config)]


# ---------------------------------------------------------------------------
# Form parsing
# ---------------------------------------------------------------------------


def _questions_from_form(form: FormData) -> list[str]:
    """Collect questions in order.

    ``questions.<i>.question`` fields are read for contiguous indices from
    0; a repeated plain ``questions`` field is appended after them.
    """
    indexed: dict[int, str] = {}
    for key, value in form.multi_items():
        match = _QUESTION_FIELD.match(key)
        if match and isinstance(value, str):
            indexed.setdefault(int(match.group(1)), value)

    questions: list[str] = []
    index = 0
    while index in indexed:
        questions.append(indexed[index])
        index += 1
    questions.extend(v for v in form.getlist("questions") if isinstance(v, str))
    return normalize_queries(questions)


async def _read_upload(upload: UploadFile, config: AppConfig) -> bytes:
    """Read *upload* in chunks, rejecting it as soon as it exceeds the size limit."""
    filename = upload.filename or "document.pdf"
    chunks: list[bytes] = []
    total_size = 0
    while True:
        chunk = await upload.read(_UPLOAD_CHUNK_SIZE)
        if not chunk:
            break
        total_size += len(chunk)
        check_file_size(filename, total_size, config.pdf.validation)
        chunks.append(chunk)
    return b"".join(chunks)


async def _documents_from_form(form: FormData, config: AppConfig) -> list[SourceDocument]:
    """Return accepted PDF uploads in upload order; anything else is ignored."""
    documents: list[SourceDocument] = []
    running_total = 0
    for upload in form.getlist("files"):
        if not isinstance(upload, UploadFile):
            continue
        filename = upload.filename or ""
        if not is_pdf_upload(filename, upload.content_type, config.pdf.validation):
            _logger.info(
                "upload_ignored",
                filename=filename,
                content_type=upload.content_type,
            )
            continue
        content = await _read_upload(upload, config)
        running_total += len(content)
        if running_total > config.limits.max_total_file_size:
            raise DocumentValidationError(
                message=(
                    f"Total upload size exceeds the limit of "
                    f"{config.limits.max_total_file_size} bytes"
                ),
                status_code=413,
            )
        documents.append(
            SourceDocument(
                filename=filename,
                content=content,
                content_type=upload.content_type or "application/pdf",
            )
        )
    return documents


# ---------------------------------------------------------------------------
# Ingest
# ---------------------------------------------------------------------------


@router.post(
    "/ingest",
    response_class=StreamingResponse,
    response_model=None,
    responses={
        400: {"model": ErrorResponse},
        413: {"model": ErrorResponse},
    },
    summary="Upload PDFs and queries; stream NDJSON progress and results",
)
async def ingest(
    request: Request,
    pipeline: PipelineDep,
    tracker: TrackerDep,
    app_config: AppConfigDep,
) -> StreamingResponse | JSONResponse:
    """Validate the upload, start the run and stream its progress events."""
    limits = app_config.limits
    form = await request.form(
        max_files=limits.max_files_per_session * 10,
        max_fields=limits.max_questions_per_session * 10 + 100,
    )
    try:
        try:
            queries = _questions_from_form(form)
            documents = await _documents_from_form(form, app_config)
            validate_batch(documents, queries, app_config.pdf.validation, limits)
        except DocumentValidationError as exc:
            _logger.info(
                "ingest_rejected",
                status=exc.status_code,
                error=exc.message,
            )
            return error_response(exc)
    finally:
        await form.close()

    run_id = pipeline.new_run_id()
    queue: asyncio.Queue[ProgressEvent | None] = asyncio.Queue()
    listener = queue.put_nowait
    tracker.register_listener(run_id, listener)

    task = asyncio.create_task(pipeline.run(documents, queries, run_id=run_id))

    def _on_done(finished: asyncio.Task) -> None:
        if not finished.cancelled() and finished.exception() is not None:
            _logger.error(
                "ingest_task_failed",
                run_id=run_id,
                error=str(finished.exception()),
            )
        # Ends the stream if the run stopped without a terminal event.
        queue.put_nowait(None)

    task.add_done_callback(_on_done)

    _logger.info(
        "ingest_started",
        run_id=run_id,
        files=[d.filename for d in documents],
        queries=len(queries),
    )

    async def _stream() -> AsyncIterator[str]:
        try:
            while True:
                event = await queue.get()
                if event is None:
                    break
                yield event.to_ndjson()
                if event.is_terminal:
                    break
        finally:
            tracker.unregister_listener(run_id, listener)
            if not task.done():
                _logger.info("ingest_client_disconnected", run_id=run_id)
                task.cancel()
            tracker.forget(run_id)

    return StreamingResponse(
        _stream(),
        media_type="text/plain; charset=utf-8",
        headers={"Cache-Control": "no-cache", "X-Content-Type-Options": "nosniff"},
    )


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
)
async def health_check(request: Request) -> HealthResponse:
    """Return application health, version, and provider availability."""
    providers: dict[str, Any] = {}
    if hasattr(request.app.state, "provider_registry"):
        providers = dict(request.app.state.provider_registry)

    vector_index = getattr(request.app.state, "vector_index", None)
    if vector_index is not None:
        providers["vector_index"] = vector_index.is_available()

    critical = ("llm", "embedding", "vector_index")
    available = [bool(providers.get(name, False)) for name in critical]
    if all(available):
        status = "healthy"
    elif any(available):
        status = "degraded"
    else:
        status = "unhealthy"

    return HealthResponse(status=status, version=_VERSION, providers=providers)
