"""Central orchestrator for the document query pipeline.

Drives one run end to end:

    split every document into page slices
      -> per document: extract slices in bounded concurrent batches
         -> segment -> embed
      -> populate the document's index session
      -> answer every query in order against that session
      -> destroy the session
    -> one completion event bundling all answers and extraction traces

Failures are contained at the smallest level that can absorb them:

* slice  -- logged, the slice is left out of the document's index;
* query  -- a placeholder answer with confidence 0;
* document (no slice usable, PDF unreadable, index write failed) -- a
  ``progress`` event with step ``error`` for that file and placeholder
  answers; sibling documents continue;
* run    -- a single ``error`` event and no completion event.

Cancelling the task running :meth:`DocumentQueryPipeline.run` stops new
remote calls at the next await; open index sessions are still destroyed
and no error event is published.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass

import structlog

from src.config.app_config import AppConfig
from src.interfaces.embedding_provider import IEmbeddingProvider
from src.models.document import DocumentSlice, ExtractedText, SourceDocument
from src.models.pipeline import PipelineStep, ProgressEventType, ResultsPayload
from src.models.query import (
    Answer,
    AnswerDebug,
    ExtractionDebug,
    FileResult,
    ProcessingResult,
    Query,
    QueryType,
)
from src.models.rag import Segment, SegmentMetadata
from src.pipeline.progress_tracker import ProgressTracker
from src.services.answer_service import AnswerService, no_match_answer, parse_verdict
from src.services.extraction_service import ExtractionService
from src.services.index_session import IndexSessionManager
from src.services.page_splitter import PageSplitter
from src.services.query_classifier import QueryClassifier
from src.services.text_segmenter import TextChunk, TextSegmenter
from src.utils.concurrency import throttled_gather
from src.utils.errors import PipelineError, ProviderUnavailableError, RAGError
from src.utils.logging import get_logger


@dataclass
class _SliceOutcome:
    document_slice: DocumentSlice
    extracted: ExtractedText
    segments: list[Segment]


@dataclass
class _DocumentOutcome:
    file_result: FileResult
    debug: ExtractionDebug


class DocumentQueryPipeline:
    """Answers a list of queries against each uploaded PDF.

    All collaborators are injected; the orchestrator never builds clients.
    """

    def __init__(
        self,
        page_splitter: PageSplitter,
        extraction_service: ExtractionService,
        text_segmenter: TextSegmenter,
        embedding_provider: IEmbeddingProvider,
        session_manager: IndexSessionManager,
        query_classifier: QueryClassifier,
        answer_service: AnswerService,
        progress_tracker: ProgressTracker,
        config: AppConfig,
    ) -> None:
        self._splitter = page_splitter
        self._extraction = extraction_service
        self._segmenter = text_segmenter
        self._embedding = embedding_provider
        self._sessions = session_manager
        self._classifier = query_classifier
        self._answers = answer_service
        self._progress = progress_tracker
        self._config = config
        self._logger: structlog.BoundLogger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def new_run_id(self) -> str:
        return self._sessions.new_run_id()

    def estimate_total_steps(self, document_count: int, query_count: int) -> int:
        """Initial step estimate, assuming one slice per document."""
        return self._total_steps(document_count, document_count, query_count)

    async def run(
        self,
        documents: list[SourceDocument],
        queries: list[str],
        run_id: str | None = None,
    ) -> ProcessingResult | None:
        """Process *documents* against *queries*, publishing progress for *run_id*.

        Returns the aggregate result, or ``None`` after a run-level failure
        (which has already been published as an ``error`` event).

        Raises:
            asyncio.CancelledError: If the run was aborted by the caller.
        """
        run_id = run_id or self.new_run_id()
        self._progress.start_run(run_id, self.estimate_total_steps(len(documents), len(queries)))
        timeout = self._config.limits.max_processing_time_ms / 1000
        started = time.perf_counter()

        try:
            result = await asyncio.wait_for(
                self._execute(run_id, documents, queries), timeout=timeout
            )
        except asyncio.CancelledError:
            self._logger.info("pipeline_aborted", run_id=run_id)
            raise
        except asyncio.TimeoutError:
            await self._publish_run_error(
                run_id,
                PipelineError(message=f"Processing time limit of {timeout:.0f}s exceeded"),
            )
            return None
        except Exception as exc:
            await self._publish_run_error(run_id, exc)
            return None

        await self._progress.publish(
            run_id,
            PipelineStep.COMPLETED,
            "Processing completed successfully",
            kind=ProgressEventType.COMPLETION,
            results=ResultsPayload.from_processing_result(result),
        )
        self._logger.info(
            "pipeline_completed",
            run_id=run_id,
            documents=len(result.file_results),
            duration_ms=round((time.perf_counter() - started) * 1000, 1),
        )
        return result

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    async def _execute(
        self,
        run_id: str,
        documents: list[SourceDocument],
        raw_queries: list[str],
    ) -> ProcessingResult:
        if not documents:
            raise PipelineError(message="At least one PDF file is required")
        queries = [self._classifier.build_query(q) for q in raw_queries if q and q.strip()]
        if not queries:
            raise PipelineError(message="At least one question is required")
        # Missing providers fail the run before any progress event.
        if not self._embedding.is_available():
            raise ProviderUnavailableError(
                message="Embedding service is not configured",
                provider_name=self._embedding.get_provider_name(),
            )
        if not self._extraction.is_available():
            raise ProviderUnavailableError(message="No document-capable LLM is configured")

        self._logger.info(
            "pipeline_start",
            run_id=run_id,
            documents=len(documents),
            queries=len(queries),
            conditions=sum(q.query_type is QueryType.CONDITION for q in queries),
        )
        await self._progress.publish(
            run_id,
            PipelineStep.STARTING,
            f"Starting processing of {len(documents)} document(s) with {len(queries)} query(ies)",
        )

        splits = await self._split_all(run_id, documents)
        # Failed splits are exceptions in place and contribute no slices.
        total_slices = sum(len(s) for s in splits if isinstance(s, list))
        self._progress.set_total_steps(
            run_id, self._total_steps(total_slices, len(documents), len(queries))
        )
        await self._progress.publish(
            run_id,
            PipelineStep.CHUNKS_CREATED,
            f"Created {total_slices} slice(s) from {len(documents)} document(s)",
        )

        outcomes = await self._process_documents(run_id, documents, splits, queries)
        return ProcessingResult(
            file_results=[o.file_result for o in outcomes],
            debug_info=[o.debug for o in outcomes],
        )

    def _total_steps(self, slice_count: int, document_count: int, query_count: int) -> int:
        extraction = self._config.processing.extraction
        return (
            slice_count * extraction.total_steps_multiplier
            + query_count * document_count
            + extraction.base_steps_count
        )

    async def _split_all(
        self,
        run_id: str,
        documents: list[SourceDocument],
    ) -> list[list[DocumentSlice] | BaseException]:
        """Split every document concurrently; failures are returned in place."""
        for document in documents:
            await self._progress.publish(
                run_id,
                PipelineStep.CHUNKING,
                f"Splitting {document.filename}",
                filename=document.filename,
            )
        return await throttled_gather(
            [self._splitter.split(d) for d in documents], return_exceptions=True
        )

    async def _process_documents(
        self,
        run_id: str,
        documents: list[SourceDocument],
        splits: list[list[DocumentSlice] | BaseException],
        queries: list[Query],
    ) -> list[_DocumentOutcome]:
        """Process documents sequentially, or bounded-parallel when configured.

        Outcomes are always returned in upload order.
        """
        concurrency = self._config.processing.extraction.document_concurrency
        if concurrency <= 1:
            # Sequential mode keeps progress events of one document together.
            outcomes: list[_DocumentOutcome] = []
            for position, (document, split) in enumerate(zip(documents, splits)):
                outcomes.append(
                    await self._process_document(run_id, position, document, split, queries)
                )
            return outcomes

        return await throttled_gather(
            [
                self._process_document(run_id, position, document, split, queries)
                for position, (document, split) in enumerate(zip(documents, splits))
            ],
            semaphore=asyncio.Semaphore(concurrency),
            return_exceptions=False,
        )

    # ------------------------------------------------------------------
    # Document
    # ------------------------------------------------------------------

    async def _process_document(
        self,
        run_id: str,
        position: int,
        document: SourceDocument,
        split: list[DocumentSlice] | BaseException,
        queries: list[Query],
    ) -> _DocumentOutcome:
        filename = document.filename
        started = time.perf_counter()

        if isinstance(split, BaseException):
            return await self._failed_document(
                run_id, filename, queries, f"{filename} could not be split: {split}"
            )

        await self._progress.publish(
            run_id,
            PipelineStep.PROCESSING_FILE,
            f"Processing {filename} ({len(split)} slice(s))",
            filename=filename,
        )

        outcomes = await self._process_slices(run_id, split)
        successful = [o for o in outcomes if o is not None]
        segments = [segment for o in successful for segment in o.segments]
        debug = ExtractionDebug(
            filename=filename,
            raw_extraction="\n\n".join(o.extracted.text for o in successful),
            chunks=[s.text for s in segments],
        )
        if not successful:
            return await self._failed_document(
                run_id, filename, queries, f"No slice of {filename} could be processed", debug
            )

        await self._progress.publish(
            run_id,
            PipelineStep.EMBEDDINGS_READY,
            f"{len(segments)} segment(s) from {len(successful)}/{len(split)} slice(s) "
            f"of {filename} ready",
            filename=filename,
        )

        session_id = self._sessions.session_id_for(run_id, filename, position)
        # The session is reset on exit, also when answering raises.
        async with self._sessions.open(session_id):
            await self._progress.publish(
                run_id,
                PipelineStep.STORING_EMBEDDINGS,
                f"Storing {len(segments)} segment(s) for {filename}",
                filename=filename,
            )
            try:
                stored = await self._sessions.populate(session_id, segments)
            except Exception as exc:
                # Any index failure is contained to this document.
                return await self._failed_document(
                    run_id, filename, queries, f"Indexing {filename} failed: {exc}", debug
                )
            await self._progress.publish(
                run_id,
                PipelineStep.EMBEDDINGS_STORED,
                f"Stored {stored} segment(s) for {filename}",
                filename=filename,
            )

            answers: list[Answer] = []
            for index, query in enumerate(queries):
                answers.append(
                    await self._answer_query(
                        run_id, session_id, filename, query, index, len(queries)
                    )
                )

        log_kwargs: dict = {}
        if self._config.logging.enable_performance_logs:
            log_kwargs["duration_ms"] = round((time.perf_counter() - started) * 1000, 1)
        self._logger.info(
            "document_processed",
            run_id=run_id,
            filename=filename,
            slices=len(split),
            failed_slices=len(split) - len(successful),
            segments=len(segments),
            **log_kwargs,
        )
        return _DocumentOutcome(FileResult(filename=filename, answers=answers), debug)

    async def _failed_document(
        self,
        run_id: str,
        filename: str,
        queries: list[Query],
        reason: str,
        debug: ExtractionDebug | None = None,
    ) -> _DocumentOutcome:
        """Publish a document-level error and answer every query with a placeholder."""
        self._logger.warning("document_failed", run_id=run_id, filename=filename, error=reason)
        await self._progress.publish(
            run_id,
            PipelineStep.ERROR,
            f"Processing {filename} failed",
            filename=filename,
            error=reason,
        )
        answers: list[Answer] = []
        for index, query in enumerate(queries):
            answers.append(self._placeholder_answer(query, reason))
            await self._progress.publish(
                run_id,
                PipelineStep.QUESTION_ANSWERED,
                f"Skipped query {index + 1}/{len(queries)} for {filename}",
                filename=filename,
            )
        return _DocumentOutcome(
            FileResult(filename=filename, answers=answers),
            debug or ExtractionDebug(filename=filename),
        )

    # ------------------------------------------------------------------
    # Slices
    # ------------------------------------------------------------------

    async def _process_slices(
        self,
        run_id: str,
        slices: list[DocumentSlice],
    ) -> list[_SliceOutcome | None]:
        """Process slices in fixed-size concurrent batches, keeping slice order."""
        batch_size = self._config.processing.extraction.batch_size
        outcomes: list[_SliceOutcome | None] = []
        for start in range(0, len(slices), batch_size):
            batch = slices[start : start + batch_size]
            results = await throttled_gather(
                [self._process_slice(run_id, s) for s in batch], return_exceptions=True
            )
            for document_slice, result in zip(batch, results):
                if isinstance(result, BaseException):
                    self._logger.warning(
                        "slice_failed",
                        run_id=run_id,
                        slice_id=document_slice.slice_id,
                        error=str(result),
                        error_type=type(result).__name__,
                    )
                    outcomes.append(None)
                else:
                    outcomes.append(result)
        return outcomes

    async def _process_slice(self, run_id: str, document_slice: DocumentSlice) -> _SliceOutcome | None:
        """Extract, segment and embed one slice; ``None`` if any step failed."""
        filename = document_slice.filename
        slice_id = document_slice.slice_id
        await self._progress.publish(
            run_id,
            PipelineStep.PROCESSING,
            f"Extracting pages {document_slice.first_page + 1}-{document_slice.last_page + 1} "
            f"of {filename} (slice {document_slice.slice_index + 1}/{document_slice.total_slices})",
            filename=filename,
            chunk_id=slice_id,
        )
        started = time.perf_counter()
        try:
            extracted = await self._extraction.extract(document_slice)
            chunks = self._segmenter.segment(extracted.text)
            await self._progress.publish(
                run_id,
                PipelineStep.EMBEDDING_PREP,
                f"Embedding {len(chunks)} segment(s) from slice "
                f"{document_slice.slice_index + 1} of {filename}",
                filename=filename,
                chunk_id=slice_id,
            )
            segments = await self._embed_chunks(document_slice, chunks)
        except Exception as exc:
            # Skipped slices do not fail the document; sibling slices still count.
            self._logger.warning(
                "slice_failed",
                run_id=run_id,
                slice_id=slice_id,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            await self._progress.publish(
                run_id,
                PipelineStep.CHUNK_PROCESSED,
                f"Skipped slice {document_slice.slice_index + 1} of {filename}: {exc}",
                filename=filename,
                chunk_id=slice_id,
            )
            return None

        log_kwargs: dict = {}
        if self._config.logging.enable_performance_logs:
            log_kwargs["duration_ms"] = round((time.perf_counter() - started) * 1000, 1)
        self._logger.info(
            "slice_processed", run_id=run_id, slice_id=slice_id, segments=len(segments), **log_kwargs
        )
        await self._progress.publish(
            run_id,
            PipelineStep.CHUNK_PROCESSED,
            f"Processed slice {document_slice.slice_index + 1} of {filename}: "
            f"{len(segments)} segment(s)",
            filename=filename,
            chunk_id=slice_id,
        )
        return _SliceOutcome(document_slice, extracted, segments)

    async def _embed_chunks(
        self,
        document_slice: DocumentSlice,
        chunks: list[TextChunk],
    ) -> list[Segment]:
        if not chunks:
            return []
        vectors = await self._embedding.embed([c.text for c in chunks])
        if len(vectors) != len(chunks):
            raise RAGError(
                message=f"Expected {len(chunks)} embeddings, got {len(vectors)}",
                provider_name=self._embedding.get_provider_name(),
            )
        dimension = self._embedding.get_dimension()
        segments: list[Segment] = []
        for ordinal, (chunk, vector) in enumerate(zip(chunks, vectors)):
            if len(vector) != dimension:
                raise RAGError(
                    message=f"Embedding has {len(vector)} dimensions, expected {dimension}",
                    provider_name=self._embedding.get_provider_name(),
                )
            segments.append(
                Segment(
                    segment_id=f"{document_slice.slice_id}-segment-{ordinal}",
                    text=chunk.text,
                    vector=tuple(vector),
                    metadata=SegmentMetadata(
                        filename=document_slice.filename,
                        slice_index=document_slice.slice_index,
                        total_slices=document_slice.total_slices,
                        first_page=document_slice.first_page,
                        last_page=document_slice.last_page,
                        segment_index=ordinal,
                        categories=chunk.categories,
                        text=chunk.text,
                    ),
                )
            )
        return segments

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def _answer_query(
        self,
        run_id: str,
        session_id: str,
        filename: str,
        query: Query,
        index: int,
        total: int,
    ) -> Answer:
        label = "condition" if query.query_type is QueryType.CONDITION else "question"
        await self._progress.publish(
            run_id,
            PipelineStep.ANSWERING,
            f"Answering {label} {index + 1}/{total} for {filename}",
            filename=filename,
        )
        try:
            matches = await self._sessions.query(session_id, query.text)
            if matches:
                context = [m.metadata.text for m in matches]
                text = await self._answers.synthesize(query, context)
                # Matches are ranked best first.
                confidence = matches[0].score
                # Deduplicated, first-seen order.
                sources = list(dict.fromkeys(m.metadata.filename or filename for m in matches))
            else:
                context = []
                text = no_match_answer(query)
                confidence = 0.0
                sources = []
            answer = Answer(
                query=query.text,
                answer=text,
                confidence=max(0.0, min(1.0, confidence)),
                sources=sources,
                type=query.query_type,
                verdict=parse_verdict(text) if query.query_type is QueryType.CONDITION else None,
                debug_info=AnswerDebug(relevant_chunks=matches, context_used=context),
            )
        except Exception as exc:
            self._logger.warning(
                "query_answer_failed",
                run_id=run_id,
                filename=filename,
                query_index=index,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            answer = self._placeholder_answer(query, str(exc))

        await self._progress.publish(
            run_id,
            PipelineStep.QUESTION_ANSWERED,
            f"Answered {label} {index + 1}/{total} for {filename}",
            filename=filename,
        )
        return answer

    @staticmethod
    def _placeholder_answer(query: Query, reason: str) -> Answer:
        return Answer(
            query=query.text,
            answer=f"Die Anfrage konnte nicht beantwortet werden: {reason}",
            confidence=0.0,
            sources=[],
            type=query.query_type,
        )

    async def _publish_run_error(self, run_id: str, exc: BaseException) -> None:
        self._logger.error(
            "pipeline_failed",
            run_id=run_id,
            error=str(exc),
            error_type=type(exc).__name__,
        )
        await self._progress.publish(
            run_id,
            PipelineStep.ERROR,
            "Processing failed",
            kind=ProgressEventType.ERROR,
            error=str(exc),
        )
