"""Integration tests for DocumentQueryPipeline.

Runs the real splitter, segmenter, classifier, index session manager and
progress tracker against real PDFs, with the LLM mocked and the embedding
service and vector index replaced by deterministic in-memory fakes.
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.models.document import SourceDocument
from src.models.pipeline import PipelineStep, ProgressEvent, ProgressEventType
from src.models.query import QueryType, Verdict
from src.pipeline.progress_tracker import ProgressTracker
from src.services.answer_service import INFORMATION_UNAVAILABLE
from src.utils.errors import LLMError
from tests.conftest import (
    SAMPLE_EXTRACTION,
    HashEmbeddingProvider,
    InMemoryVectorIndex,
    make_app_config,
    make_pdf,
    make_pipeline,
)

_QUESTION = "Wann endet die Abgabefrist?"
_CONDITION = "Die Einreichung muss elektronisch erfolgen"


def _split_config(**overrides):
    return make_app_config(
        pdf={"splitting": {"default_chunk_size": 4, "default_overlap": 1, "split_threshold": 0}},
        **overrides,
    )


class _Harness:
    """Pipeline wired from fakes plus a recorder for its progress events."""

    def __init__(self, llm: MagicMock, config=None, embedder=None, index=None) -> None:
        self.tracker = ProgressTracker()
        self.index = index or InMemoryVectorIndex()
        self.embedder = embedder or HashEmbeddingProvider()
        self.pipeline = make_pipeline(
            llm,
            embedding_provider=self.embedder,
            vector_index=self.index,
            config=config or _split_config(),
            progress_tracker=self.tracker,
        )
        self.run_id = self.pipeline.new_run_id()
        self.events: list[ProgressEvent] = []
        self.tracker.register_listener(self.run_id, self.events.append)

    async def run(self, documents: list[SourceDocument], queries: list[str]):
        return await self.pipeline.run(documents, queries, run_id=self.run_id)

    def steps(self, step: PipelineStep) -> list[ProgressEvent]:
        return [e for e in self.events if e.step is step]

    @property
    def terminal(self) -> list[ProgressEvent]:
        return [e for e in self.events if e.is_terminal]


def _doc(name: str = "tender.pdf", pages: int = 12) -> SourceDocument:
    return SourceDocument(filename=name, content=make_pdf(pages))


# ======================================================================
# Happy path
# ======================================================================


class TestHappyPath:
    @pytest.mark.asyncio
    async def test_single_document_end_to_end(self, mock_llm_provider: MagicMock) -> None:
        harness = _Harness(mock_llm_provider)

        result = await harness.run([_doc()], [_QUESTION, _CONDITION])

        assert result is not None
        assert mock_llm_provider.extract_document.await_count == 3
        answers = result.file_results[0].answers
        assert [a.query for a in answers] == [_QUESTION, _CONDITION]
        assert answers[0].query_type is QueryType.QUESTION
        assert answers[0].verdict is None
        assert answers[1].query_type is QueryType.CONDITION
        assert answers[1].verdict is Verdict.TRUE
        for answer in answers:
            assert 0.0 < answer.confidence <= 1.0
            assert answer.sources == ["tender.pdf"]
            assert answer.debug_info is not None
            assert answer.debug_info.relevant_chunks
            assert answer.confidence == answer.debug_info.relevant_chunks[0].score

    @pytest.mark.asyncio
    async def test_debug_trace_holds_raw_extraction_and_segments(
        self, mock_llm_provider: MagicMock
    ) -> None:
        harness = _Harness(mock_llm_provider)

        result = await harness.run([_doc()], [_QUESTION])

        debug = result.debug_info[0]
        assert debug.filename == "tender.pdf"
        assert debug.raw_extraction.count("KRITISCHE INFORMATIONEN") == 3
        assert debug.chunks
        assert any(c.startswith("[FRISTEN/TERMINE]") for c in debug.chunks)

    @pytest.mark.asyncio
    async def test_step_counter_reaches_total(self, mock_llm_provider: MagicMock) -> None:
        harness = _Harness(mock_llm_provider)

        await harness.run([_doc()], [_QUESTION, _CONDITION])

        # 3 slices * 2 + 2 queries * 1 document + 3 run-level steps
        completion = harness.events[-1]
        assert completion.kind is ProgressEventType.COMPLETION
        assert completion.current_step == completion.total_steps == 11
        assert harness.events[-2].current_step == 10
        counters = [e.current_step for e in harness.events]
        assert counters == sorted(counters)
        assert all(e.current_step <= e.total_steps for e in harness.events)

    @pytest.mark.asyncio
    async def test_event_sequence(self, mock_llm_provider: MagicMock) -> None:
        harness = _Harness(mock_llm_provider)

        await harness.run([_doc()], [_QUESTION])

        order = [e.step for e in harness.events]
        assert order[:2] == [PipelineStep.STARTING, PipelineStep.CHUNKING]
        assert order.index(PipelineStep.CHUNKS_CREATED) < order.index(PipelineStep.PROCESSING_FILE)
        assert order.index(PipelineStep.EMBEDDINGS_READY) < order.index(PipelineStep.STORING_EMBEDDINGS)
        assert order.index(PipelineStep.EMBEDDINGS_STORED) < order.index(PipelineStep.ANSWERING)
        assert order[-2:] == [PipelineStep.QUESTION_ANSWERED, PipelineStep.COMPLETED]
        assert len(harness.steps(PipelineStep.PROCESSING)) == 3
        assert len(harness.steps(PipelineStep.CHUNK_PROCESSED)) == 3
        assert {e.chunk_id for e in harness.steps(PipelineStep.PROCESSING)} == {
            "tender.pdf-chunk-0",
            "tender.pdf-chunk-1",
            "tender.pdf-chunk-2",
        }
        assert len(harness.terminal) == 1

    @pytest.mark.asyncio
    async def test_session_destroyed_exactly_once(self, mock_llm_provider: MagicMock) -> None:
        harness = _Harness(mock_llm_provider)

        await harness.run([_doc()], [_QUESTION, _CONDITION])

        assert len(harness.index.resets) == 1
        assert harness.index.resets[0].startswith(f"{harness.run_id}-0-tender-pdf")
        assert harness.index.namespaces == {}

    @pytest.mark.asyncio
    async def test_small_document_is_one_slice(self, mock_llm_provider: MagicMock) -> None:
        harness = _Harness(mock_llm_provider, config=make_app_config())

        result = await harness.run([_doc(pages=3)], [_QUESTION])

        assert result is not None
        assert mock_llm_provider.extract_document.await_count == 1
        assert harness.events[-1].total_steps == 1 * 2 + 1 + 3


# ======================================================================
# Several documents
# ======================================================================


class TestMultipleDocuments:
    @pytest.mark.asyncio
    async def test_results_in_upload_order_with_isolated_sessions(
        self, mock_llm_provider: MagicMock
    ) -> None:
        harness = _Harness(mock_llm_provider)

        result = await harness.run([_doc("b.pdf", 4), _doc("a.pdf", 4)], [_QUESTION])

        assert [f.filename for f in result.file_results] == ["b.pdf", "a.pdf"]
        assert len(harness.index.resets) == 2
        assert len(set(harness.index.resets)) == 2
        assert result.file_results[0].answers[0].sources == ["b.pdf"]

    @pytest.mark.asyncio
    async def test_same_filename_twice_gets_two_sessions(self, mock_llm_provider: MagicMock) -> None:
        harness = _Harness(mock_llm_provider)

        await harness.run([_doc("x.pdf", 2), _doc("x.pdf", 2)], [_QUESTION])

        assert len(set(harness.index.resets)) == 2

    @pytest.mark.asyncio
    async def test_concurrent_documents_keep_upload_order(self, mock_llm_provider: MagicMock) -> None:
        config = _split_config(processing={"extraction": {"document_concurrency": 3}})
        harness = _Harness(mock_llm_provider, config=config)

        result = await harness.run(
            [_doc("one.pdf", 5), _doc("two.pdf", 9), _doc("three.pdf", 2)], [_QUESTION]
        )

        assert [f.filename for f in result.file_results] == ["one.pdf", "two.pdf", "three.pdf"]
        assert len(harness.index.resets) == 3
        assert harness.events[-2].current_step == harness.events[-1].total_steps - 1


# ======================================================================
# Failure containment
# ======================================================================


class TestFailureContainment:
    @pytest.mark.asyncio
    async def test_failing_query_gets_placeholder_and_session_is_still_destroyed(
        self, mock_llm_provider: MagicMock
    ) -> None:
        mock_llm_provider.complete = AsyncMock(
            side_effect=[LLMError(message="model overloaded"), "WAHR: elektronisch"]
        )
        harness = _Harness(mock_llm_provider)

        result = await harness.run([_doc()], [_QUESTION, _CONDITION])

        failed, succeeded = result.file_results[0].answers
        assert failed.confidence == 0.0
        assert failed.sources == []
        assert failed.answer.startswith("Die Anfrage konnte nicht beantwortet werden:")
        assert "model overloaded" in failed.answer
        assert succeeded.verdict is Verdict.TRUE
        assert len(harness.index.resets) == 1
        assert harness.events[-1].kind is ProgressEventType.COMPLETION

    @pytest.mark.asyncio
    async def test_zero_matches_gives_zero_confidence(self, mock_llm_provider: MagicMock) -> None:
        index = InMemoryVectorIndex()
        index.query = AsyncMock(return_value=[])
        harness = _Harness(mock_llm_provider, index=index)

        result = await harness.run([_doc()], [_QUESTION, _CONDITION])

        question, condition = result.file_results[0].answers
        assert question.confidence == 0.0
        assert question.sources == []
        assert INFORMATION_UNAVAILABLE in question.answer
        assert condition.verdict is Verdict.UNKNOWN
        mock_llm_provider.complete.assert_not_called()

    @pytest.mark.asyncio
    async def test_failed_slice_is_skipped(self, mock_llm_provider: MagicMock) -> None:
        async def _extract(document_bytes, prompt, media_type="application/pdf", max_tokens=8000):
            if "Teil 2 von 3" in prompt:
                raise LLMError(message="slice unreadable")
            return SAMPLE_EXTRACTION

        mock_llm_provider.extract_document = AsyncMock(side_effect=_extract)
        harness = _Harness(mock_llm_provider)

        result = await harness.run([_doc()], [_QUESTION])

        assert result.debug_info[0].raw_extraction.count("KRITISCHE INFORMATIONEN") == 2
        assert result.file_results[0].answers[0].confidence > 0.0
        skipped = [e for e in harness.steps(PipelineStep.CHUNK_PROCESSED) if "Skipped" in e.message]
        assert [e.chunk_id for e in skipped] == ["tender.pdf-chunk-1"]
        assert harness.events[-2].current_step == harness.events[-1].total_steps - 1

    @pytest.mark.asyncio
    async def test_document_without_usable_slices_gets_placeholders(
        self, mock_llm_provider: MagicMock
    ) -> None:
        mock_llm_provider.extract_document = AsyncMock(side_effect=LLMError(message="down"))
        harness = _Harness(mock_llm_provider)

        result = await harness.run([_doc()], [_QUESTION, _CONDITION])

        assert result is not None
        answers = result.file_results[0].answers
        assert [a.confidence for a in answers] == [0.0, 0.0]
        assert all(a.answer.startswith("Die Anfrage konnte nicht beantwortet werden") for a in answers)
        errors = harness.steps(PipelineStep.ERROR)
        assert len(errors) == 1
        assert errors[0].kind is ProgressEventType.PROGRESS
        assert errors[0].filename == "tender.pdf"
        assert harness.index.resets == []
        assert harness.events[-1].kind is ProgressEventType.COMPLETION
        assert harness.events[-2].current_step == harness.events[-1].total_steps - 1

    @pytest.mark.asyncio
    async def test_unreadable_pdf_does_not_stop_siblings(self, mock_llm_provider: MagicMock) -> None:
        harness = _Harness(mock_llm_provider)
        broken = SourceDocument(filename="broken.pdf", content=b"no pdf here")

        result = await harness.run([broken, _doc("good.pdf", 4)], [_QUESTION])

        broken_result, good_result = result.file_results
        assert broken_result.answers[0].confidence == 0.0
        assert good_result.answers[0].confidence > 0.0
        assert [e.filename for e in harness.steps(PipelineStep.ERROR)] == ["broken.pdf"]

    @pytest.mark.asyncio
    async def test_index_write_failure_fails_document_but_destroys_session(
        self, mock_llm_provider: MagicMock
    ) -> None:
        from src.utils.errors import RAGError

        index = InMemoryVectorIndex()
        index.upsert = AsyncMock(side_effect=RAGError(message="quota exceeded"))
        harness = _Harness(mock_llm_provider, index=index)

        result = await harness.run([_doc()], [_QUESTION])

        assert result.file_results[0].answers[0].confidence == 0.0
        assert len(index.resets) == 1
        assert harness.steps(PipelineStep.ERROR)[0].error is not None

    @pytest.mark.asyncio
    async def test_unexpected_index_error_is_contained_to_its_document(
        self, mock_llm_provider: MagicMock
    ) -> None:
        index = InMemoryVectorIndex()
        original_upsert = index.upsert

        async def _upsert(namespace, records):
            if "-0-first-pdf" in namespace:
                raise RuntimeError("connection reset by index")
            return await original_upsert(namespace, records)

        index.upsert = AsyncMock(side_effect=_upsert)
        harness = _Harness(mock_llm_provider, index=index)

        result = await harness.run([_doc("first.pdf"), _doc("second.pdf")], [_QUESTION])

        first, second = result.file_results
        assert first.answers[0].confidence == 0.0
        assert "connection reset by index" in first.answers[0].answer
        assert second.answers[0].confidence > 0.0
        assert len(index.resets) == 2
        assert harness.events[-1].kind is ProgressEventType.COMPLETION


# ======================================================================
# Run-level failures
# ======================================================================


class TestRunLevelFailures:
    @pytest.mark.asyncio
    async def test_unavailable_embedding_service_ends_with_error(
        self, mock_llm_provider: MagicMock
    ) -> None:
        harness = _Harness(mock_llm_provider, embedder=HashEmbeddingProvider(available=False))

        result = await harness.run([_doc()], [_QUESTION])

        assert result is None
        assert len(harness.terminal) == 1
        assert harness.terminal[0].kind is ProgressEventType.ERROR
        assert "Embedding" in harness.terminal[0].error
        mock_llm_provider.extract_document.assert_not_called()

    @pytest.mark.asyncio
    async def test_llm_without_document_support_ends_with_error(
        self, mock_llm_provider: MagicMock
    ) -> None:
        mock_llm_provider.supports_documents.return_value = False
        harness = _Harness(mock_llm_provider)

        assert await harness.run([_doc()], [_QUESTION]) is None
        assert harness.events[-1].kind is ProgressEventType.ERROR

    @pytest.mark.asyncio
    async def test_blank_queries_end_with_error(self, mock_llm_provider: MagicMock) -> None:
        harness = _Harness(mock_llm_provider)

        assert await harness.run([_doc()], ["   ", ""]) is None
        assert "question" in harness.events[-1].error

    @pytest.mark.asyncio
    async def test_time_limit(self, mock_llm_provider: MagicMock) -> None:
        async def _slow(*args, **kwargs) -> str:
            await asyncio.sleep(5)
            return SAMPLE_EXTRACTION

        mock_llm_provider.extract_document = AsyncMock(side_effect=_slow)
        config = _split_config(limits={"max_processing_time_ms": 100})
        harness = _Harness(mock_llm_provider, config=config)

        result = await harness.run([_doc()], [_QUESTION])

        assert result is None
        assert len(harness.terminal) == 1
        assert harness.terminal[0].kind is ProgressEventType.ERROR
        assert "time limit" in harness.terminal[0].error


# ======================================================================
# Cancellation
# ======================================================================


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancel_during_extraction_publishes_no_error(
        self, mock_llm_provider: MagicMock
    ) -> None:
        started = asyncio.Event()

        async def _hang(*args, **kwargs) -> str:
            started.set()
            await asyncio.Event().wait()
            return SAMPLE_EXTRACTION

        mock_llm_provider.extract_document = AsyncMock(side_effect=_hang)
        harness = _Harness(mock_llm_provider)

        task = asyncio.create_task(harness.run([_doc()], [_QUESTION]))
        await started.wait()
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert harness.terminal == []
        mock_llm_provider.complete.assert_not_called()

    @pytest.mark.asyncio
    async def test_cancel_during_answering_destroys_session(
        self, mock_llm_provider: MagicMock
    ) -> None:
        started = asyncio.Event()

        async def _hang(*args, **kwargs) -> str:
            started.set()
            await asyncio.Event().wait()
            return "WAHR"

        mock_llm_provider.complete = AsyncMock(side_effect=_hang)
        harness = _Harness(mock_llm_provider)

        task = asyncio.create_task(harness.run([_doc()], [_QUESTION, _CONDITION]))
        await started.wait()
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert len(harness.index.resets) == 1
        assert harness.index.namespaces == {}
        assert mock_llm_provider.complete.await_count == 1
