"""Unit tests for per-document index sessions."""

from __future__ import annotations

import re
from unittest.mock import AsyncMock

import pytest

from src.config.app_config import EmbeddingsConfig, SessionConfig
from src.models.rag import Segment, SegmentMetadata
from src.services.index_session import IndexSessionManager, sanitize_filename
from src.utils.errors import IndexSessionError, RAGError
from tests.conftest import HashEmbeddingProvider, InMemoryVectorIndex


def _manager(
    index: InMemoryVectorIndex,
    embedder: HashEmbeddingProvider,
    batch_size: int = 2,
    cleanup: bool = True,
) -> IndexSessionManager:
    return IndexSessionManager(
        vector_index=index,
        embedding_provider=embedder,
        embeddings_config=EmbeddingsConfig(batch_size=batch_size, default_top_k=3, indexing_delay_ms=0),
        session_config=SessionConfig(cleanup_after_processing=cleanup),
    )


async def _segments(embedder: HashEmbeddingProvider, texts: list[str]) -> list[Segment]:
    vectors = await embedder.embed(texts)
    return [
        Segment(
            segment_id=f"tender.pdf-chunk-0-segment-{i}",
            text=text,
            vector=tuple(vector),
            metadata=SegmentMetadata(
                filename="tender.pdf",
                slice_index=0,
                total_slices=1,
                segment_index=i,
                text=text,
            ),
        )
        for i, (text, vector) in enumerate(zip(texts, vectors))
    ]


_TEXTS = [
    "Die Abgabefrist endet am 15.03.2025 um 12 Uhr.",
    "Der Auftraggeber ist die Stadt Musterstadt.",
    "Die Einreichung erfolgt elektronisch über die Vergabeplattform.",
    "Zuschlagskriterium ist allein der Preis.",
    "Die Vertragslaufzeit beträgt zwei Jahre.",
]


# ======================================================================
# Identifiers
# ======================================================================


class TestIdentifiers:
    def test_run_id_format(self) -> None:
        manager = _manager(InMemoryVectorIndex(), HashEmbeddingProvider())

        run_id = manager.new_run_id()

        assert re.fullmatch(r"session-\d{13}-[0-9a-z]{9}", run_id)
        assert manager.new_run_id() != run_id

    def test_session_id_includes_position_and_sanitized_name(self) -> None:
        session_id = IndexSessionManager.session_id_for("session-1-abc", "Ausschreibung 2025.PDF", 2)
        assert session_id == "session-1-abc-2-ausschreibung-2025-pdf"

    def test_same_filename_different_positions_are_distinct(self) -> None:
        first = IndexSessionManager.session_id_for("run", "a.pdf", 0)
        second = IndexSessionManager.session_id_for("run", "a.pdf", 1)
        assert first != second

    @pytest.mark.parametrize(
        ("filename", "expected"),
        [
            ("Leistungs_Verzeichnis (final).pdf", "leistungs-verzeichnis-final-pdf"),
            ("äöü.pdf", "pdf"),
            ("!!!", "document"),
            ("x" * 80, "x" * 40),
        ],
    )
    def test_sanitize_filename(self, filename: str, expected: str) -> None:
        assert sanitize_filename(filename) == expected


# ======================================================================
# populate / query / destroy
# ======================================================================


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_populate_writes_in_batches(self) -> None:
        index, embedder = InMemoryVectorIndex(), HashEmbeddingProvider()
        manager = _manager(index, embedder, batch_size=2)

        written = await manager.populate("s1", await _segments(embedder, _TEXTS))

        assert written == 5
        assert [count for _, count in index.upserts] == [2, 2, 1]
        assert len(index.namespaces["s1"]) == 5

    @pytest.mark.asyncio
    async def test_populate_empty_is_noop(self) -> None:
        index = InMemoryVectorIndex()
        manager = _manager(index, HashEmbeddingProvider())

        assert await manager.populate("s1", []) == 0
        assert index.upserts == []

    @pytest.mark.asyncio
    async def test_rewriting_a_segment_overwrites_it(self) -> None:
        index, embedder = InMemoryVectorIndex(), HashEmbeddingProvider()
        manager = _manager(index, embedder)
        segments = await _segments(embedder, _TEXTS)

        await manager.populate("s1", segments)
        await manager.populate("s1", segments[:2])

        assert len(index.namespaces["s1"]) == 5

    @pytest.mark.asyncio
    async def test_query_is_self_consistent(self) -> None:
        index, embedder = InMemoryVectorIndex(), HashEmbeddingProvider()
        manager = _manager(index, embedder)
        segments = await _segments(embedder, _TEXTS)
        await manager.populate("s1", segments)

        matches = await manager.query("s1", _TEXTS[2])

        assert matches[0].id == segments[2].segment_id
        assert matches[0].score == pytest.approx(1.0)
        assert matches[0].metadata.text == _TEXTS[2]
        assert [m.score for m in matches] == sorted((m.score for m in matches), reverse=True)

    @pytest.mark.asyncio
    async def test_query_returns_at_most_top_k(self) -> None:
        index, embedder = InMemoryVectorIndex(), HashEmbeddingProvider()
        manager = _manager(index, embedder)
        await manager.populate("s1", await _segments(embedder, _TEXTS))

        assert len(await manager.query("s1", "Frist")) == 3
        assert len(await manager.query("s1", "Frist", top_k=10)) == 5

    @pytest.mark.asyncio
    async def test_destroyed_session_returns_no_matches(self) -> None:
        index, embedder = InMemoryVectorIndex(), HashEmbeddingProvider()
        manager = _manager(index, embedder)
        await manager.populate("s1", await _segments(embedder, _TEXTS))

        assert await manager.destroy("s1") is True
        assert await manager.query("s1", _TEXTS[0]) == []

    @pytest.mark.asyncio
    async def test_sessions_do_not_see_each_other(self) -> None:
        index, embedder = InMemoryVectorIndex(), HashEmbeddingProvider()
        manager = _manager(index, embedder)
        await manager.populate("s1", await _segments(embedder, _TEXTS[:2]))

        assert await manager.query("s2", _TEXTS[0]) == []

    @pytest.mark.asyncio
    async def test_destroy_failure_is_reported_not_raised(self) -> None:
        index = InMemoryVectorIndex()
        index.reset = AsyncMock(side_effect=RAGError(message="down", provider_name="memory"))
        manager = _manager(index, HashEmbeddingProvider())

        assert await manager.destroy("s1") is False

    @pytest.mark.asyncio
    async def test_write_failure_raises_index_session_error(self) -> None:
        index, embedder = InMemoryVectorIndex(), HashEmbeddingProvider()
        index.upsert = AsyncMock(side_effect=RAGError(message="quota", provider_name="memory"))
        manager = _manager(index, embedder)

        with pytest.raises(IndexSessionError):
            await manager.populate("s1", await _segments(embedder, _TEXTS))

    @pytest.mark.asyncio
    async def test_open_destroys_on_error(self) -> None:
        index = InMemoryVectorIndex()
        manager = _manager(index, HashEmbeddingProvider())

        with pytest.raises(RuntimeError):
            async with manager.open("s1"):
                raise RuntimeError("boom")

        assert index.resets == ["s1"]

    @pytest.mark.asyncio
    async def test_open_keeps_session_when_cleanup_disabled(self) -> None:
        index = InMemoryVectorIndex()
        manager = _manager(index, HashEmbeddingProvider(), cleanup=False)

        async with manager.open("s1") as session_id:
            assert session_id == "s1"

        assert index.resets == []
