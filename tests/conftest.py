"""Shared pytest fixtures for the tenderLens test suite."""

from __future__ import annotations

import hashlib
import math
import re
import sys
from collections.abc import Callable
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import fitz  # PyMuPDF
import pytest

from src.config.app_config import AppConfig
from src.interfaces.embedding_provider import IEmbeddingProvider
from src.interfaces.llm_provider import ILLMProvider
from src.interfaces.vector_index_provider import IVectorIndexProvider
from src.models.rag import IndexMatch, IndexRecord
from src.pipeline.orchestrator import DocumentQueryPipeline
from src.pipeline.progress_tracker import ProgressTracker
from src.services.answer_service import AnswerService
from src.services.extraction_service import ExtractionService
from src.services.index_session import IndexSessionManager
from src.services.page_splitter import PageSplitter
from src.services.query_classifier import QueryClassifier
from src.services.text_segmenter import TextSegmenter
from src.utils.logging import configure_logging

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_logging():
    """Point the root log handler at the process stderr before every test.

    Tests that reconfigure logging (the CLI, the app factory) bind the
    handler to a capture stream that pytest closes afterwards.
    """
    configure_logging(log_level="INFO", stream=sys.__stderr__)
    yield


# ---------------------------------------------------------------------------
# Sample content
# ---------------------------------------------------------------------------

SAMPLE_EXTRACTION = """\
**KRITISCHE INFORMATIONEN**
Titel der Ausschreibung: Neubau der Grundschule am Lindenweg in Musterstadt.
Auftraggeber ist die Stadt Musterstadt, Hauptstraße 1, 12345 Musterstadt.

**FRISTEN UND TERMINE**
Die Abgabefrist für Angebote endet am 15.03.2025 um 12:00 Uhr.
Bieterfragen sind bis zum 01.03.2025 einzureichen.

**FORMALE ANFORDERUNGEN**
Die Einreichung erfolgt ausschließlich elektronisch über die Vergabeplattform.
Ansprechpartner: vergabe@musterstadt.de, Telefon 030 1234567.
"""


# ---------------------------------------------------------------------------
# PDF factory
# ---------------------------------------------------------------------------


def make_pdf(page_count: int = 1, text: str = "Seite") -> bytes:
    """Return a real PDF with *page_count* pages labelled ``<text> <n>``."""
    doc = fitz.open()
    try:
        for number in range(1, page_count + 1):
            page = doc.new_page()
            page.insert_text((72, 72), f"{text} {number}")
        return doc.tobytes()
    finally:
        doc.close()


@pytest.fixture
def pdf_factory() -> Callable[..., bytes]:
    return make_pdf


# ---------------------------------------------------------------------------
# Deterministic fakes for the provider interfaces
# ---------------------------------------------------------------------------


class HashEmbeddingProvider(IEmbeddingProvider):
    """Bag-of-words hashing embedder: texts sharing words point the same way."""

    def __init__(self, dimension: int = 64, available: bool = True) -> None:
        self._dimension = dimension
        self._available = available
        self.calls: list[list[str]] = []

    async def embed(self, texts: list[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        return [self._vector(t) for t in texts]

    async def embed_single(self, text: str) -> list[float]:
        return (await self.embed([text]))[0]

    def get_dimension(self) -> int:
        return self._dimension

    def get_provider_name(self) -> str:
        return "hash"

    def is_available(self) -> bool:
        return self._available

    def _vector(self, text: str) -> list[float]:
        vector = [0.0] * self._dimension
        for word in re.findall(r"\w+", text.lower()):
            bucket = int(hashlib.md5(word.encode()).hexdigest(), 16) % self._dimension
            vector[bucket] += 1.0
        norm = math.sqrt(sum(v * v for v in vector))
        if norm == 0:
            vector[0] = 1.0
            return vector
        return [v / norm for v in vector]


class InMemoryVectorIndex(IVectorIndexProvider):
    """Namespaced dict-backed index with cosine scoring."""

    def __init__(self) -> None:
        self.namespaces: dict[str, dict[str, IndexRecord]] = {}
        self.resets: list[str] = []
        self.upserts: list[tuple[str, int]] = []

    async def upsert(self, namespace: str, records: list[IndexRecord]) -> int:
        store = self.namespaces.setdefault(namespace, {})
        for record in records:
            store[record.id] = record
        self.upserts.append((namespace, len(records)))
        return len(records)

    async def query(
        self,
        namespace: str,
        vector: list[float],
        top_k: int,
        include_metadata: bool = True,
    ) -> list[IndexMatch]:
        store = self.namespaces.get(namespace, {})
        scored = [
            IndexMatch(
                id=record.id,
                score=max(0.0, min(1.0, _cosine(vector, record.vector))),
                metadata=dict(record.metadata) if include_metadata else {},
            )
            for record in store.values()
        ]
        scored.sort(key=lambda m: m.score, reverse=True)
        return scored[: max(top_k, 0)]

    async def fetch(self, namespace: str, ids: list[str]) -> list[IndexRecord]:
        store = self.namespaces.get(namespace, {})
        return [store[i] for i in ids if i in store]

    async def reset(self, namespace: str) -> None:
        self.resets.append(namespace)
        self.namespaces.pop(namespace, None)

    def get_provider_name(self) -> str:
        return "memory"

    def is_available(self) -> bool:
        return True


def _cosine(a: list[float] | tuple[float, ...], b: list[float] | tuple[float, ...]) -> float:
    dot = sum(x * y for x, y in zip(a, b))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    return dot / norm if norm else 0.0


@pytest.fixture
def embedding_provider() -> HashEmbeddingProvider:
    return HashEmbeddingProvider()


@pytest.fixture
def vector_index() -> InMemoryVectorIndex:
    return InMemoryVectorIndex()


@pytest.fixture
def mock_llm_provider() -> MagicMock:
    """Mock ILLMProvider that reads documents and answers conditions with WAHR."""
    mock = MagicMock(spec=ILLMProvider)
    mock.extract_document = AsyncMock(return_value=SAMPLE_EXTRACTION)
    mock.complete = AsyncMock(
        return_value="WAHR: Die Abgabefrist ist der 15.03.2025 um 12:00 Uhr."
    )
    mock.supports_documents.return_value = True
    mock.get_provider_name.return_value = "mock-llm"
    mock.is_available.return_value = True
    mock.validate_credentials = AsyncMock(return_value=True)
    return mock


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


def make_app_config(**overrides: Any) -> AppConfig:
    """AppConfig with test-friendly timings; *overrides* are merged per section.

    Example: ``make_app_config(limits={"max_processing_time_ms": 100})``.
    """
    data: dict[str, Any] = {
        "processing": {
            "embeddings": {"indexing_delay_ms": 0},
            "retry": {"max_retries": 2, "base_delay_ms": 0, "max_delay_ms": 0},
        },
        "logging": {"enable_performance_logs": False},
    }
    for section, values in overrides.items():
        target = data.setdefault(section, {})
        for key, value in values.items():
            if isinstance(value, dict) and isinstance(target.get(key), dict):
                target[key].update(value)
            else:
                target[key] = value
    return AppConfig.model_validate(data)


@pytest.fixture
def app_config() -> AppConfig:
    return make_app_config()


# ---------------------------------------------------------------------------
# Pipeline assembled from fakes
# ---------------------------------------------------------------------------


def make_pipeline(
    llm_provider: Any,
    embedding_provider: IEmbeddingProvider | None = None,
    vector_index: IVectorIndexProvider | None = None,
    config: AppConfig | None = None,
    progress_tracker: ProgressTracker | None = None,
) -> DocumentQueryPipeline:
    """Wire a DocumentQueryPipeline the same way src.main does, minus real clients."""
    cfg = config or make_app_config()
    embedder = embedding_provider or HashEmbeddingProvider()
    sessions = IndexSessionManager(
        vector_index=vector_index or InMemoryVectorIndex(),
        embedding_provider=embedder,
        embeddings_config=cfg.processing.embeddings,
        session_config=cfg.session,
    )
    return DocumentQueryPipeline(
        page_splitter=PageSplitter(cfg.pdf.splitting),
        extraction_service=ExtractionService(llm_provider, cfg.ai, cfg.processing.retry),
        text_segmenter=TextSegmenter(cfg.text.processing),
        embedding_provider=embedder,
        session_manager=sessions,
        query_classifier=QueryClassifier.from_config(cfg.ai),
        answer_service=AnswerService(llm_provider, cfg.ai, cfg.processing.retry),
        progress_tracker=progress_tracker or ProgressTracker(),
        config=cfg,
    )
