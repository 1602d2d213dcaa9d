"""Unit tests for ExtractionService and its prompt builder."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from src.config.app_config import AIConfig, RetryConfig
from src.models.document import DocumentSlice
from src.services.extraction_service import (
    MISSING_ELSEWHERE_MARKER,
    ExtractionService,
    build_extraction_prompt,
)
from src.utils.errors import ExtractionError, LLMError, RateLimitError

_NO_DELAY = RetryConfig(max_retries=2, base_delay_ms=0, max_delay_ms=0)


def _make_slice(index: int = 0, total: int = 1) -> DocumentSlice:
    return DocumentSlice(
        filename="tender.pdf",
        slice_index=index,
        total_slices=total,
        page_indices=(3, 4, 5),
        primary_start=4,
        primary_end=5,
        content=b"%PDF-1.7 fake",
    )


class TestBuildExtractionPrompt:
    def test_single_part_has_no_part_note(self) -> None:
        prompt = build_extraction_prompt(0, 1)

        assert "Ausschreibungsdokument." in prompt
        assert "Teil" not in prompt
        assert MISSING_ELSEWHERE_MARKER not in prompt

    def test_multi_part_mentions_position_and_marker(self) -> None:
        prompt = build_extraction_prompt(1, 3)

        assert "(Teil 2 von 3)" in prompt
        assert "Dies ist Teil 2 von 3" in prompt
        assert MISSING_ELSEWHERE_MARKER in prompt

    def test_lists_all_sections(self) -> None:
        prompt = build_extraction_prompt(0, 1)
        for heading in ("KRITISCHE INFORMATIONEN", "FRISTEN UND TERMINE", "VERTRAGLICHE BEDINGUNGEN"):
            assert heading in prompt


class TestExtractionService:
    @pytest.mark.asyncio
    async def test_extract_returns_text_with_provenance(self, mock_llm_provider: MagicMock) -> None:
        mock_llm_provider.extract_document = AsyncMock(return_value="  Inhalt der Seiten  ")
        service = ExtractionService(mock_llm_provider, AIConfig(), _NO_DELAY)

        extracted = await service.extract(_make_slice(1, 3))

        assert extracted.text == "Inhalt der Seiten"
        assert extracted.slice_id == "tender.pdf-chunk-1"
        assert (extracted.first_page, extracted.last_page) == (3, 5)
        args, kwargs = mock_llm_provider.extract_document.call_args
        assert args[0] == b"%PDF-1.7 fake"
        assert "Teil 2 von 3" in args[1]
        assert kwargs["max_tokens"] == AIConfig().extraction_max_tokens

    @pytest.mark.asyncio
    async def test_rate_limit_is_retried(self, mock_llm_provider: MagicMock) -> None:
        mock_llm_provider.extract_document = AsyncMock(
            side_effect=[RateLimitError(provider_name="mock"), "Text nach Wiederholung"]
        )
        service = ExtractionService(mock_llm_provider, AIConfig(), _NO_DELAY)

        extracted = await service.extract(_make_slice())

        assert extracted.text == "Text nach Wiederholung"
        assert mock_llm_provider.extract_document.await_count == 2

    @pytest.mark.asyncio
    async def test_llm_error_is_not_retried(self, mock_llm_provider: MagicMock) -> None:
        mock_llm_provider.extract_document = AsyncMock(
            side_effect=LLMError(message="bad request", provider_name="mock")
        )
        service = ExtractionService(mock_llm_provider, AIConfig(), _NO_DELAY)

        with pytest.raises(ExtractionError, match="bad request"):
            await service.extract(_make_slice())
        assert mock_llm_provider.extract_document.await_count == 1

    @pytest.mark.asyncio
    async def test_persistent_rate_limit_becomes_extraction_error(
        self, mock_llm_provider: MagicMock
    ) -> None:
        mock_llm_provider.extract_document = AsyncMock(side_effect=RateLimitError())
        service = ExtractionService(mock_llm_provider, AIConfig(), _NO_DELAY)

        with pytest.raises(ExtractionError):
            await service.extract(_make_slice())
        assert mock_llm_provider.extract_document.await_count == 3

    @pytest.mark.asyncio
    async def test_blank_response_raises(self, mock_llm_provider: MagicMock) -> None:
        mock_llm_provider.extract_document = AsyncMock(return_value="   ")
        service = ExtractionService(mock_llm_provider, AIConfig(), _NO_DELAY)

        with pytest.raises(ExtractionError, match="no text"):
            await service.extract(_make_slice())

    def test_is_available_requires_document_support(self, mock_llm_provider: MagicMock) -> None:
        service = ExtractionService(mock_llm_provider, AIConfig(), _NO_DELAY)
        assert service.is_available() is True

        mock_llm_provider.supports_documents.return_value = False
        assert service.is_available() is False
