"""Structured text extraction from PDF slices.

Sends each :class:`~src.models.document.DocumentSlice` to a
document-capable LLM together with instructions tailored to German public
tender documents (Ausschreibungen): critical facts, deadlines, formal
requirements, award criteria, technical specification and contract terms.
When a document was split, the instructions tell the model which part it is
reading and how to mark information that lives in other parts.
"""

from __future__ import annotations

import time

import structlog

from src.config.app_config import AIConfig, RetryConfig
from src.interfaces.llm_provider import ILLMProvider
from src.models.document import DocumentSlice, ExtractedText
from src.utils.errors import ExtractionError, LLMError, RateLimitError
from src.utils.logging import get_logger
from src.utils.retry import retry_on_rate_limit

logger: structlog.BoundLogger = get_logger(__name__)

MISSING_ELSEWHERE_MARKER = "[Siehe andere Dokumentteile]"

_EXTRACTION_SECTIONS = """\
**KRITISCHE INFORMATIONEN** (immer explizit angeben):
- Titel der Ausschreibung
- Referenznummer/Aktenzeichen
- Auftraggeber (Name, Adresse, Kontakt)
- Vergabestelle und Ansprechpartner
- Leistungsumfang und Beschreibung
- Geschätzter Auftragswert
- Laufzeit/Vertragsdauer

**FRISTEN UND TERMINE** (alle Daten vollständig):
- Abgabefrist für Angebote (Datum, Uhrzeit, Ort)
- Frist für Bieterfragen/Rückfragen
- Angebotseröffnung (Datum, Uhrzeit, Ort)
- Zuschlagstermin
- Leistungsbeginn
- Einwendungsfristen

**FORMALE ANFORDERUNGEN** (präzise Details):
- Einreichungsform (elektronisch/schriftlich)
- Anzahl der Exemplare
- Formatvorgaben
- Erforderliche Unterlagen und Nachweise
- Sprache der Angebote
- Gültigkeitsdauer der Angebote

**BEWERTUNG UND ZUSCHLAG**:
- Zuschlagskriterien
- Gewichtung der Kriterien
- Bewertungsverfahren
- Eignungsprüfung
- Mindestanforderungen

**TECHNISCHE SPEZIFIKATIONEN**:
- Detaillierte Leistungsbeschreibung
- Technische Anforderungen
- Qualitätsstandards
- Abnahmekriterien

**VERTRAGLICHE BEDINGUNGEN**:
- Zahlungsmodalitäten
- Gewährleistung
- Vertragsstrafen
- Kündigungsregelungen"""


def build_extraction_prompt(slice_index: int, total_slices: int) -> str:
    """Return the extraction instructions for slice *slice_index* of *total_slices*."""
    multi_part = total_slices > 1
    part_label = f" (Teil {slice_index + 1} von {total_slices})" if multi_part else ""
    prompt = (
        "Extrahieren Sie ALLE wichtigen Informationen aus diesem deutschen "
        f"Ausschreibungsdokument{part_label}. Strukturieren Sie die Informationen "
        "klar und vollständig:\n\n"
        f"{_EXTRACTION_SECTIONS}\n\n"
        "Verwenden Sie eine klare, strukturierte Formatierung mit Überschriften und "
        "Aufzählungen. Bewahren Sie alle spezifischen Details, Zahlen, Daten und "
        "Kontaktinformationen exakt bei. Wenn Informationen fehlen, geben Sie dies "
        "explizit an."
    )
    if multi_part:
        prompt += (
            f"\n\n**HINWEIS**: Dies ist Teil {slice_index + 1} von {total_slices}. "
            "Extrahieren Sie alle verfügbaren Informationen aus diesem Abschnitt und "
            f'kennzeichnen Sie fehlende Informationen mit "{MISSING_ELSEWHERE_MARKER}".'
        )
    return prompt


class ExtractionService:
    """Turns document slices into :class:`ExtractedText` via the LLM."""

    def __init__(
        self,
        llm_provider: ILLMProvider,
        ai_config: AIConfig,
        retry_config: RetryConfig,
    ) -> None:
        self._llm = llm_provider
        self._max_tokens = ai_config.extraction_max_tokens
        self._retry = retry_config

    def is_available(self) -> bool:
        # Text-only providers cannot read PDF slices.
        return self._llm.is_available() and self._llm.supports_documents()

    async def extract(self, document_slice: DocumentSlice) -> ExtractedText:
        """Extract structured text from one slice.

        Rate-limited calls are retried with backoff; any other failure
        surfaces immediately.

        Raises:
            ExtractionError: If the LLM call fails or returns no text.
        """
        prompt = build_extraction_prompt(document_slice.slice_index, document_slice.total_slices)
        started = time.perf_counter()
        try:
            text = await retry_on_rate_limit(
                lambda: self._llm.extract_document(
                    document_slice.content,
                    prompt,
                    media_type="application/pdf",
                    max_tokens=self._max_tokens,
                ),
                max_retries=self._retry.max_retries,
                base_delay_ms=self._retry.base_delay_ms,
                max_delay_ms=self._retry.max_delay_ms,
                operation="extract_document",
            )
        except (LLMError, RateLimitError) as exc:
            # One error type for the orchestrator; the provider name survives.
            raise ExtractionError(
                message=f"Extraction of {document_slice.slice_id} failed: {exc.message}",
                provider_name=exc.provider_name,
            ) from exc

        text = text.strip()
        # A whitespace-only reply would index as an empty document.
        if not text:
            raise ExtractionError(
                message=f"Extraction of {document_slice.slice_id} returned no text",
                provider_name=self._llm.get_provider_name(),
            )

        logger.info(
            "slice_extracted",
            slice_id=document_slice.slice_id,
            pages=f"{document_slice.first_page}-{document_slice.last_page}",
            characters=len(text),
            duration_ms=round((time.perf_counter() - started) * 1000, 1),
        )
        return ExtractedText(
            filename=document_slice.filename,
            slice_index=document_slice.slice_index,
            total_slices=document_slice.total_slices,
            first_page=document_slice.first_page,
            last_page=document_slice.last_page,
            text=text,
        )
