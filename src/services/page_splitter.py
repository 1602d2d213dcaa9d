"""PDF page-range splitting.

Large documents exceed what the extraction service accepts in one call, so
they are cut into overlapping page-range slices.  For each slice starting
at page ``start`` (0, C, 2C, ... while ``start < N``) the primary range is
``[start, min(start + C, N))``; up to O pages after it and up to O pages
before it are added for context.  A document is split only when it has
more than ``split_threshold`` pages; otherwise it becomes one slice.

:func:`compute_page_ranges` is the pure range arithmetic.
:class:`PageSplitter` applies it to real PDF bytes with PyMuPDF, off the
event loop via ``asyncio.to_thread``.
"""

from __future__ import annotations

import asyncio
from typing import NamedTuple

import fitz  # PyMuPDF -- the "fitz" import name is a PyMuPDF convention
import structlog

from src.config.app_config import PDFSplittingConfig
from src.models.document import DocumentSlice, SourceDocument
from src.utils.errors import PDFProcessingError
from src.utils.logging import get_logger

logger: structlog.BoundLogger = get_logger(__name__)


class PageRange(NamedTuple):
    """Page indices of one slice plus its primary (non-overlap) range."""

    primary_start: int
    primary_end: int
    pages: tuple[int, ...]


def compute_page_ranges(
    page_count: int,
    chunk_size: int,
    overlap: int,
    split_threshold: int = 0,
) -> list[PageRange]:
    """Partition ``[0, page_count)`` into overlapping page ranges.

    Deterministic: identical arguments always yield identical ranges.
    ``overlap >= chunk_size`` is legal and produces heavily overlapping
    slices.

    Raises:
        ValueError: If ``chunk_size`` is not positive, ``overlap`` is
            negative or ``page_count`` is not positive.
    """
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")
    if overlap < 0:
        raise ValueError(f"overlap must not be negative, got {overlap}")
    if page_count <= 0:
        raise ValueError(f"page_count must be positive, got {page_count}")

    if page_count <= split_threshold:
        return [PageRange(0, page_count, tuple(range(page_count)))]

    ranges: list[PageRange] = []
    for start in range(0, page_count, chunk_size):
        end = min(start + chunk_size, page_count)
        pages = set(range(start, end))
        # Trailing context, then leading context.
        pages.update(range(end, min(end + overlap, page_count)))
        pages.update(range(max(start - overlap, 0), start))
        ranges.append(PageRange(start, end, tuple(sorted(pages))))
    return ranges


class PageSplitter:
    """Split PDF documents into :class:`DocumentSlice` objects."""

    def __init__(self, config: PDFSplittingConfig) -> None:
        self._chunk_size = config.default_chunk_size
        self._overlap = config.default_overlap
        self._split_threshold = config.split_threshold

    async def split(self, document: SourceDocument) -> list[DocumentSlice]:
        """Split *document* into ordered slices.

        Raises:
            PDFProcessingError: If the PDF cannot be opened, is encrypted,
                or has no pages.
        """
        return await asyncio.to_thread(self._split_sync, document)

    def _split_sync(self, document: SourceDocument) -> list[DocumentSlice]:
        try:
            source = fitz.open(stream=document.content, filetype="pdf")
        except (RuntimeError, ValueError) as exc:
            raise PDFProcessingError(
                message=f"Cannot open {document.filename} as PDF: {exc}",
                provider_name="pymupdf",
            ) from exc

        with source:
            if source.needs_pass:
                raise PDFProcessingError(
                    message=f"{document.filename} is password protected",
                    provider_name="pymupdf",
                )
            page_count = source.page_count
            if page_count == 0:
                raise PDFProcessingError(
                    message=f"{document.filename} has no pages",
                    provider_name="pymupdf",
                )

            ranges = compute_page_ranges(
                page_count, self._chunk_size, self._overlap, self._split_threshold
            )
            slices: list[DocumentSlice] = []
            for index, page_range in enumerate(ranges):
                # An unsplit document is passed on byte for byte.
                if len(ranges) == 1:
                    content = document.content
                else:
                    content = self._extract_pages(source, page_range.pages)
                slices.append(
                    DocumentSlice(
                        filename=document.filename,
                        slice_index=index,
                        total_slices=len(ranges),
                        page_indices=page_range.pages,
                        primary_start=page_range.primary_start,
                        primary_end=page_range.primary_end,
                        content=content,
                    )
                )

        logger.info(
            "pdf_split",
            filename=document.filename,
            page_count=page_count,
            slices=len(slices),
            chunk_size=self._chunk_size,
            overlap=self._overlap,
        )
        return slices

    @staticmethod
    def _extract_pages(source: fitz.Document, pages: tuple[int, ...]) -> bytes:
        """Copy *pages* of *source* into a new PDF and return its bytes."""
        target = fitz.open()
        try:
            for page in pages:
                target.insert_pdf(source, from_page=page, to_page=page)
            # garbage=3 drops resources only the omitted pages referenced.
            return target.tobytes(garbage=3, deflate=True)
        finally:
            target.close()
