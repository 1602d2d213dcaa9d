"""Intake checks for uploaded documents and query lists.

Shared by the HTTP route and the CLI so both reject the same inputs:

* a file counts as a PDF only if BOTH its MIME type and its extension say so;
* a single file above ``max_file_size_bytes`` or a batch above
  ``max_total_file_size`` is rejected (413);
* too many files or queries, or none at all, is a client error (400).
"""

from __future__ import annotations

from pathlib import PurePath

from src.config.app_config import LimitsConfig, PDFValidationConfig
from src.models.document import SourceDocument
from src.utils.errors import DocumentValidationError


def is_pdf_upload(filename: str, content_type: str | None, config: PDFValidationConfig) -> bool:
    """Return ``True`` if both the MIME type and the extension allow the file."""
    # Drops MIME parameters such as "; charset=binary".
    mime = (content_type or "").split(";")[0].strip().lower()
    extension = PurePath(filename or "").suffix.lower()
    allowed_extensions = {e.lower() for e in config.allowed_extensions}
    allowed_mimes = {m.lower() for m in config.allowed_mime_types}
    return mime in allowed_mimes and extension in allowed_extensions


def check_file_size(filename: str, size: int, config: PDFValidationConfig) -> None:
    """Raise a 413 :class:`DocumentValidationError` if *size* is over the limit."""
    if size > config.max_file_size_bytes:
        raise DocumentValidationError(
            message=(
                f"File too large: {filename} exceeds {config.max_file_size_mb} MB "
                f"({config.max_file_size_bytes} bytes)."
            ),
            status_code=413,
        )


def normalize_queries(raw_queries: list[str]) -> list[str]:
    """Strip queries and drop blank ones, keeping order."""
    return [q.strip() for q in raw_queries if q and q.strip()]


def validate_batch(
    documents: list[SourceDocument],
    queries: list[str],
    pdf_config: PDFValidationConfig,
    limits: LimitsConfig,
) -> None:
    """Check the whole batch before any processing starts.

    Raises:
        DocumentValidationError: 400 for missing or too many inputs, 413 for
            oversized files.
    """
    if not queries:
        raise DocumentValidationError(message="At least one question is required")
    if not documents:
        raise DocumentValidationError(message="At least one PDF file is required")
    if len(queries) > limits.max_questions_per_session:
        raise DocumentValidationError(
            message=(
                f"Too many questions: {len(queries)} "
                f"(maximum {limits.max_questions_per_session})"
            )
        )
    if len(documents) > limits.max_files_per_session:
        raise DocumentValidationError(
            message=(
                f"Too many files: {len(documents)} (maximum {limits.max_files_per_session})"
            )
        )
    # Per-file limit first so the message names the offending file.
    for document in documents:
        check_file_size(document.filename, document.size, pdf_config)
    total = sum(d.size for d in documents)
    if total > limits.max_total_file_size:
        raise DocumentValidationError(
            message=(
                f"Total upload size {total} bytes exceeds the limit of "
                f"{limits.max_total_file_size} bytes"
            ),
            status_code=413,
        )
