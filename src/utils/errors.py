"""Custom exception hierarchy for tenderLens.

All application exceptions inherit from :class:`TenderLensError`, which
carries an optional ``provider_name`` so error handlers can identify which
external service (e.g. "anthropic", "openai_embedding", "chromadb") caused
the failure.

The hierarchy is organized by pipeline domain:

    TenderLensError  (base -- catch-all for any tenderLens error)
    +-- DocumentValidationError  (upload rejected: type, extension, size)
    +-- PDFProcessingError       (unreadable PDF / page splitting failed)
    +-- ExtractionError          (LLM text extraction from a document slice)
    +-- PipelineError            (orchestration / run-level failure)
    +-- ConfigurationError       (startup / invalid config)
    +-- LLMError                 (any LLM API call failure)
    +-- RateLimitError           (provider rate-limit exceeded)
    +-- ProviderUnavailableError (external service down / unreachable)
    +-- RAGError                 (embedding or vector-index failure)
        +-- IndexSessionError    (per-document index session lifecycle)

Callers handle errors at the level they care about -- retry on
RateLimitError, skip a slice on ExtractionError, abort the run on
ConfigurationError.
"""


class TenderLensError(Exception):
    """Base exception for all tenderLens errors.

    Every subclass carries a human-readable ``message`` and an optional
    ``provider_name`` identifying which external service triggered the
    error.  ``__str__`` prefixes the provider name in brackets for
    structured log output, e.g. ``[anthropic] Rate limit exceeded``.
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Document intake
# ---------------------------------------------------------------------------

class DocumentValidationError(TenderLensError):
    """Raised when an uploaded document is rejected before processing.

    ``status_code`` is the HTTP status the API layer should answer with
    (400 for malformed input, 413 for oversized payloads, 415 for a
    non-PDF upload).
    """

    def __init__(
        self,
        message: str = "Document failed validation",
        provider_name: str | None = None,
        status_code: int = 400,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
        self._status_code = status_code

    @property
    def status_code(self) -> int:
        return self._status_code


class PDFProcessingError(TenderLensError):
    """Raised when a PDF cannot be opened or sliced into page ranges."""

    def __init__(
        self,
        message: str = "PDF processing failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ExtractionError(TenderLensError):
    """Raised when text extraction from a document slice fails."""

    def __init__(
        self,
        message: str = "Text extraction failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# External service / provider errors
# ---------------------------------------------------------------------------

class ProviderUnavailableError(TenderLensError):
    """Raised when an external service or provider is unreachable."""

    def __init__(
        self,
        message: str = "External service is unavailable",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class RateLimitError(TenderLensError):
    """Raised when an API rate limit is exceeded.

    The extraction and answer services retry this one with exponential
    backoff (see :mod:`src.utils.retry`); nothing else is retried.
    """

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class LLMError(TenderLensError):
    """Raised when an LLM API call fails or returns an unusable response."""

    def __init__(
        self,
        message: str = "LLM API call failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Pipeline / configuration errors
# ---------------------------------------------------------------------------

class PipelineError(TenderLensError):
    """Raised when a run fails as a whole (e.g. processing time exceeded)."""

    def __init__(
        self,
        message: str = "Pipeline orchestration failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ConfigurationError(TenderLensError):
    """Raised when configuration is invalid or missing at startup."""

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# RAG / vector-index errors
# ---------------------------------------------------------------------------

class RAGError(TenderLensError):
    """Raised when an embedding or vector-index operation fails."""

    def __init__(
        self,
        message: str = "RAG operation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class IndexSessionError(RAGError):
    """Raised when populating or querying a per-document index session fails."""

    def __init__(
        self,
        message: str = "Index session operation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
