"""Utility modules for tenderLens.

- **errors** -- Domain exception hierarchy rooted at TenderLensError.
- **concurrency** -- semaphore-throttled ``asyncio.gather``.
- **logging** -- structlog setup with console/JSON dual rendering.
- **retry** (not re-exported here) -- backoff for rate-limited calls.
"""

from src.utils.concurrency import throttled_gather
from src.utils.errors import (
    ConfigurationError,
    DocumentValidationError,
    ExtractionError,
    IndexSessionError,
    LLMError,
    PDFProcessingError,
    PipelineError,
    ProviderUnavailableError,
    RAGError,
    RateLimitError,
    TenderLensError,
)
from src.utils.logging import configure_logging, get_logger

__all__ = [
    "ConfigurationError",
    "DocumentValidationError",
    "ExtractionError",
    "IndexSessionError",
    "LLMError",
    "PDFProcessingError",
    "PipelineError",
    "ProviderUnavailableError",
    "RAGError",
    "RateLimitError",
    "TenderLensError",
    "configure_logging",
    "get_logger",
    "throttled_gather",
]
