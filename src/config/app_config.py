"""Typed processing configuration.

Mirrors the section layout of ``config/config.yaml``.  Every model is frozen
and every field has a default, so an empty or missing YAML file still yields
a usable configuration.  Built by :func:`src.config.loader.load_app_config`,
which converts validation failures into
:class:`~src.utils.errors.ConfigurationError`.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

# German condition keywords; matched case-insensitively as substrings.
DEFAULT_CONDITION_KEYWORDS: list[str] = [
    "ist",
    "sind",
    "war",
    "waren",
    "wird",
    "werden",
    "kann",
    "können",
    "muss",
    "müssen",
    "sollte",
    "sollten",
    "darf",
    "dürfen",
    "hat",
    "haben",
    "gibt es",
    "existiert",
    "vor dem",
    "nach dem",
    "bis zum",
    "ab dem",
    "spätestens",
    "frühestens",
]

DEFAULT_QUESTION_WORDS: list[str] = [
    "wer",
    "was",
    "wann",
    "wo",
    "wie",
    "warum",
    "welche",
    "welcher",
    "welches",
    "wessen",
    "wem",
    "wen",
]


class _Section(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")


# ---------------------------------------------------------------------------
# ai
# ---------------------------------------------------------------------------


class AIConfig(_Section):
    extraction_max_tokens: int = Field(default=8000, gt=0)
    answering_max_tokens: int = Field(default=2000, gt=0)
    answering_temperature: float = Field(default=0.1, ge=0.0, le=2.0)
    condition_keywords: list[str] = Field(
        default_factory=lambda: list(DEFAULT_CONDITION_KEYWORDS)
    )
    question_words: list[str] = Field(default_factory=lambda: list(DEFAULT_QUESTION_WORDS))


# ---------------------------------------------------------------------------
# processing
# ---------------------------------------------------------------------------


class ExtractionConfig(_Section):
    """Slice extraction batching and progress-step accounting."""

    batch_size: int = Field(default=3, gt=0, description="Slices extracted concurrently.")
    total_steps_multiplier: int = Field(default=2, gt=0)
    base_steps_count: int = Field(default=3, ge=0)
    document_concurrency: int = Field(
        default=1, gt=0, description="Documents processed at once; 1 = sequential."
    )


class EmbeddingsConfig(_Section):
    batch_size: int = Field(default=100, gt=0, description="Index upsert batch size.")
    default_top_k: int = Field(default=5, gt=0)
    indexing_delay_ms: int = Field(default=1000, ge=0)


class RetryConfig(_Section):
    max_retries: int = Field(default=3, ge=0)
    base_delay_ms: int = Field(default=1000, ge=0)
    max_delay_ms: int = Field(default=10000, ge=0)


class ProcessingConfig(_Section):
    extraction: ExtractionConfig = Field(default_factory=ExtractionConfig)
    embeddings: EmbeddingsConfig = Field(default_factory=EmbeddingsConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)


# ---------------------------------------------------------------------------
# pdf
# ---------------------------------------------------------------------------


class PDFValidationConfig(_Section):
    max_file_size_bytes: int = Field(default=32 * 1024 * 1024, gt=0)
    allowed_mime_types: list[str] = Field(default_factory=lambda: ["application/pdf"])
    allowed_extensions: list[str] = Field(default_factory=lambda: [".pdf"])

    @property
    def max_file_size_mb(self) -> float:
        return round(self.max_file_size_bytes / (1024 * 1024), 2)


class PDFSplittingConfig(_Section):
    default_chunk_size: int = Field(default=10, gt=0, description="Pages per slice.")
    default_overlap: int = Field(default=1, ge=0, description="Overlap pages per side.")
    split_threshold: int = Field(default=20, ge=0)
    min_pages_per_chunk: int = Field(default=1, gt=0)
    max_pages_per_chunk: int = Field(default=100, gt=0)

    @model_validator(mode="after")
    def _chunk_size_within_bounds(self) -> PDFSplittingConfig:
        if self.min_pages_per_chunk > self.max_pages_per_chunk:
            raise ValueError("min_pages_per_chunk must not exceed max_pages_per_chunk")
        if not self.min_pages_per_chunk <= self.default_chunk_size <= self.max_pages_per_chunk:
            raise ValueError(
                "default_chunk_size must lie between min_pages_per_chunk "
                "and max_pages_per_chunk"
            )
        return self


class PDFConfig(_Section):
    validation: PDFValidationConfig = Field(default_factory=PDFValidationConfig)
    splitting: PDFSplittingConfig = Field(default_factory=PDFSplittingConfig)


# ---------------------------------------------------------------------------
# text
# ---------------------------------------------------------------------------


class TextProcessingConfig(_Section):
    """Segmentation limits and the patterns used for category markers."""

    max_paragraph_length: int = Field(default=1000, gt=0)
    max_sentence_chunk_length: int = Field(default=800, gt=0)
    min_text_length: int = Field(default=20, ge=0)
    paragraph_split_regex: str = r"\n\s*\n"
    date_regex: str = r"\b\d{1,2}\.\s?\d{1,2}\.\s?\d{2,4}\b"
    email_regex: str = r"[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}"
    phone_regex: str = r"(?:\+49|0)[\d\s/()-]{6,}\d"
    deadline_keywords: list[str] = Field(
        default_factory=lambda: [
            "Frist",
            "Abgabe",
            "Termin",
            "spätestens",
            "bis zum",
            "Deadline",
            "Eröffnung",
            "Zuschlag",
        ]
    )
    submission_keywords: list[str] = Field(
        default_factory=lambda: [
            "Einreichung",
            "einzureichen",
            "elektronisch",
            "schriftlich",
            "Vergabeplattform",
            "Angebotsabgabe",
            "Exemplar",
            "Formblatt",
        ]
    )
    # Abbreviations whose trailing period never ends a sentence.
    abbreviations: list[str] = Field(
        default_factory=lambda: [
            "z.B",
            "z. B",
            "bzw",
            "ca",
            "Nr",
            "Dr",
            "gem",
            "ggf",
            "inkl",
            "zzgl",
            "usw",
            "vgl",
            "Abs",
            "Str",
            "d.h",
            "u.a",
            "etc",
        ]
    )


class TextConfig(_Section):
    processing: TextProcessingConfig = Field(default_factory=TextProcessingConfig)


# ---------------------------------------------------------------------------
# session / logging / limits
# ---------------------------------------------------------------------------


class SessionConfig(_Section):
    session_id_length: int = Field(default=9, gt=0, le=32)
    namespace_prefix: str = Field(default="session", min_length=1)
    cleanup_after_processing: bool = True


_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class LoggingConfig(_Section):
    enable_debug_logs: bool = False
    enable_performance_logs: bool = True
    log_level: str = "INFO"

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        level = value.strip().upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(_LOG_LEVELS)}")
        return level

    @property
    def effective_level(self) -> str:
        """``DEBUG`` when debug logs are enabled, otherwise ``log_level``."""
        return "DEBUG" if self.enable_debug_logs else self.log_level


class LimitsConfig(_Section):
    max_questions_per_session: int = Field(default=50, gt=0)
    max_files_per_session: int = Field(default=10, gt=0)
    max_processing_time_ms: int = Field(default=15 * 60 * 1000, gt=0)
    max_total_file_size: int = Field(default=100 * 1024 * 1024, gt=0)


class AppConfig(_Section):
    """Root of the processing configuration tree."""

    ai: AIConfig = Field(default_factory=AIConfig)
    processing: ProcessingConfig = Field(default_factory=ProcessingConfig)
    pdf: PDFConfig = Field(default_factory=PDFConfig)
    text: TextConfig = Field(default_factory=TextConfig)
    session: SessionConfig = Field(default_factory=SessionConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    limits: LimitsConfig = Field(default_factory=LimitsConfig)
