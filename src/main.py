"""tenderLens FastAPI application entry point.

Wires together all providers, services, and routes via dependency injection.
Loads configuration from ``.env`` and ``config/config.yaml`` and configures
structured logging.

Also exposes :func:`build_pipeline` for the CLI and for scripting usage
outside the web server.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any

import structlog
import uvicorn
from fastapi import FastAPI

from src.api.middleware import (
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    configure_cors,
)
from src.api.routes import router as api_router
from src.config.app_config import AppConfig
from src.config.loader import load_app_config
from src.config.settings import Settings
from src.interfaces.embedding_provider import IEmbeddingProvider
from src.interfaces.llm_provider import ILLMProvider
from src.pipeline.orchestrator import DocumentQueryPipeline
from src.pipeline.progress_tracker import ProgressTracker
from src.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider
from src.providers.llm.anthropic_provider import AnthropicLLMProvider
from src.providers.llm.openai_provider import OpenAILLMProvider
from src.providers.vector_store.chromadb_provider import ChromaDBIndexProvider
from src.services.answer_service import AnswerService
from src.services.extraction_service import ExtractionService
from src.services.index_session import IndexSessionManager
from src.services.page_splitter import PageSplitter
from src.services.query_classifier import QueryClassifier
from src.services.text_segmenter import TextSegmenter
from src.utils.logging import configure_logging, get_logger

_VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Module-level settings
# ---------------------------------------------------------------------------

settings = Settings()

_logger: structlog.BoundLogger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Provider selection
# ---------------------------------------------------------------------------


def _build_llm_provider(app_settings: Settings) -> ILLMProvider:
    """Select the first available LLM provider based on configured API keys.

    Priority order: Anthropic -> OpenAI.  With neither key set the
    Anthropic adapter is returned unconfigured; runs then fail at start
    with a provider-unavailable error instead of the app refusing to boot.
    """
    if app_settings.anthropic_api_key:
        return AnthropicLLMProvider(settings=app_settings)
    if app_settings.openai_api_key:
        return OpenAILLMProvider(settings=app_settings)
    _logger.warning("no_llm_provider_configured")
    return AnthropicLLMProvider(settings=app_settings)


def _build_embedding_provider(app_settings: Settings) -> IEmbeddingProvider:
    provider = OpenAIEmbeddingProvider(settings=app_settings)
    if not provider.is_available():
        _logger.warning("no_embedding_provider_configured")
    return provider


# ---------------------------------------------------------------------------
# Component construction
# ---------------------------------------------------------------------------


def build_pipeline(
    app_settings: Settings | None = None,
    app_config: AppConfig | None = None,
    progress_tracker: ProgressTracker | None = None,
) -> dict[str, Any]:
    """Construct the pipeline and every collaborator it needs.

    Parameters
    ----------
    app_settings:
        Application settings.  Uses module-level ``settings`` if not provided.
    app_config:
        Processing configuration.  Loaded from ``settings.config_path`` if
        not provided.
    progress_tracker:
        Tracker to publish progress through; a new one is created if omitted.

    Returns
    -------
    dict
        Named components, including ``pipeline`` and ``progress_tracker``.

    Raises
    ------
    ConfigurationError
        If the configuration file fails validation.
    """
    s = app_settings or settings
    cfg = app_config or load_app_config(settings=s)
    tracker = progress_tracker or ProgressTracker()

    llm = _build_llm_provider(s)
    embedding_provider = _build_embedding_provider(s)
    vector_index = ChromaDBIndexProvider(persist_directory=s.chromadb_persist_dir)

    session_manager = IndexSessionManager(
        vector_index=vector_index,
        embedding_provider=embedding_provider,
        embeddings_config=cfg.processing.embeddings,
        session_config=cfg.session,
    )
    pipeline = DocumentQueryPipeline(
        page_splitter=PageSplitter(cfg.pdf.splitting),
        extraction_service=ExtractionService(llm, cfg.ai, cfg.processing.retry),
        text_segmenter=TextSegmenter(cfg.text.processing),
        embedding_provider=embedding_provider,
        session_manager=session_manager,
        query_classifier=QueryClassifier.from_config(cfg.ai),
        answer_service=AnswerService(llm, cfg.ai, cfg.processing.retry),
        progress_tracker=tracker,
        config=cfg,
    )

    return {
        "pipeline": pipeline,
        "progress_tracker": tracker,
        "app_config": cfg,
        "llm_provider": llm,
        "embedding_provider": embedding_provider,
        "vector_index": vector_index,
        "settings": s,
    }


def _build_all(app_settings: Settings) -> dict[str, Any]:
    """Construct every provider and service instance for the application.

    Returns a flat dict of named components to be stored on ``app.state``.
    """
    components = build_pipeline(app_settings)
    llm: ILLMProvider = components["llm_provider"]
    embedding_provider: IEmbeddingProvider = components["embedding_provider"]

    components["provider_registry"] = {
        "llm": llm.is_available() and llm.supports_documents(),
        "llm_provider": llm.get_provider_name(),
        "embedding": embedding_provider.is_available(),
        "embedding_provider": embedding_provider.get_provider_name(),
    }
    components["primary_llm_name"] = llm.get_provider_name()
    return components


# ---------------------------------------------------------------------------
# Application lifespan (startup / shutdown)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def _lifespan(application: FastAPI):  # noqa: ANN201
    """Initialise all providers and services on startup."""
    components = _build_all(settings)
    # logging.enable_debug_logs in the config file lowers the level to DEBUG.
    configure_logging(
        log_level=components["app_config"].logging.effective_level,
        json_output=(settings.app_env == "production"),
    )

    for key, value in components.items():
        setattr(application.state, key, value)

    _logger.info(
        "app_startup",
        version=_VERSION,
        environment=settings.app_env,
        primary_llm=components["primary_llm_name"],
        embedding=components["embedding_provider"].get_provider_name(),
        persistent_index=bool(settings.chromadb_persist_dir),
    )

    yield

    _logger.info("app_shutdown")


# ---------------------------------------------------------------------------
# FastAPI application factory
# ---------------------------------------------------------------------------


def create_app() -> FastAPI:
    """Build and configure the FastAPI application."""
    configure_logging(
        log_level=settings.log_level,
        json_output=(settings.app_env == "production"),
    )
    application = FastAPI(
        title="tenderLens API",
        version=_VERSION,
        description=(
            "Upload tender PDFs together with questions and true/false "
            "conditions; each document is extracted, indexed in its own "
            "session and every query is answered from the retrieved context, "
            "with progress streamed as newline-delimited JSON."
        ),
        lifespan=_lifespan,
    )

    # -- Middleware (order matters: last added = first executed) --
    application.add_middleware(ErrorHandlingMiddleware)
    application.add_middleware(RequestLoggingMiddleware)
    configure_cors(application)

    # -- API routes --
    application.include_router(api_router)

    return application


app = create_app()

# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    uvicorn.run(
        "src.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=(settings.app_env == "development"),
    )
