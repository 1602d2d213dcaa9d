"""Application settings loaded from environment variables via pydantic-settings.

Secrets and deployment values only.  Processing constants (slice sizes,
batch sizes, keyword lists) live in ``config/config.yaml`` and are loaded
into :class:`~src.config.app_config.AppConfig` by
:func:`~src.config.loader.load_config`.

Field names map to upper-cased environment variables, e.g.
``anthropic_api_key`` <- ``ANTHROPIC_API_KEY``.  Environment variables win
over the ``.env`` file, which wins over the defaults below.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """tenderLens application settings.

    Environment variables override defaults. Loaded from .env file when present.
    """

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    # === LLM Providers ===
    # Empty string = "not configured"; main.py skips providers with empty keys.
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-sonnet-4-20250514"
    openai_api_key: str = ""
    openai_base_url: str = ""
    openai_text_model: str = "gpt-4o"

    # === Embeddings ===
    openai_embedding_model: str = "text-embedding-3-small"
    # 0 = model default
    openai_embedding_dimensions: int = 0

    # === Vector index ===
    # Empty = in-memory index; sessions are per-run and destroyed anyway.
    chromadb_persist_dir: str = ""

    # === App Config ===
    config_path: str = "config/config.yaml"
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    app_env: str = "development"
    log_level: str = "INFO"

    def get_available_llm_providers(self) -> list[str]:
        """Return LLM provider names with non-empty API keys, in preference order."""
        providers: list[str] = []
        if self.anthropic_api_key:
            providers.append("anthropic")
        if self.openai_api_key:
            providers.append("openai")
        return providers
