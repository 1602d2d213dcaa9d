"""Anthropic LLM provider adapter.

Wraps the ``anthropic`` async client to implement :class:`ILLMProvider`.
Supports both text completion and native PDF reading via the Claude
Messages API.

Key differences from the OpenAI adapter:
    - System prompt is a separate parameter, not a message in the list
    - Documents use a "document" content block with a base64 source,
      marked ephemeral-cacheable so follow-up slices of the same upload
      can reuse the prompt cache
    - Response content is a list of blocks, so we filter for text blocks
      and join them
"""

from __future__ import annotations

import base64

import anthropic
import structlog

from src.config.settings import Settings
from src.interfaces.llm_provider import ILLMProvider
from src.utils.errors import LLMError, ProviderUnavailableError, RateLimitError

logger = structlog.get_logger(logger_name=__name__)


class AnthropicLLMProvider(ILLMProvider):
    """LLM provider backed by the Anthropic Claude API.

    Uses ``claude-sonnet-4-20250514`` by default (``ANTHROPIC_MODEL``) for
    both document extraction and answer synthesis.
    """

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._api_key = settings.anthropic_api_key
        self._client: anthropic.AsyncAnthropic | None = (
            anthropic.AsyncAnthropic(api_key=self._api_key) if self._api_key else None
        )
        self._model = settings.anthropic_model or "claude-sonnet-4-20250514"

    # ------------------------------------------------------------------
    # ILLMProvider implementation
    # ------------------------------------------------------------------

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.3,
        max_tokens: int = 4000,
    ) -> str:
        """Generate a text completion via the Anthropic Messages API."""
        kwargs: dict = {
            "model": self._model,
            "max_tokens": max_tokens,
            "messages": [{"role": "user", "content": user_prompt}],
            "temperature": temperature,
        }
        if system_prompt:
            kwargs["system"] = system_prompt
        return await self._create(kwargs, event="anthropic_completion")

    async def extract_document(
        self,
        document_bytes: bytes,
        prompt: str,
        media_type: str = "application/pdf",
        max_tokens: int = 8000,
    ) -> str:
        """Read a PDF slice with Claude's document support.

        The document block goes BEFORE the text prompt in the content array.
        """
        b64 = base64.b64encode(document_bytes).decode("utf-8")
        kwargs: dict = {
            "model": self._model,
            "max_tokens": max_tokens,
            "messages": [
                {
                    "role": "user",
                    "content": [
                        {
                            "type": "document",
                            "source": {
                                "type": "base64",
                                "media_type": media_type,
                                "data": b64,
                            },
                            "cache_control": {"type": "ephemeral"},
                        },
                        {"type": "text", "text": prompt},
                    ],
                }
            ],
        }
        return await self._create(kwargs, event="anthropic_document_extract")

    def supports_documents(self) -> bool:
        return True

    def is_available(self) -> bool:
        """Return ``True`` if an Anthropic API key is configured."""
        return bool(self._api_key)

    async def validate_credentials(self) -> bool:
        """Try a minimal completion to verify the API key works."""
        if not self.is_available():
            return False
        try:
            await self._require_client().messages.create(
                model=self._model,
                max_tokens=10,
                messages=[{"role": "user", "content": "hi"}],
            )
            return True
        except anthropic.APIError:
            return False

    def get_provider_name(self) -> str:
        return "anthropic"

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _require_client(self) -> anthropic.AsyncAnthropic:
        if self._client is None:
            raise ProviderUnavailableError(
                message="ANTHROPIC_API_KEY is not configured",
                provider_name=self.get_provider_name(),
            )
        return self._client

    async def _create(self, kwargs: dict, event: str) -> str:
        try:
            response = await self._require_client().messages.create(**kwargs)
        except anthropic.RateLimitError as exc:
            raise RateLimitError(
                message=f"Anthropic rate limit exceeded: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        except anthropic.APIError as exc:
            raise LLMError(
                message=f"Anthropic API error: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        text_blocks = [block.text for block in response.content if block.type == "text"]
        if not text_blocks:
            raise LLMError(
                message="Anthropic returned no text content",
                provider_name=self.get_provider_name(),
            )
        logger.info(
            event,
            model=self._model,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
        )
        return "\n".join(text_blocks)
