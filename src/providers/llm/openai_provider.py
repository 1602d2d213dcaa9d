"""OpenAI-compatible LLM provider adapter.

Wraps the ``openai`` async client to implement :class:`ILLMProvider`.
When a custom ``openai_base_url`` is configured the client points at that
URL instead of the default OpenAI endpoint.  PDF slices are sent as a
base64 ``file`` content part, which only the OpenAI endpoint itself
understands, so document support is switched off for custom endpoints.
"""

from __future__ import annotations

import base64

import openai
import structlog

from src.config.settings import Settings
from src.interfaces.llm_provider import ILLMProvider
from src.utils.errors import LLMError, ProviderUnavailableError, RateLimitError

logger = structlog.get_logger(logger_name=__name__)


class OpenAILLMProvider(ILLMProvider):
    """LLM provider backed by an OpenAI-compatible chat completions API.

    Uses ``gpt-4o`` by default (``OPENAI_TEXT_MODEL``).
    """

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._api_key = settings.openai_api_key

        client_kwargs: dict = {
            "api_key": self._api_key,
            "timeout": openai.Timeout(120.0, connect=10.0),
        }
        if settings.openai_base_url:
            client_kwargs["base_url"] = settings.openai_base_url

        # The SDK rejects an empty key at construction; the client is only
        # built when one is configured.
        self._client: openai.AsyncOpenAI | None = (
            openai.AsyncOpenAI(**client_kwargs) if self._api_key else None
        )
        self._model = settings.openai_text_model or "gpt-4o"
        self._has_documents = not settings.openai_base_url
        self._provider_label = (
            "openai-compatible" if settings.openai_base_url else "openai"
        )

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
        """Generate a text completion via the chat completions API."""
        messages: list[dict] = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": user_prompt})
        return await self._create(
            messages,
            max_tokens=max_tokens,
            temperature=temperature,
            event="openai_completion",
        )

    async def extract_document(
        self,
        document_bytes: bytes,
        prompt: str,
        media_type: str = "application/pdf",
        max_tokens: int = 8000,
    ) -> str:
        """Read a PDF slice passed inline as a base64 data URI file part."""
        if not self._has_documents:
            raise LLMError(
                message="Document input not supported by this provider configuration",
                provider_name=self.get_provider_name(),
            )
        b64 = base64.b64encode(document_bytes).decode("utf-8")
        messages = [
            {
                "role": "user",
                "content": [
                    {
                        "type": "file",
                        "file": {
                            "filename": "document.pdf",
                            "file_data": f"data:{media_type};base64,{b64}",
                        },
                    },
                    {"type": "text", "text": prompt},
                ],
            }
        ]
        return await self._create(
            messages, max_tokens=max_tokens, event="openai_document_extract"
        )

    def supports_documents(self) -> bool:
        return self._has_documents

    def is_available(self) -> bool:
        """Return ``True`` if an API key is configured (doesn't verify it works)."""
        return bool(self._api_key)

    async def validate_credentials(self) -> bool:
        """List models to verify the key without incurring inference costs."""
        if not self.is_available():
            return False
        try:
            await self._require_client().models.list()
            return True
        except openai.APIError:
            return False

    def get_provider_name(self) -> str:
        """Return 'openai' or 'openai-compatible' depending on configuration."""
        return self._provider_label

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _require_client(self) -> openai.AsyncOpenAI:
        if self._client is None:
            raise ProviderUnavailableError(
                message="OPENAI_API_KEY is not configured",
                provider_name=self.get_provider_name(),
            )
        return self._client

    async def _create(
        self,
        messages: list[dict],
        max_tokens: int,
        event: str,
        temperature: float | None = None,
    ) -> str:
        kwargs: dict = {
            "model": self._model,
            "messages": messages,
            "max_tokens": max_tokens,
        }
        if temperature is not None:
            kwargs["temperature"] = temperature
        try:
            response = await self._require_client().chat.completions.create(**kwargs)
        except openai.RateLimitError as exc:
            raise RateLimitError(
                message=f"{self._provider_label} rate limit exceeded: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        except openai.APITimeoutError as exc:
            raise LLMError(
                message=f"{self._provider_label} request timed out",
                provider_name=self.get_provider_name(),
            ) from exc
        except openai.APIError as exc:
            raise LLMError(
                message=f"{self._provider_label} API error: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        content = response.choices[0].message.content
        if content is None:
            raise LLMError(
                message=f"{self._provider_label} returned empty response",
                provider_name=self.get_provider_name(),
            )
        logger.info(
            event,
            model=self._model,
            provider=self._provider_label,
            tokens=response.usage.total_tokens if response.usage else None,
        )
        return content
