"""Abstract base class for LLM service providers.

Defines the contract for the two LLM roles the pipeline needs: reading a
PDF slice into structured text (document extraction) and synthesizing an
answer from retrieved context (text completion).  Implementations wrap the
Anthropic Messages API or OpenAI chat completions; call sites never touch
an SDK directly.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementations: AnthropicLLMProvider, OpenAILLMProvider
# Located in: src/providers/llm/
class ILLMProvider(ABC):
    """Contract for LLM services used by the extraction and answer services.

    Providers must support plain text completion; reading PDF documents is
    declared via :meth:`supports_documents`.
    """

    @abstractmethod
    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.3,
        max_tokens: int = 4000,
    ) -> str:
        """Generate a text completion from the model.

        Parameters
        ----------
        system_prompt:
            The system/instruction message that sets the model's behaviour.
            May be empty.
        user_prompt:
            The prompt containing the actual request and context.
        temperature:
            Sampling temperature (0.0 = deterministic).
        max_tokens:
            Upper bound on the number of tokens in the response.

        Returns
        -------
        str
            The model's text response.

        Raises
        ------
        src.utils.errors.RateLimitError
            If the provider rejected the call for rate limiting.
        src.utils.errors.LLMError
            If the API call fails or returns no text.
        """

    @abstractmethod
    async def extract_document(
        self,
        document_bytes: bytes,
        prompt: str,
        media_type: str = "application/pdf",
        max_tokens: int = 8000,
    ) -> str:
        """Read a document and return free text following *prompt*.

        Parameters
        ----------
        document_bytes:
            Raw document bytes (a PDF holding one page slice).
        prompt:
            Natural-language extraction instructions.
        media_type:
            MIME type of *document_bytes*.
        max_tokens:
            Upper bound on the response length.

        Raises
        ------
        src.utils.errors.RateLimitError
            If the provider rejected the call for rate limiting.
        src.utils.errors.LLMError
            If the provider cannot read documents or the call fails.
        """

    @abstractmethod
    def supports_documents(self) -> bool:
        """Return ``True`` if :meth:`extract_document` is usable."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier, e.g. ``"anthropic"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if credentials are configured."""

    @abstractmethod
    async def validate_credentials(self) -> bool:
        """Issue a minimal request to confirm the credentials work."""
