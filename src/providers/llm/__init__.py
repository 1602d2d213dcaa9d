"""LLM provider adapters.

Two concrete implementations of ILLMProvider (src/interfaces/llm_provider.py):
    - AnthropicLLMProvider -- Claude Sonnet (native PDF documents + text)
    - OpenAILLMProvider    -- gpt-4o (PDF file parts + text; also OpenAI-compatible APIs)

At startup, main.py picks the first provider with a configured API key
(ANTHROPIC_API_KEY, then OPENAI_API_KEY) and injects it into the
extraction and answer services.
"""

from src.providers.llm.anthropic_provider import AnthropicLLMProvider
from src.providers.llm.openai_provider import OpenAILLMProvider

__all__ = ["AnthropicLLMProvider", "OpenAILLMProvider"]
