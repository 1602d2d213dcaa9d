"""Embedding provider implementations.

Embeddings convert text into numeric vectors that capture semantic meaning.
Segment and query vectors are compared inside each document's index
session (ChromaDB, cosine distance).

One implementation of IEmbeddingProvider:
    OpenAIEmbeddingProvider -- text-embedding-3-small (1536 dims), or any
    OpenAI-compatible embeddings endpoint via OPENAI_BASE_URL.
"""

from src.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider

__all__ = ["OpenAIEmbeddingProvider"]
