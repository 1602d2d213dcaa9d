"""Public interface definitions for all external service providers.

Every external service in the pipeline -- document extraction and answer
synthesis (LLM), embeddings, the vector index -- is accessed only through
the abstract base classes defined here.  Concrete adapters live in
``src/providers/`` and are injected by ``src/main.py``; tests inject fakes.
"""

from __future__ import annotations

from src.interfaces.embedding_provider import IEmbeddingProvider
from src.interfaces.llm_provider import ILLMProvider
from src.interfaces.vector_index_provider import IVectorIndexProvider

__all__ = [
    "IEmbeddingProvider",
    "ILLMProvider",
    "IVectorIndexProvider",
]
