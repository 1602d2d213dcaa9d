"""Vector index provider implementations.

ChromaDB is the sole vector index implementation: one cosine-space
collection per index session, in memory by default or on disk under
CHROMADB_PERSIST_DIR.

To swap ChromaDB for another vector database, create a new class
implementing IVectorIndexProvider and register it in main.py.
"""

from src.providers.vector_store.chromadb_provider import ChromaDBIndexProvider

__all__ = ["ChromaDBIndexProvider"]
