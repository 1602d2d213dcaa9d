"""Abstract base class for namespaced vector-index providers.

Every document in a run gets its own namespace.  The four operations below
are the whole wire surface the index session manager relies on: batch
upsert, similarity query, fetch-by-id and namespace reset.  A namespace
exists implicitly once something is written to it; querying or resetting a
namespace that holds nothing is not an error.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from src.models.rag import IndexMatch, IndexRecord


# Concrete implementation: ChromaDBIndexProvider (src/providers/vector_store/)
# One cosine-space collection per namespace, in memory unless a persist
# directory is configured.
class IVectorIndexProvider(ABC):
    """Contract for the vector index used by per-document index sessions."""

    @abstractmethod
    async def upsert(self, namespace: str, records: list[IndexRecord]) -> int:
        """Insert or overwrite *records* in *namespace*.

        Records with an id already present replace the stored one.

        Returns
        -------
        int
            Number of records written.

        Raises
        ------
        src.utils.errors.RAGError
            If the write fails.
        """

    @abstractmethod
    async def query(
        self,
        namespace: str,
        vector: list[float],
        top_k: int,
        include_metadata: bool = True,
    ) -> list[IndexMatch]:
        """Return up to *top_k* nearest records, highest score first.

        Scores are similarities in ``[0, 1]``.  An empty or unknown
        namespace yields an empty list.
        """

    @abstractmethod
    async def fetch(self, namespace: str, ids: list[str]) -> list[IndexRecord]:
        """Return the stored records among *ids*; unknown ids are omitted."""

    @abstractmethod
    async def reset(self, namespace: str) -> None:
        """Erase everything stored in *namespace*."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier, e.g. ``"chromadb"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the backing store is reachable."""
