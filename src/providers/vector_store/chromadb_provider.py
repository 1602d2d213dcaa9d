"""ChromaDB vector index provider adapter.

Implements :class:`IVectorIndexProvider` with one ChromaDB collection per
namespace, all using cosine distance.  The client is in-memory
(``EphemeralClient``) unless ``CHROMADB_PERSIST_DIR`` is set, in which case
a ``PersistentClient`` stores collections on disk.  Vectors are always
pre-computed by the injected embedding provider; ChromaDB never embeds.
"""

from __future__ import annotations

import hashlib
import os
import re
from typing import Any

# Disable ChromaDB's anonymous telemetry before importing chromadb.
os.environ["ANONYMIZED_TELEMETRY"] = "False"

import chromadb
import structlog

from src.interfaces.vector_index_provider import IVectorIndexProvider
from src.models.rag import IndexMatch, IndexRecord
from src.utils.errors import RAGError

logger = structlog.get_logger(logger_name=__name__)

_MAX_COLLECTION_NAME = 63


class _NoopEmbeddingFunction(chromadb.EmbeddingFunction[list[str]]):
    """No-op embedding function that prevents ChromaDB from loading a model.

    tenderLens always passes pre-computed vectors to ``upsert()`` and
    ``query()``, so ChromaDB's built-in embedding is never invoked.  Without
    this, ChromaDB downloads its default ONNX model on collection creation.
    """

    def __call__(self, input: list[str]) -> list[list[float]]:
        raise NotImplementedError(
            "tenderLens uses pre-computed embeddings; "
            "ChromaDB's built-in embedding should never be called."
        )

    def name(self) -> str:
        """Return function name (required by ChromaDB's EmbeddingFunction protocol)."""
        return "noop_precomputed"


def collection_name_for(namespace: str) -> str:
    """Map a namespace to a valid ChromaDB collection name.

    Collection names are 3-63 characters from ``[a-zA-Z0-9._-]`` and must
    start and end with an alphanumeric.  Long namespaces keep a hash
    suffix so two different namespaces never collapse onto one name.
    """
    name = re.sub(r"[^a-zA-Z0-9._-]+", "-", namespace)
    name = re.sub(r"\.{2,}", ".", name).strip("._-")
    if len(name) > _MAX_COLLECTION_NAME or name != namespace:
        digest = hashlib.sha1(namespace.encode("utf-8")).hexdigest()[:8]
        head = name[: _MAX_COLLECTION_NAME - len(digest) - 1].rstrip("._-")
        name = f"{head}-{digest}" if head else digest
    if len(name) < 3:
        name = f"ns-{name}".ljust(3, "0")
    return name


class ChromaDBIndexProvider(IVectorIndexProvider):
    """Namespaced vector index backed by ChromaDB collections."""

    def __init__(self, persist_directory: str = "") -> None:
        self._persist_directory = persist_directory
        settings = chromadb.config.Settings(anonymized_telemetry=False)
        if persist_directory:
            self._client = chromadb.PersistentClient(path=persist_directory, settings=settings)
        else:
            self._client = chromadb.EphemeralClient(settings=settings)
        # Collections written through this instance, keyed by namespace.
        self._collections: dict[str, Any] = {}

    # ------------------------------------------------------------------
    # IVectorIndexProvider implementation
    # ------------------------------------------------------------------

    async def upsert(self, namespace: str, records: list[IndexRecord]) -> int:
        """Insert or overwrite *records* in the collection for *namespace*."""
        if not records:
            return 0
        try:
            collection = self._get_or_create(namespace)
            metadatas = [dict(r.metadata) for r in records]
            collection.upsert(
                ids=[r.id for r in records],
                embeddings=[list(r.vector) for r in records],
                metadatas=metadatas if all(metadatas) else None,
            )
        except Exception as exc:
            raise RAGError(
                message=f"ChromaDB upsert failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        logger.debug("chromadb_upsert", namespace=namespace, count=len(records))
        return len(records)

    async def query(
        self,
        namespace: str,
        vector: list[float],
        top_k: int,
        include_metadata: bool = True,
    ) -> list[IndexMatch]:
        """Return up to *top_k* nearest records as similarities in [0, 1]."""
        collection = self._collections.get(namespace)
        if collection is None or top_k <= 0:
            return []
        try:
            count = collection.count()
            if count == 0:
                return []
            include = ["distances", "metadatas"] if include_metadata else ["distances"]
            results = collection.query(
                query_embeddings=[list(vector)],
                n_results=min(top_k, count),
                include=include,
            )
        except Exception as exc:
            raise RAGError(
                message=f"ChromaDB query failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        if not results["ids"] or not results["ids"][0]:
            return []
        ids = results["ids"][0]
        distances = results["distances"][0] if results.get("distances") else [1.0] * len(ids)
        raw_metadatas = results.get("metadatas")
        metadatas = raw_metadatas[0] if include_metadata and raw_metadatas else [None] * len(ids)

        matches = [
            IndexMatch(
                id=record_id,
                score=max(0.0, min(1.0, 1.0 - distance)),
                metadata=dict(meta or {}),
            )
            for record_id, distance, meta in zip(ids, distances, metadatas)
        ]
        matches.sort(key=lambda m: m.score, reverse=True)
        logger.debug(
            "chromadb_query",
            namespace=namespace,
            results_count=len(matches),
            top_score=matches[0].score if matches else 0.0,
        )
        return matches

    async def fetch(self, namespace: str, ids: list[str]) -> list[IndexRecord]:
        """Return the stored records among *ids*."""
        collection = self._collections.get(namespace)
        if collection is None or not ids:
            return []
        try:
            results = collection.get(ids=ids, include=["embeddings", "metadatas"])
        except Exception as exc:
            raise RAGError(
                message=f"ChromaDB fetch failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        found_ids = results["ids"] or []
        embeddings = results.get("embeddings")
        if embeddings is None:
            embeddings = [[] for _ in found_ids]
        metadatas = results.get("metadatas") or [None] * len(found_ids)
        return [
            IndexRecord(
                id=record_id,
                vector=tuple(float(x) for x in vector),
                metadata=dict(meta or {}),
            )
            for record_id, vector, meta in zip(found_ids, embeddings, metadatas)
        ]

    async def reset(self, namespace: str) -> None:
        """Delete the collection for *namespace*; unknown namespaces are a no-op."""
        if self._collections.pop(namespace, None) is None:
            logger.debug("chromadb_reset_skipped", namespace=namespace)
            return
        try:
            self._client.delete_collection(name=collection_name_for(namespace))
        except Exception as exc:
            raise RAGError(
                message=f"ChromaDB reset failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        logger.debug("chromadb_reset", namespace=namespace)

    def get_provider_name(self) -> str:
        return "chromadb"

    def is_available(self) -> bool:
        """Return ``True`` if the ChromaDB client responds."""
        try:
            self._client.heartbeat()
            return True
        except Exception:
            return False

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _get_or_create(self, namespace: str) -> Any:
        collection = self._collections.get(namespace)
        if collection is not None:
            return collection
        name = collection_name_for(namespace)
        try:
            collection = self._client.get_or_create_collection(
                name=name,
                metadata={"hnsw:space": "cosine"},
                embedding_function=_NoopEmbeddingFunction(),
            )
        except ValueError:
            # A persisted collection may carry a different embedding function.
            collection = self._client.get_or_create_collection(
                name=name,
                metadata={"hnsw:space": "cosine"},
            )
        self._collections[namespace] = collection
        return collection
