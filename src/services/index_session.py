"""Per-document vector-index sessions.

Each document in a run owns one namespace in the vector index, derived from
the run id, the document's upload position and its sanitized filename.  The
manager writes segments into it, answers similarity queries against it and
erases it when the document is done.

    run id      session-1718000000000-k3j9x0q2a
    session id  session-1718000000000-k3j9x0q2a-0-ausschreibung-pdf

:meth:`IndexSessionManager.open` wraps a session in an async context
manager whose exit always calls :meth:`destroy`, on success, on error and
on cancellation.
"""

from __future__ import annotations

import asyncio
import re
import secrets
import string
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog

from src.config.app_config import EmbeddingsConfig, SessionConfig
from src.interfaces.embedding_provider import IEmbeddingProvider
from src.interfaces.vector_index_provider import IVectorIndexProvider
from src.models.rag import IndexRecord, Segment, SegmentMatch
from src.utils.errors import IndexSessionError, RAGError
from src.utils.logging import get_logger

logger: structlog.BoundLogger = get_logger(__name__)

_BASE36 = string.digits + string.ascii_lowercase
_MAX_FILENAME_PART = 40


def sanitize_filename(filename: str) -> str:
    """Lower-case, collapse non-alphanumerics to ``-`` and truncate."""
    slug = re.sub(r"[^a-z0-9]+", "-", filename.lower()).strip("-")
    return slug[:_MAX_FILENAME_PART].rstrip("-") or "document"


class IndexSessionManager:
    """Owns populate / query / destroy for per-document index namespaces."""

    def __init__(
        self,
        vector_index: IVectorIndexProvider,
        embedding_provider: IEmbeddingProvider,
        embeddings_config: EmbeddingsConfig,
        session_config: SessionConfig,
    ) -> None:
        self._index = vector_index
        self._embedding = embedding_provider
        self._batch_size = embeddings_config.batch_size
        self._default_top_k = embeddings_config.default_top_k
        self._settle_delay = embeddings_config.indexing_delay_ms / 1000
        self._prefix = session_config.namespace_prefix
        self._random_length = session_config.session_id_length
        self._cleanup = session_config.cleanup_after_processing

    # ------------------------------------------------------------------
    # Identifiers
    # ------------------------------------------------------------------

    def new_run_id(self) -> str:
        """Return ``<prefix>-<epoch ms>-<random base36>``."""
        suffix = "".join(secrets.choice(_BASE36) for _ in range(self._random_length))
        return f"{self._prefix}-{int(time.time() * 1000)}-{suffix}"

    @staticmethod
    def session_id_for(run_id: str, filename: str, position: int) -> str:
        """Derive the namespace for the document at *position* in the run.

        The position keeps two uploads with the same filename apart.
        """
        return f"{run_id}-{position}-{sanitize_filename(filename)}"

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def open(self, session_id: str) -> AsyncIterator[str]:
        """Yield *session_id* and destroy the session on every exit path."""
        try:
            yield session_id
        finally:
            if self._cleanup:
                await self.destroy(session_id)
            else:
                logger.info("index_session_retained", session_id=session_id)

    async def populate(self, session_id: str, segments: list[Segment]) -> int:
        """Write *segments* in batches, let the index settle, then self-check.

        Re-writing a segment id overwrites the stored record.

        Returns:
            Number of segments written.

        Raises:
            IndexSessionError: If any batch fails to write.
        """
        if not segments:
            return 0

        written = 0
        try:
            for start in range(0, len(segments), self._batch_size):
                batch = segments[start : start + self._batch_size]
                written += await self._index.upsert(
                    session_id, [IndexRecord.from_segment(s) for s in batch]
                )
        except RAGError as exc:
            raise IndexSessionError(
                message=f"Writing to session {session_id} failed: {exc.message}",
                provider_name=exc.provider_name,
            ) from exc

        if self._settle_delay > 0:
            await asyncio.sleep(self._settle_delay)

        await self._self_check(session_id, segments[0].segment_id)

        logger.info(
            "index_session_populated",
            session_id=session_id,
            segments=written,
            batches=(len(segments) + self._batch_size - 1) // self._batch_size,
        )
        return written

    async def query(
        self,
        session_id: str,
        query_text: str,
        top_k: int | None = None,
    ) -> list[SegmentMatch]:
        """Embed *query_text* and return the nearest segments, best first.

        Raises:
            RAGError: If embedding or the similarity search fails.
        """
        k = top_k or self._default_top_k
        vector = await self._embedding.embed_single(query_text)
        matches = await self._index.query(session_id, vector, k, include_metadata=True)
        ranked = sorted(
            (SegmentMatch.from_index_match(m) for m in matches),
            key=lambda m: m.score,
            reverse=True,
        )
        logger.debug(
            "index_session_query",
            session_id=session_id,
            top_k=k,
            results=len(ranked),
            top_score=ranked[0].score if ranked else 0.0,
        )
        return ranked[:k]

    async def destroy(self, session_id: str) -> bool:
        """Erase the session.  Failures are logged and reported as ``False``."""
        try:
            await self._index.reset(session_id)
        except Exception as exc:
            logger.warning(
                "index_session_destroy_failed",
                session_id=session_id,
                error=str(exc),
            )
            return False
        logger.info("index_session_destroyed", session_id=session_id)
        return True

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _self_check(self, session_id: str, segment_id: str) -> None:
        """Fetch one written segment back; a miss is logged, not raised."""
        try:
            found = await self._index.fetch(session_id, [segment_id])
        except RAGError as exc:
            logger.warning(
                "index_self_check_failed",
                session_id=session_id,
                error=str(exc),
            )
            return
        if not any(record.id == segment_id for record in found):
            logger.warning(
                "index_self_check_missed",
                session_id=session_id,
                segment_id=segment_id,
            )
