"""In-process vector store using numpy cosine similarity.

Implements :class:`IVectorStoreProvider` without any external service.
Selected with ``VECTOR_STORE_BACKEND=memory`` and used throughout the test
suite.  Contents are lost when the process exits.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any

import numpy as np
import structlog

from mindlens.interfaces.vector_store_provider import IVectorStoreProvider
from mindlens.models.rag import DocumentChunk, RetrievedChunk
from mindlens.providers.vector_store.filters import validate_tenant_filter

logger = structlog.get_logger(logger_name=__name__)


@dataclass
class _StoredChunk:
    chunk: DocumentChunk
    vector: np.ndarray
    seq: int


class InMemoryVectorStore(IVectorStoreProvider):
    """Dictionary-of-namespaces vector store with brute-force cosine search."""

    def __init__(self) -> None:
        self._namespaces: dict[str, dict[str, _StoredChunk]] = {}
        self._seq = 0
        self._lock = asyncio.Lock()

    async def upsert(
        self,
        namespace: str,
        chunks: list[DocumentChunk],
        embeddings: list[list[float]],
    ) -> int:
        if len(chunks) != len(embeddings):
            raise ValueError(
                f"chunks and embeddings length mismatch: {len(chunks)} != {len(embeddings)}"
            )
        if not chunks:
            return 0

        async with self._lock:
            store = self._namespaces.setdefault(namespace, {})
            for chunk, embedding in zip(chunks, embeddings, strict=True):
                existing = store.get(chunk.chunk_id)
                # Replacing a chunk keeps its original insertion position.
                seq = existing.seq if existing else self._next_seq()
                store[chunk.chunk_id] = _StoredChunk(
                    chunk=chunk,
                    vector=np.asarray(embedding, dtype=np.float64),
                    seq=seq,
                )

        logger.debug("memory_store_upsert", namespace=namespace, count=len(chunks))
        return len(chunks)

    async def query(
        self,
        namespace: str,
        query_embedding: list[float],
        filters: dict[str, Any],
        top_k: int = 6,
    ) -> list[RetrievedChunk]:
        filters = validate_tenant_filter(filters, self.get_provider_name())
        if top_k <= 0:
            return []

        store = self._namespaces.get(namespace)
        if not store:
            return []

        candidates = [entry for entry in store.values() if self._matches(entry.chunk, filters)]
        if not candidates:
            return []

        query_vec = np.asarray(query_embedding, dtype=np.float64)
        matrix = np.vstack([entry.vector for entry in candidates])
        scores = self._cosine_scores(matrix, query_vec)

        order = sorted(
            range(len(candidates)),
            key=lambda i: (-scores[i], candidates[i].seq),
        )[:top_k]

        return [
            RetrievedChunk(
                chunk=candidates[i].chunk,
                similarity_score=float(np.clip(scores[i], -1.0, 1.0)),
            )
            for i in order
        ]

    async def delete_by_attachment(self, namespace: str, attachment_id: str) -> int:
        return await self._delete_matching(namespace, "attachment_id", attachment_id)

    async def delete_by_collection(self, namespace: str, collection_id: str) -> int:
        return await self._delete_matching(namespace, "collection_id", collection_id)

    async def count(self, namespace: str) -> int:
        return len(self._namespaces.get(namespace, {}))

    def get_provider_name(self) -> str:
        return "memory"

    def is_available(self) -> bool:
        return True

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _next_seq(self) -> int:
        self._seq += 1
        return self._seq

    async def _delete_matching(self, namespace: str, field: str, value: str) -> int:
        async with self._lock:
            store = self._namespaces.get(namespace)
            if not store:
                return 0
            doomed = [
                chunk_id
                for chunk_id, entry in store.items()
                if getattr(entry.chunk.metadata, field) == value
            ]
            for chunk_id in doomed:
                del store[chunk_id]
        logger.debug("memory_store_delete", namespace=namespace, field=field, deleted=len(doomed))
        return len(doomed)

    @staticmethod
    def _matches(chunk: DocumentChunk, filters: dict[str, Any]) -> bool:
        meta = chunk.metadata
        for field, expected in filters.items():
            actual = getattr(meta, field)
            if hasattr(actual, "value"):
                actual = actual.value
            if hasattr(expected, "value"):
                expected = expected.value
            if actual != expected:
                return False
        return True

    @staticmethod
    def _cosine_scores(matrix: np.ndarray, query: np.ndarray) -> np.ndarray:
        norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
        dots = matrix @ query
        # Zero vectors score 0 rather than NaN.
        return np.divide(dots, norms, out=np.zeros_like(dots), where=norms > 0)
