"""Abstract base class for tenant-partitioned vector-store providers.

Defines the contract for storing, querying, and deleting embedded document
chunks.  Every operation takes an explicit ``namespace`` (one per owner,
see :func:`mindlens.models.rag.tenant_namespace`); nothing is ever read or
written outside the namespace the caller names.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from mindlens.models.rag import DocumentChunk, RetrievedChunk


# Concrete implementations:
#   ChromaDBProvider    : one persistent chromadb collection per namespace
#   InMemoryVectorStore : numpy cosine search, for tests and local runs
# Located in: mindlens/providers/vector_store/
class IVectorStoreProvider(ABC):
    """Contract for the tenant vector index.

    **Filter syntax** (the *filters* dict in :meth:`query`) is a flat mapping
    of chunk-metadata field to required value, combined with AND, e.g.
    ``{"owner_id": "u1", "collection_id": "c9"}``.  :meth:`query` rejects an
    empty filter and any filter without ``owner_id``.
    """

    @abstractmethod
    async def upsert(
        self,
        namespace: str,
        chunks: list[DocumentChunk],
        embeddings: list[list[float]],
    ) -> int:
        """Insert or replace pre-embedded chunks in *namespace*.

        The namespace is created lazily on first write.

        Parameters
        ----------
        namespace:
            Tenant namespace to write into.
        chunks:
            Chunks to store; ``chunk_id`` is the primary key.
        embeddings:
            Vectors corresponding positionally to *chunks*.

        Returns
        -------
        int
            The number of chunks written.

        Raises
        ------
        ValueError
            If ``len(chunks) != len(embeddings)``.
        mindlens.utils.errors.IndexServiceError
            If the store operation fails.
        """

    @abstractmethod
    async def query(
        self,
        namespace: str,
        query_embedding: list[float],
        filters: dict[str, Any],
        top_k: int = 6,
    ) -> list[RetrievedChunk]:
        """Return the *top_k* chunks in *namespace* most similar to the query.

        Parameters
        ----------
        namespace:
            Tenant namespace to search.  A namespace that was never written
            to yields an empty list.
        query_embedding:
            Embedding of the question text.
        filters:
            Mandatory metadata filter; must include ``owner_id``.
        top_k:
            Maximum number of results.

        Returns
        -------
        list[RetrievedChunk]
            Results ranked by similarity descending, ties broken by
            insertion order.

        Raises
        ------
        mindlens.utils.errors.IndexServiceError
            If the filter is missing ``owner_id`` or the query fails.
        """

    @abstractmethod
    async def delete_by_attachment(self, namespace: str, attachment_id: str) -> int:
        """Delete every chunk of *attachment_id* in *namespace*.

        Returns
        -------
        int
            The number of chunks deleted (0 when the namespace is absent).
        """

    @abstractmethod
    async def delete_by_collection(self, namespace: str, collection_id: str) -> int:
        """Delete every chunk of *collection_id* in *namespace*.

        Returns
        -------
        int
            The number of chunks deleted (0 when the namespace is absent).
        """

    @abstractmethod
    async def count(self, namespace: str) -> int:
        """Return the number of chunks stored in *namespace*."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier, e.g. ``"chromadb"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the store is configured and reachable."""
