"""Owner-scoped semantic retrieval over the tenant vector index.

A question is embedded once and matched against the chunks in the owner's
namespace.  The metadata filter is always built here, never taken from the
caller: it carries ``owner_id`` for every scope and adds ``collection_id``
when the scope is a single collection, so a chunk belonging to another
owner cannot be returned whatever scope is requested.

Scope resolution (does the collection exist, and does *owner_id* own it?)
happens before any embedding or index call.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog

from mindlens.models.library import Collection
from mindlens.models.rag import QueryScope, RetrievedChunk, tenant_namespace
from mindlens.utils.errors import AccessDeniedError, ValidationError

if TYPE_CHECKING:
    from mindlens.interfaces.embedding_provider import IEmbeddingProvider
    from mindlens.interfaces.metadata_store import IMetadataStore
    from mindlens.interfaces.vector_store_provider import IVectorStoreProvider

logger = structlog.get_logger(logger_name=__name__)

_MAX_RESULT_LIMIT = 50


class RetrievalService:
    """Returns the owner's most similar chunks for a question.

    Parameters
    ----------
    embedding_provider:
        Embeds the question with the same model used at ingestion time.
    vector_store:
        The tenant-partitioned index to search.
    metadata_store:
        Used to resolve single-collection scopes against the owner.
    namespace_prefix:
        Prefix for per-owner vector namespaces.
    default_top_k:
        Result limit used when the caller does not pass one.
    """

    def __init__(
        self,
        embedding_provider: IEmbeddingProvider,
        vector_store: IVectorStoreProvider,
        metadata_store: IMetadataStore,
        namespace_prefix: str = "mindlens",
        default_top_k: int = 6,
    ) -> None:
        self._embedding_provider = embedding_provider
        self._vector_store = vector_store
        self._metadata_store = metadata_store
        self._namespace_prefix = namespace_prefix
        self._default_top_k = default_top_k

    async def resolve_scope(self, owner_id: str, scope: QueryScope) -> Collection | None:
        """Return the scoped collection, or ``None`` for an all-collections scope.

        Raises
        ------
        AccessDeniedError
            If the collection does not exist or belongs to another owner.
        """
        if not owner_id:
            raise ValidationError(message="owner_id is required")
        if not scope.is_single_collection:
            return None
        collection = await self._metadata_store.get_collection(owner_id, scope.collection_id)
        if collection is None:
            raise AccessDeniedError(message="Book not found or access denied")
        return collection

    async def retrieve(
        self,
        owner_id: str,
        scope: QueryScope,
        query: str,
        k: int | None = None,
    ) -> list[RetrievedChunk]:
        """Return up to *k* chunks ranked by similarity, most similar first.

        An empty list means nothing in scope matched; the answer streamer
        turns that into an explicit "no relevant information" message.

        Raises
        ------
        ValidationError
            If *query* is blank or *k* is out of range.
        AccessDeniedError
            If a single-collection scope is not owned by *owner_id*.
        EmbeddingServiceError, IndexServiceError
            If a downstream capability fails.
        """
        if not query or not query.strip():
            raise ValidationError(message="User query is required")
        top_k = self._default_top_k if k is None else k
        if top_k < 1 or top_k > _MAX_RESULT_LIMIT:
            raise ValidationError(
                message=f"result_limit must be between 1 and {_MAX_RESULT_LIMIT}, got {top_k}"
            )

        await self.resolve_scope(owner_id, scope)

        filters = self.build_filters(owner_id, scope)
        namespace = tenant_namespace(owner_id, prefix=self._namespace_prefix)

        query_embedding = await self._embedding_provider.embed_single(query.strip())
        results = await self._vector_store.query(
            namespace,
            query_embedding,
            filters=filters,
            top_k=top_k,
        )

        logger.info(
            "retrieval_complete",
            namespace=namespace,
            scope=scope.collection_id or "all",
            top_k=top_k,
            results=len(results),
        )
        return results

    @staticmethod
    def build_filters(owner_id: str, scope: QueryScope) -> dict[str, Any]:
        """Return the metadata filter for *owner_id* within *scope*."""
        filters: dict[str, Any] = {"owner_id": owner_id}
        if scope.is_single_collection:
            filters["collection_id"] = scope.collection_id
        return filters
