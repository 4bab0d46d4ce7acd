"""ChromaDB vector store provider adapter.

Wraps ``chromadb.PersistentClient`` to implement :class:`IVectorStoreProvider`.
Each tenant namespace is its own chromadb collection using cosine distance.
Fully local, no external service required.

chromadb's client is synchronous, so every call runs in a worker thread via
``asyncio.to_thread``.
"""

from __future__ import annotations

import asyncio
import os
import time
from typing import Any

# ChromaDB's anonymous telemetry is turned off both here and through
# Settings(anonymized_telemetry=False) on the client.
os.environ["ANONYMIZED_TELEMETRY"] = "False"

import chromadb
import structlog

from mindlens.interfaces.vector_store_provider import IVectorStoreProvider
from mindlens.models.library import SourceKind
from mindlens.models.rag import ChunkMetadata, DocumentChunk, RetrievedChunk
from mindlens.providers.vector_store.filters import validate_tenant_filter
from mindlens.utils.errors import IndexServiceError

logger = structlog.get_logger(logger_name=__name__)

# Metadata key holding "<ingest timestamp ns>-<position>" so that equal
# similarity scores fall back to insertion order.
_SEQ_KEY = "_seq"


class _NoopEmbeddingFunction(chromadb.EmbeddingFunction[list[str]]):
    """No-op embedding function that prevents ChromaDB from loading a model.

    MindLens always passes pre-computed embeddings, so ChromaDB's built-in
    embedding is never invoked.  Without this, ChromaDB downloads its
    default ONNX model on collection creation.
    """

    def __call__(self, input: list[str]) -> list[list[float]]:
        raise NotImplementedError(
            "MindLens uses pre-computed embeddings; "
            "ChromaDB's built-in embedding should never be called."
        )

    def name(self) -> str:
        return "noop_precomputed"


class ChromaDBProvider(IVectorStoreProvider):
    """Vector store provider backed by ChromaDB with local persistence.

    Namespaces map one-to-one onto chromadb collections, created on the
    first write and cached per provider instance.  Reads against a
    namespace that does not exist return nothing instead of creating it.
    """

    def __init__(
        self,
        persist_directory: str = "./data/chromadb",
        client: Any | None = None,
        batch_size: int = 500,
    ) -> None:
        self._persist_directory = persist_directory
        self._batch_size = batch_size
        self._client = client or chromadb.PersistentClient(
            path=persist_directory,
            settings=chromadb.config.Settings(anonymized_telemetry=False),
        )
        self._collections: dict[str, Any] = {}

    # ------------------------------------------------------------------
    # Collection handling
    # ------------------------------------------------------------------

    def _existing_names(self) -> set[str]:
        # chromadb >= 0.6 returns names, older releases return Collection objects.
        return {
            entry if isinstance(entry, str) else entry.name
            for entry in self._client.list_collections()
        }

    def _get_collection(self, namespace: str, create: bool) -> Any | None:
        collection = self._collections.get(namespace)
        if collection is not None:
            return collection

        if not create and namespace not in self._existing_names():
            return None

        # Collections created by another embedding-function configuration
        # refuse the no-op function with ValueError; reopen them as persisted.
        try:
            collection = self._client.get_or_create_collection(
                name=namespace,
                metadata={"hnsw:space": "cosine"},
                embedding_function=_NoopEmbeddingFunction(),
            )
        except ValueError:
            collection = self._client.get_or_create_collection(
                name=namespace,
                metadata={"hnsw:space": "cosine"},
            )
        self._collections[namespace] = collection
        logger.debug("chromadb_collection_opened", namespace=namespace, created=create)
        return collection

    # ------------------------------------------------------------------
    # IVectorStoreProvider implementation
    # ------------------------------------------------------------------

    async def upsert(
        self,
        namespace: str,
        chunks: list[DocumentChunk],
        embeddings: list[list[float]],
    ) -> int:
        """Upsert pre-embedded chunks in batches of ``batch_size``."""
        if len(chunks) != len(embeddings):
            raise ValueError(
                f"chunks and embeddings length mismatch: {len(chunks)} != {len(embeddings)}"
            )
        if not chunks:
            return 0

        try:
            return await asyncio.to_thread(self._upsert_sync, namespace, chunks, embeddings)
        except Exception as exc:
            raise IndexServiceError(
                message=f"ChromaDB upsert failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

    def _upsert_sync(
        self,
        namespace: str,
        chunks: list[DocumentChunk],
        embeddings: list[list[float]],
    ) -> int:
        collection = self._get_collection(namespace, create=True)
        stamp = time.time_ns()
        total_stored = 0

        for start in range(0, len(chunks), self._batch_size):
            end = min(start + self._batch_size, len(chunks))
            batch_chunks = chunks[start:end]

            metadatas = []
            for offset, chunk in enumerate(batch_chunks):
                meta = self._chunk_to_metadata(chunk)
                meta[_SEQ_KEY] = f"{stamp:020d}-{start + offset:08d}"
                metadatas.append(meta)

            collection.upsert(
                ids=[c.chunk_id for c in batch_chunks],
                embeddings=embeddings[start:end],
                documents=[c.text for c in batch_chunks],
                metadatas=metadatas,
            )
            total_stored += len(batch_chunks)

        logger.info(
            "chromadb_upsert",
            namespace=namespace,
            count=total_stored,
            batches=(len(chunks) + self._batch_size - 1) // self._batch_size,
        )
        return total_stored

    async def query(
        self,
        namespace: str,
        query_embedding: list[float],
        filters: dict[str, Any],
        top_k: int = 6,
    ) -> list[RetrievedChunk]:
        where_clause = self._translate_filters(
            validate_tenant_filter(filters, self.get_provider_name())
        )
        if top_k <= 0:
            return []

        try:
            return await asyncio.to_thread(
                self._query_sync, namespace, query_embedding, where_clause, top_k
            )
        except Exception as exc:
            raise IndexServiceError(
                message=f"ChromaDB query failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

    def _query_sync(
        self,
        namespace: str,
        query_embedding: list[float],
        where_clause: dict[str, Any],
        top_k: int,
    ) -> list[RetrievedChunk]:
        collection = self._get_collection(namespace, create=False)
        if collection is None:
            return []
        total = collection.count()
        if total == 0:
            return []

        results = collection.query(
            query_embeddings=[query_embedding],
            n_results=min(top_k, total),
            where=where_clause,
            include=["documents", "metadatas", "distances"],
        )

        ids = results["ids"][0] if results.get("ids") else []
        if not ids:
            return []
        documents = results["documents"][0]
        metadatas = results["metadatas"][0]
        distances = results["distances"][0]

        ranked: list[tuple[float, str, RetrievedChunk]] = []
        for chunk_id, doc_text, meta, distance in zip(
            ids, documents, metadatas, distances, strict=True
        ):
            # Cosine distance is 1 - cosine similarity.
            similarity = max(-1.0, min(1.0, 1.0 - distance))
            chunk = self._metadata_to_chunk(chunk_id, meta, doc_text or "")
            rc = RetrievedChunk(chunk=chunk, similarity_score=similarity)
            ranked.append((similarity, str(meta.get(_SEQ_KEY, "")), rc))

        ranked.sort(key=lambda item: (-item[0], item[1]))
        retrieved = [item[2] for item in ranked[:top_k]]

        logger.info(
            "chromadb_query",
            namespace=namespace,
            filter_fields=sorted(self._where_fields(where_clause)),
            results_count=len(retrieved),
            top_score=retrieved[0].similarity_score if retrieved else 0.0,
        )
        return retrieved

    async def delete_by_attachment(self, namespace: str, attachment_id: str) -> int:
        return await self._delete_where(namespace, {"attachment_id": attachment_id})

    async def delete_by_collection(self, namespace: str, collection_id: str) -> int:
        return await self._delete_where(namespace, {"collection_id": collection_id})

    async def _delete_where(self, namespace: str, where: dict[str, Any]) -> int:
        try:
            return await asyncio.to_thread(self._delete_where_sync, namespace, where)
        except Exception as exc:
            raise IndexServiceError(
                message=f"ChromaDB delete failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

    def _delete_where_sync(self, namespace: str, where: dict[str, Any]) -> int:
        collection = self._get_collection(namespace, create=False)
        if collection is None:
            return 0

        existing = collection.get(where=where, include=[])
        count = len(existing["ids"]) if existing["ids"] else 0
        if count > 0:
            collection.delete(ids=existing["ids"])

        logger.info("chromadb_delete", namespace=namespace, where=where, deleted_count=count)
        return count

    async def count(self, namespace: str) -> int:
        try:
            return await asyncio.to_thread(self._count_sync, namespace)
        except Exception as exc:
            raise IndexServiceError(
                message=f"ChromaDB count failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

    def _count_sync(self, namespace: str) -> int:
        collection = self._get_collection(namespace, create=False)
        return collection.count() if collection is not None else 0

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

    @staticmethod
    def _chunk_to_metadata(chunk: DocumentChunk) -> dict[str, str | int | float | bool]:
        """Flatten chunk metadata into ChromaDB's scalar-only metadata dict.

        ChromaDB metadata values must be str, int, float or bool, so
        ``None`` fields are left out.
        """
        meta = chunk.metadata.model_dump(mode="json", exclude_none=True)
        return {key: value for key, value in meta.items() if value is not None}

    @staticmethod
    def _metadata_to_chunk(chunk_id: str, meta: dict[str, Any], text: str) -> DocumentChunk:
        """Rebuild a DocumentChunk from a stored metadata dict."""
        return DocumentChunk(
            chunk_id=chunk_id,
            text=text,
            metadata=ChunkMetadata(
                owner_id=meta.get("owner_id", ""),
                collection_id=meta.get("collection_id", ""),
                attachment_id=meta.get("attachment_id", ""),
                source_kind=SourceKind(meta.get("source_kind", SourceKind.FILE.value)),
                source_locator=meta.get("source_locator", ""),
                chunk_index=int(meta.get("chunk_index", 0)),
                collection_title=meta.get("collection_title", ""),
                attachment_name=meta.get("attachment_name", ""),
                page_number=meta.get("page_number"),
            ),
        )

    @staticmethod
    def _translate_filters(filters: dict[str, Any]) -> dict[str, Any]:
        """Translate a flat equality filter into a ChromaDB ``where`` clause.

        ``{"owner_id": "u1"}`` stays as is; several fields become
        ``{"$and": [{"owner_id": {"$eq": "u1"}}, {"collection_id": {"$eq": "c1"}}]}``.
        """
        clauses = [{key: {"$eq": value}} for key, value in sorted(filters.items())]
        if len(clauses) == 1:
            return clauses[0]
        return {"$and": clauses}

    @staticmethod
    def _where_fields(where: dict[str, Any]) -> set[str]:
        if "$and" in where:
            return {key for clause in where["$and"] for key in clause}
        return set(where)
