"""Orchestrator for the attachment ingestion pipeline.

Pipeline stages: **load -> chunk -> stamp -> embed -> store**.

The :class:`IngestionService` implements the **Orchestrator pattern**: it
coordinates the source loader registry, the chunker, the embedding
provider, the vector store and the metadata store without any of them
knowing about each other.  One call to :meth:`IngestionService.ingest`
runs the whole flow for one attachment:

    0. validate the request and check ownership, then mark the attachment
       ``processing`` (a new run)
    1. SourceLoaderRegistry -- acquire the source as SourcePages
    2. TextChunker -- split pages into overlapping windows
    3. stamp ownership / provenance metadata on every chunk
    4. IVectorStoreProvider -- drop the attachment's previous chunks, then
       embed and upsert the new ones into the owner's namespace
    5. mark the attachment ``completed`` with counts and loader metadata

Any failure in steps 1-4 marks the attachment ``failed`` with the error
message and is re-raised to the caller.  Request-level errors from step 0
never touch attachment state.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any
from urllib.parse import urlparse

import structlog

from mindlens.models.library import Attachment, AttachmentStatus, Collection, SourceKind
from mindlens.models.rag import (
    ChunkMetadata,
    DocumentChunk,
    IngestionResult,
    SourcePage,
    TextChunk,
    tenant_namespace,
)
from mindlens.services.ingestion.chunker import TextChunker
from mindlens.utils.errors import (
    AccessDeniedError,
    EmptySourceError,
    LoadError,
    MindLensError,
    NotFoundError,
    ValidationError,
)

if TYPE_CHECKING:
    from mindlens.interfaces.blob_store import IBlobStore
    from mindlens.interfaces.embedding_provider import IEmbeddingProvider
    from mindlens.interfaces.metadata_store import IMetadataStore
    from mindlens.interfaces.vector_store_provider import IVectorStoreProvider
    from mindlens.providers.loaders.registry import SourceLoaderRegistry

logger = structlog.get_logger(logger_name=__name__)

# Characters of extracted text kept on the attachment as a preview.
_PREVIEW_CHARS = 1000

# Loader metadata keys copied onto the attachment after a successful run.
_LOADER_METADATA_KEYS = ("title", "description", "thumbnail", "duration", "language")


class IngestionService:
    """Runs one attachment through load -> chunk -> embed -> store.

    All collaborators are injected, so loaders and providers can be swapped
    (e.g. OpenAI -> FastEmbed, ChromaDB -> in-memory) without changing this
    class.

    Parameters
    ----------
    registry:
        Maps each :class:`SourceKind` to the loader that acquires it.
    chunker:
        Splits loaded pages into overlapping character windows.
    embedding_provider:
        Generates embedding vectors for chunk text.
    vector_store:
        Tenant-partitioned index the chunks are written to.
    metadata_store:
        Holds collections and attachments, including attachment status.
    blob_store:
        Stored uploads; transient uploads are deleted after loading.
    namespace_prefix:
        Prefix for per-owner vector namespaces.
    """

    def __init__(
        self,
        registry: SourceLoaderRegistry,
        chunker: TextChunker,
        embedding_provider: IEmbeddingProvider,
        vector_store: IVectorStoreProvider,
        metadata_store: IMetadataStore,
        blob_store: IBlobStore,
        namespace_prefix: str = "mindlens",
    ) -> None:
        self._registry = registry
        self._chunker = chunker
        self._embedding_provider = embedding_provider
        self._vector_store = vector_store
        self._metadata_store = metadata_store
        self._blob_store = blob_store
        self._namespace_prefix = namespace_prefix

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def check(
        self,
        owner_id: str,
        collection_id: str,
        attachment_id: str,
        source_kind: SourceKind | str,
        locator: str,
    ) -> Attachment:
        """Run the request-level checks of :meth:`ingest` without side effects.

        Lets callers that schedule ingestion in the background reject bad
        requests synchronously.  Raises the same errors as step 0 of
        :meth:`ingest`.
        """
        kind = self._validate_request(owner_id, collection_id, attachment_id, source_kind, locator)
        _, attachment = await self._resolve_target(
            owner_id, collection_id, attachment_id, kind, locator
        )
        return attachment

    async def begin(
        self,
        owner_id: str,
        collection_id: str,
        attachment_id: str,
        source_kind: SourceKind | str,
        locator: str,
    ) -> Attachment:
        """Run :meth:`check`, then mark the attachment ``processing``.

        Used before scheduling :meth:`ingest` in the background so a
        re-index of a completed or failed attachment reads as
        ``processing`` as soon as the request is accepted.
        """
        await self.check(owner_id, collection_id, attachment_id, source_kind, locator)
        return await self._metadata_store.set_attachment_status(
            owner_id, attachment_id, AttachmentStatus.PROCESSING
        )

    async def ingest(
        self,
        owner_id: str,
        collection_id: str,
        attachment_id: str,
        source_kind: SourceKind | str,
        locator: str,
    ) -> IngestionResult:
        """Ingest one attachment's source into the owner's namespace.

        Returns
        -------
        IngestionResult
            Counts and timing for the run.

        Raises
        ------
        ValidationError
            Missing or malformed input, or a kind / locator that does not
            match the attachment.
        AccessDeniedError
            The collection does not belong to *owner_id*.
        NotFoundError
            The attachment does not exist in the collection.
        LoadError, EmptySourceError, EmbeddingServiceError, IndexServiceError
            Raised after the attachment has been marked ``failed``.
        """
        start = time.monotonic()

        # Step 0: request-level checks, no state changes before this passes.
        kind = self._validate_request(owner_id, collection_id, attachment_id, source_kind, locator)
        collection, attachment = await self._resolve_target(
            owner_id, collection_id, attachment_id, kind, locator
        )
        namespace = tenant_namespace(owner_id, prefix=self._namespace_prefix)

        await self._metadata_store.set_attachment_status(
            owner_id, attachment_id, AttachmentStatus.PROCESSING
        )
        logger.info(
            "ingestion_started",
            owner_id=owner_id,
            collection_id=collection_id,
            attachment_id=attachment_id,
            source_kind=kind.value,
            namespace=namespace,
        )

        try:
            # Step 1: load.
            pages = await self._load_pages(kind, locator)

            # Step 2: chunk.
            windows = self._chunker.split(pages, source_kind=kind)
            if not windows:
                raise EmptySourceError(
                    message=f"No content found to index for attachment {attachment_id}"
                )

            # Step 3: stamp ownership and provenance.
            chunks = self._stamp_chunks(windows, collection, attachment, kind, locator)

            # Step 4: replace the attachment's chunks in the owner's namespace.
            stored = await self._replace_chunks(namespace, attachment_id, chunks)
        except Exception as exc:
            # Step 6: record the failure on the attachment, then re-raise.
            await self._mark_failed(owner_id, attachment_id, exc)
            raise

        # Step 5: record success.
        character_count = sum(len(page.text) for page in pages)
        metadata_updates = self._completion_metadata(pages, stored, character_count)
        await self._metadata_store.set_attachment_status(
            owner_id, attachment_id, AttachmentStatus.COMPLETED, metadata_updates
        )

        elapsed = time.monotonic() - start
        result = IngestionResult(
            attachment_id=attachment_id,
            collection_id=collection_id,
            namespace=namespace,
            chunk_count=stored,
            character_count=character_count,
            page_count=len(pages),
            ingestion_time=round(elapsed, 2),
        )

        logger.info(
            "ingestion_complete",
            attachment_id=attachment_id,
            namespace=namespace,
            pages=result.page_count,
            chunks=result.chunk_count,
            characters=result.character_count,
            time_s=result.ingestion_time,
        )
        return result

    # ------------------------------------------------------------------
    # Step 0: validation and ownership
    # ------------------------------------------------------------------

    @staticmethod
    def _validate_request(
        owner_id: str,
        collection_id: str,
        attachment_id: str,
        source_kind: SourceKind | str,
        locator: str,
    ) -> SourceKind:
        for field_name, value in (
            ("owner_id", owner_id),
            ("collection_id", collection_id),
            ("attachment_id", attachment_id),
            ("locator", locator),
        ):
            if not value or not str(value).strip():
                raise ValidationError(message=f"{field_name} is required")

        try:
            kind = SourceKind(source_kind)
        except ValueError:
            raise ValidationError(message=f"Unsupported source type: {source_kind}") from None

        if kind.requires_url:
            parsed = urlparse(locator)
            if parsed.scheme not in ("http", "https") or not parsed.netloc:
                raise ValidationError(
                    message=f"A valid http(s) URL is required for {kind.value} sources"
                )
        return kind

    async def _resolve_target(
        self,
        owner_id: str,
        collection_id: str,
        attachment_id: str,
        kind: SourceKind,
        locator: str,
    ) -> tuple[Collection, Attachment]:
        collection = await self._metadata_store.get_collection(owner_id, collection_id)
        if collection is None:
            raise AccessDeniedError(message="Book not found or access denied")

        attachment = await self._metadata_store.get_attachment(owner_id, attachment_id)
        if attachment is None or attachment.collection_id != collection_id:
            raise NotFoundError(message=f"Attachment {attachment_id} not found")

        if attachment.source_kind is not kind:
            raise ValidationError(
                message=(
                    f"Attachment {attachment_id} is a {attachment.source_kind.value} source, "
                    f"not {kind.value}"
                )
            )
        # Stored files are only readable through the attachment that owns them.
        if kind is SourceKind.FILE and locator != attachment.locator:
            raise ValidationError(message="File reference does not match the attachment")

        return collection, attachment

    # ------------------------------------------------------------------
    # Steps 1-4
    # ------------------------------------------------------------------

    async def _load_pages(self, kind: SourceKind, locator: str) -> list[SourcePage]:
        loader = self._registry.get(kind)
        pages: list[SourcePage] = []
        try:
            async for page in loader.load(locator):
                pages.append(page)
        except MindLensError:
            raise
        except Exception as exc:
            raise LoadError(
                message=f"{kind.value} processing failed: {exc}",
                provider_name=loader.get_provider_name(),
            ) from exc
        finally:
            if loader.cleanup_after_load():
                await self._release_artifact(locator)

        logger.debug("source_loaded", source_kind=kind.value, pages=len(pages))
        return pages

    async def _release_artifact(self, locator: str) -> None:
        try:
            deleted = await self._blob_store.delete(locator)
        except MindLensError as exc:
            logger.warning("stored_file_cleanup_failed", locator=locator, error=str(exc))
            return
        logger.debug("stored_file_deleted", locator=locator, deleted=deleted)

    @staticmethod
    def _stamp_chunks(
        windows: list[TextChunk],
        collection: Collection,
        attachment: Attachment,
        kind: SourceKind,
        locator: str,
    ) -> list[DocumentChunk]:
        chunks: list[DocumentChunk] = []
        for index, window in enumerate(windows):
            page_number = window.metadata.get("page_number")
            metadata = ChunkMetadata(
                owner_id=attachment.owner_id,
                collection_id=collection.collection_id,
                attachment_id=attachment.attachment_id,
                source_kind=kind,
                source_locator=locator,
                chunk_index=index,
                collection_title=collection.title,
                attachment_name=attachment.name,
                page_number=page_number if isinstance(page_number, int) else None,
            )
            chunks.append(
                DocumentChunk(
                    chunk_id=f"{attachment.attachment_id}:{index}",
                    text=window.text,
                    metadata=metadata,
                )
            )
        return chunks

    async def _replace_chunks(
        self,
        namespace: str,
        attachment_id: str,
        chunks: list[DocumentChunk],
    ) -> int:
        removed = await self._vector_store.delete_by_attachment(namespace, attachment_id)
        if removed:
            logger.info("previous_chunks_removed", attachment_id=attachment_id, removed=removed)

        embeddings = await self._embedding_provider.embed([c.text for c in chunks])
        return await self._vector_store.upsert(namespace, chunks, embeddings)

    # ------------------------------------------------------------------
    # Steps 5-6: attachment bookkeeping
    # ------------------------------------------------------------------

    @staticmethod
    def _completion_metadata(
        pages: list[SourcePage],
        chunk_count: int,
        character_count: int,
    ) -> dict[str, Any]:
        updates: dict[str, Any] = {
            "chunk_count": chunk_count,
            "word_count": character_count,
            "extracted_text": "\n".join(page.text for page in pages)[:_PREVIEW_CHARS],
        }
        # First page to carry a value wins (PDF title, video duration, ...).
        for key in _LOADER_METADATA_KEYS:
            for page in pages:
                value = page.metadata.get(key)
                if value not in (None, ""):
                    updates[key] = value
                    break
        return updates

    async def _mark_failed(self, owner_id: str, attachment_id: str, exc: Exception) -> None:
        message = exc.message if isinstance(exc, MindLensError) else str(exc)
        logger.error(
            "ingestion_failed",
            attachment_id=attachment_id,
            error_type=type(exc).__name__,
            error=str(exc),
        )
        try:
            await self._metadata_store.set_attachment_status(
                owner_id,
                attachment_id,
                AttachmentStatus.FAILED,
                {"error": message or type(exc).__name__},
            )
        except MindLensError as status_exc:
            logger.error(
                "attachment_status_update_failed",
                attachment_id=attachment_id,
                error=str(status_exc),
            )
