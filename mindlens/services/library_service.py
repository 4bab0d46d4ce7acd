"""Collection ("book") and attachment lifecycle for one owner at a time.

Every operation takes the caller's ``owner_id`` and only ever sees that
owner's rows: a collection or attachment belonging to someone else behaves
exactly like one that does not exist.

Deletes cascade in two phases.  The metadata rows are authoritative; stored
files and indexed vectors are cleaned up best effort, and a failure there
is logged as a warning without blocking the delete.  Orphaned vectors are
harmless to other owners because every query is filtered by owner and
collection.
"""

from __future__ import annotations

import mimetypes
import re
import time
import uuid
from typing import TYPE_CHECKING, Any

import pydantic
import structlog

from mindlens.models.library import Attachment, Collection, SourceKind
from mindlens.models.rag import tenant_namespace
from mindlens.providers.loaders.transcript_loader import extract_video_id
from mindlens.utils.errors import MindLensError, NotFoundError, ValidationError

if TYPE_CHECKING:
    from mindlens.interfaces.blob_store import IBlobStore
    from mindlens.interfaces.metadata_store import IMetadataStore
    from mindlens.interfaces.vector_store_provider import IVectorStoreProvider

logger = structlog.get_logger(logger_name=__name__)

MAX_UPLOAD_BYTES = 50 * 1024 * 1024

ALLOWED_UPLOAD_TYPES: frozenset[str] = frozenset(
    {
        "application/pdf",
        "text/plain",
        "application/msword",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        "text/csv",
        "application/json",
        "text/markdown",
        "application/epub+zip",
        "application/rtf",
        "text/rtf",
    }
)

_UNSAFE_FILE_CHARS = re.compile(r"[^a-zA-Z0-9.-]")
# host.tld with an optional path; the scheme is added when missing.
_WEB_URL = re.compile(
    r"^https?://(www\.)?[-a-zA-Z0-9@:%._+~#=]{1,256}\.[a-zA-Z0-9()]{1,6}\b"
    r"([-a-zA-Z0-9()@:%_+.~#?&/=]*)$"
)


def normalize_web_url(url: str) -> str:
    """Validate a web page URL, adding ``https://`` when no scheme is given.

    Raises
    ------
    ValidationError
        If the result is not an http(s) URL with a dotted host.
    """
    candidate = (url or "").strip()
    if not candidate:
        raise ValidationError(message="URL is required")
    if not candidate.startswith(("http://", "https://")):
        candidate = f"https://{candidate}"
    if not _WEB_URL.match(candidate):
        raise ValidationError(
            message="Please enter a valid website URL (e.g., https://example.com)"
        )
    return candidate


def validate_video_url(url: str) -> str:
    """Return the trimmed YouTube URL, or raise :class:`ValidationError`."""
    candidate = (url or "").strip()
    if not candidate:
        raise ValidationError(message="YouTube URL is required")
    if not candidate.startswith(("http://", "https://")) or extract_video_id(candidate) is None:
        raise ValidationError(
            message="Please enter a valid YouTube URL (e.g., https://youtube.com/watch?v=...)"
        )
    return candidate


def safe_upload_name(file_name: str, timestamp_ms: int | None = None) -> str:
    """Return ``<timestamp>_<name>`` with characters outside ``[a-zA-Z0-9.-]`` replaced."""
    stamp = timestamp_ms if timestamp_ms is not None else int(time.time() * 1000)
    base = file_name.replace("\\", "/").rsplit("/", 1)[-1]
    return f"{stamp}_{_UNSAFE_FILE_CHARS.sub('_', base)}"


def _new_id() -> str:
    return uuid.uuid4().hex


def _validation_message(exc: pydantic.ValidationError) -> str:
    first = exc.errors()[0]
    field = ".".join(str(part) for part in first.get("loc", ())) or "input"
    return f"{field}: {first.get('msg', 'invalid value')}"


class LibraryService:
    """Owner-scoped CRUD for collections and attachments, plus uploads.

    Parameters
    ----------
    metadata_store:
        Persists collections and attachments.
    vector_store:
        The tenant index, cleaned up when attachments or collections go.
    blob_store:
        Stored uploads.
    namespace_prefix:
        Prefix for per-owner vector namespaces.
    max_upload_bytes:
        Largest accepted upload.
    allowed_upload_types:
        MIME types accepted by :meth:`store_upload`.
    """

    def __init__(
        self,
        metadata_store: IMetadataStore,
        vector_store: IVectorStoreProvider,
        blob_store: IBlobStore,
        namespace_prefix: str = "mindlens",
        max_upload_bytes: int = MAX_UPLOAD_BYTES,
        allowed_upload_types: frozenset[str] | None = None,
    ) -> None:
        self._metadata_store = metadata_store
        self._vector_store = vector_store
        self._blob_store = blob_store
        self._namespace_prefix = namespace_prefix
        self._max_upload_bytes = max_upload_bytes
        self._allowed_upload_types = allowed_upload_types or ALLOWED_UPLOAD_TYPES

    # ------------------------------------------------------------------
    # Collections
    # ------------------------------------------------------------------

    async def create_collection(
        self,
        owner_id: str,
        title: str,
        description: str = "",
        cover_image: str | None = None,
        is_private: bool = True,
    ) -> Collection:
        try:
            collection = Collection(
                collection_id=_new_id(),
                owner_id=owner_id,
                title=(title or "").strip(),
                description=(description or "").strip(),
                cover_image=cover_image,
                is_private=is_private,
            )
        except pydantic.ValidationError as exc:
            raise ValidationError(message=_validation_message(exc)) from None

        created = await self._metadata_store.create_collection(collection)
        logger.info("collection_created", owner_id=owner_id, collection_id=created.collection_id)
        return created

    async def list_collections(self, owner_id: str) -> list[tuple[Collection, int]]:
        """Return the owner's collections, most recently updated first, with attachment counts."""
        collections = await self._metadata_store.list_collections(owner_id)
        result: list[tuple[Collection, int]] = []
        for collection in collections:
            count = await self._metadata_store.count_attachments(owner_id, collection.collection_id)
            result.append((collection, count))
        return result

    async def get_collection(self, owner_id: str, collection_id: str) -> Collection:
        collection = await self._metadata_store.get_collection(owner_id, collection_id)
        if collection is None:
            raise NotFoundError(message="Book not found or access denied")
        return collection

    async def update_collection(
        self,
        owner_id: str,
        collection_id: str,
        title: str | None = None,
        description: str | None = None,
        is_private: bool | None = None,
        cover_image: str | None = None,
    ) -> Collection:
        fields: dict[str, Any] = {}
        if title is not None:
            fields["title"] = title.strip()
        if description is not None:
            fields["description"] = description.strip()
        if is_private is not None:
            fields["is_private"] = is_private
        if cover_image is not None:
            fields["cover_image"] = cover_image

        try:
            updated = await self._metadata_store.update_collection(owner_id, collection_id, fields)
        except pydantic.ValidationError as exc:
            raise ValidationError(message=_validation_message(exc)) from None
        if updated is None:
            raise NotFoundError(message="Book not found or access denied")
        logger.info("collection_updated", collection_id=collection_id, fields=sorted(fields))
        return updated

    async def delete_collection(self, owner_id: str, collection_id: str) -> int:
        """Delete a collection with its attachments, stored files and vectors.

        Returns the number of attachments removed.
        """
        await self.get_collection(owner_id, collection_id)
        attachments = await self._metadata_store.list_attachments(owner_id, collection_id)

        for attachment in attachments:
            await self._discard_stored_file(attachment)

        namespace = tenant_namespace(owner_id, prefix=self._namespace_prefix)
        try:
            removed = await self._vector_store.delete_by_collection(namespace, collection_id)
            logger.info("collection_vectors_deleted", collection_id=collection_id, removed=removed)
        except MindLensError as exc:
            logger.warning(
                "collection_vector_cleanup_failed",
                collection_id=collection_id,
                namespace=namespace,
                error=str(exc),
            )

        await self._metadata_store.delete_collection(owner_id, collection_id)
        logger.info(
            "collection_deleted",
            owner_id=owner_id,
            collection_id=collection_id,
            attachments=len(attachments),
        )
        return len(attachments)

    # ------------------------------------------------------------------
    # Attachments
    # ------------------------------------------------------------------

    async def add_attachment(
        self,
        owner_id: str,
        collection_id: str,
        source_kind: SourceKind | str,
        name: str,
        locator: str,
        original_file_name: str | None = None,
        file_size: int | None = None,
        mime_type: str | None = None,
    ) -> Attachment:
        """Create an attachment in ``processing`` state.

        Web page URLs get ``https://`` when they have no scheme; video URLs
        must be recognizable YouTube links; file attachments must reference
        an existing stored upload.
        """
        try:
            kind = SourceKind(source_kind)
        except ValueError:
            raise ValidationError(message="Invalid attachment type") from None

        if kind is SourceKind.WEB_PAGE:
            locator = normalize_web_url(locator)
        elif kind is SourceKind.VIDEO:
            locator = validate_video_url(locator)
        else:
            locator = (locator or "").strip()
            if not locator:
                raise ValidationError(message="File path is required for file attachments")
            if not await self._blob_store.exists(locator):
                raise ValidationError(message=f"Stored file not found: {locator}")

        await self.get_collection(owner_id, collection_id)

        try:
            attachment = Attachment(
                attachment_id=_new_id(),
                collection_id=collection_id,
                owner_id=owner_id,
                source_kind=kind,
                name=(name or "").strip(),
                locator=locator,
                original_file_name=original_file_name,
                file_size=file_size,
                mime_type=mime_type,
            )
        except pydantic.ValidationError as exc:
            raise ValidationError(message=_validation_message(exc)) from None

        created = await self._metadata_store.create_attachment(attachment)
        logger.info(
            "attachment_created",
            collection_id=collection_id,
            attachment_id=created.attachment_id,
            source_kind=kind.value,
        )
        return created

    async def list_attachments(self, owner_id: str, collection_id: str) -> list[Attachment]:
        await self.get_collection(owner_id, collection_id)
        return await self._metadata_store.list_attachments(owner_id, collection_id)

    async def get_attachment(
        self, owner_id: str, collection_id: str, attachment_id: str
    ) -> Attachment:
        attachment = await self._metadata_store.get_attachment(owner_id, attachment_id)
        if attachment is None or attachment.collection_id != collection_id:
            raise NotFoundError(message="Attachment not found or access denied")
        return attachment

    async def rename_attachment(
        self, owner_id: str, collection_id: str, attachment_id: str, name: str
    ) -> Attachment:
        attachment = await self.get_attachment(owner_id, collection_id, attachment_id)
        try:
            renamed = attachment.model_validate(
                {**attachment.model_dump(), "name": (name or "").strip()}
            )
        except pydantic.ValidationError as exc:
            raise ValidationError(message=_validation_message(exc)) from None
        return await self._metadata_store.save_attachment(renamed)

    async def delete_attachment(
        self, owner_id: str, collection_id: str, attachment_id: str
    ) -> None:
        attachment = await self.get_attachment(owner_id, collection_id, attachment_id)

        namespace = tenant_namespace(owner_id, prefix=self._namespace_prefix)
        try:
            removed = await self._vector_store.delete_by_attachment(namespace, attachment_id)
            logger.info("attachment_vectors_deleted", attachment_id=attachment_id, removed=removed)
        except MindLensError as exc:
            logger.warning(
                "attachment_vector_cleanup_failed",
                attachment_id=attachment_id,
                namespace=namespace,
                error=str(exc),
            )

        await self._discard_stored_file(attachment)
        await self._metadata_store.delete_attachment(owner_id, attachment_id)
        logger.info("attachment_deleted", collection_id=collection_id, attachment_id=attachment_id)

    # ------------------------------------------------------------------
    # Uploads
    # ------------------------------------------------------------------

    async def store_upload(
        self,
        owner_id: str,
        file_name: str,
        content_type: str | None,
        data: bytes,
    ) -> dict[str, Any]:
        """Validate and store an uploaded file, returning its locator and details."""
        if not file_name:
            raise ValidationError(message="No file uploaded")

        mime = (content_type or "").split(";", 1)[0].strip().lower()
        if not mime or mime == "application/octet-stream":
            mime = mimetypes.guess_type(file_name)[0] or mime
        if mime not in self._allowed_upload_types:
            raise ValidationError(
                message=(
                    "File type not supported. Allowed types: "
                    "PDF, TXT, DOC, DOCX, CSV, JSON, MD, EPUB, RTF"
                )
            )
        if len(data) > self._max_upload_bytes:
            limit_mb = self._max_upload_bytes // (1024 * 1024)
            raise ValidationError(message=f"File size exceeds {limit_mb}MB limit")

        stored_name = safe_upload_name(file_name)
        locator = await self._blob_store.save(stored_name, data)
        logger.info("upload_stored", owner_id=owner_id, locator=locator, size=len(data), type=mime)
        return {
            "file_path": locator,
            "file_name": stored_name,
            "original_name": file_name,
            "size": len(data),
            "type": mime,
        }

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _discard_stored_file(self, attachment: Attachment) -> None:
        if attachment.source_kind is not SourceKind.FILE:
            return
        try:
            await self._blob_store.delete(attachment.locator)
        except MindLensError as exc:
            logger.warning(
                "stored_file_cleanup_failed",
                attachment_id=attachment.attachment_id,
                locator=attachment.locator,
                error=str(exc),
            )
