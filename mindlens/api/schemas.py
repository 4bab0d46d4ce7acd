"""Pydantic request / response schemas for the MindLens REST API.

Response models are built from the domain models in :mod:`mindlens.models`
by the ``from_*`` class methods, so route handlers never hand-assemble
JSON dictionaries.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from mindlens.models.library import Attachment, AttachmentMetadata, Collection


class HealthResponse(BaseModel):
    """Application health check response."""

    status: str
    version: str
    providers: dict[str, Any]


class ErrorResponse(BaseModel):
    """Standard error response body."""

    error: str
    detail: str | None = None


# ---------------------------------------------------------------------------
# Books (collections)
# ---------------------------------------------------------------------------


class CreateBookRequest(BaseModel):
    """Body for ``POST /books``."""

    title: str = Field(min_length=1, max_length=100)
    description: str = Field(default="", max_length=500)
    cover_image: str | None = None
    is_private: bool = True


class UpdateBookRequest(BaseModel):
    """Body for ``PUT /books/{book_id}``; omitted fields are left unchanged."""

    title: str | None = Field(default=None, min_length=1, max_length=100)
    description: str | None = Field(default=None, max_length=500)
    cover_image: str | None = None
    is_private: bool | None = None


class BookResponse(BaseModel):
    """A book as returned by the API."""

    id: str
    title: str
    description: str
    cover_image: str | None = None
    is_private: bool
    attachment_count: int | None = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_collection(
        cls, collection: Collection, attachment_count: int | None = None
    ) -> BookResponse:
        return cls(
            id=collection.collection_id,
            title=collection.title,
            description=collection.description,
            cover_image=collection.cover_image,
            is_private=collection.is_private,
            attachment_count=attachment_count,
            created_at=collection.created_at,
            updated_at=collection.updated_at,
        )


class BookListResponse(BaseModel):
    books: list[BookResponse] = Field(default_factory=list)


class DeleteResponse(BaseModel):
    message: str


# ---------------------------------------------------------------------------
# Attachments
# ---------------------------------------------------------------------------


class CreateAttachmentRequest(BaseModel):
    """Body for ``POST /books/{book_id}/attachments``.

    ``type`` accepts ``web_page`` / ``video`` / ``file`` and the older
    ``website`` / ``youtube`` spellings.
    """

    type: str
    name: str = "url"
    url: str | None = None
    file_path: str | None = None
    original_file_name: str | None = None
    file_size: int | None = Field(default=None, ge=0)
    mime_type: str | None = None


class RenameAttachmentRequest(BaseModel):
    name: str = Field(min_length=1, max_length=200)


class AttachmentResponse(BaseModel):
    """An attachment as returned by the API."""

    id: str
    book_id: str
    type: str
    name: str
    url: str | None = None
    file_path: str | None = None
    original_file_name: str | None = None
    file_size: int | None = None
    mime_type: str | None = None
    status: str
    metadata: AttachmentMetadata
    processing_started_at: datetime | None = None
    processing_completed_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_attachment(cls, attachment: Attachment) -> AttachmentResponse:
        is_url = attachment.source_kind.requires_url
        return cls(
            id=attachment.attachment_id,
            book_id=attachment.collection_id,
            type=attachment.source_kind.value,
            name=attachment.name,
            url=attachment.locator if is_url else None,
            file_path=None if is_url else attachment.locator,
            original_file_name=attachment.original_file_name,
            file_size=attachment.file_size,
            mime_type=attachment.mime_type,
            status=attachment.status.value,
            metadata=attachment.metadata,
            processing_started_at=attachment.processing_started_at,
            processing_completed_at=attachment.processing_completed_at,
            created_at=attachment.created_at,
            updated_at=attachment.updated_at,
        )


class AttachmentListResponse(BaseModel):
    attachments: list[AttachmentResponse] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Indexing / query / upload
# ---------------------------------------------------------------------------


class IndexRequest(BaseModel):
    """Body for ``POST /books/{book_id}/index``.

    When neither ``source_url`` nor ``file_path`` is given, the
    attachment's own locator is used.
    """

    attachment_id: str = Field(min_length=1)
    source_type: str | None = None
    source_url: str | None = None
    file_path: str | None = None


class IndexResponse(BaseModel):
    status: str
    book_id: str
    attachment_id: str
    source_type: str
    namespace: str


class QueryRequest(BaseModel):
    """Body for ``POST /books/{book_id}/query``."""

    user_query: str
    include_all_books: bool = False
    result_limit: int | None = Field(default=None, ge=1, le=50)


class UploadResponse(BaseModel):
    success: bool = True
    file_path: str
    file_name: str
    original_name: str
    size: int
    type: str
