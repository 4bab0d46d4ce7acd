"""FastAPI API routes for MindLens.

Provides REST endpoints for books (collections), attachments, uploads,
indexing and streamed question answering.  Service dependencies are
resolved from ``app.state`` via FastAPI's ``Depends`` using the
``Annotated`` pattern; the caller's owner id comes from
:func:`mindlens.api.auth.get_owner_identity`.

# ─── API ROUTE MAP ─────────────────────────────────────────────────────
#
# Endpoint                                        Method  Description
# ─────────────────────────────────────────────────────────────────────
# /api/v1/health                                  GET     Liveness + providers
# /api/v1/books                                   GET     List books with counts
# /api/v1/books                                   POST    Create a book
# /api/v1/books/{bid}                             GET     Read a book
# /api/v1/books/{bid}                             PUT     Update a book
# /api/v1/books/{bid}                             DELETE  Cascade-delete a book
# /api/v1/books/{bid}/attachments                 GET     List attachments
# /api/v1/books/{bid}/attachments                 POST    Add an attachment
# /api/v1/books/{bid}/attachments/{aid}           GET     Read an attachment
# /api/v1/books/{bid}/attachments/{aid}           PUT     Rename an attachment
# /api/v1/books/{bid}/attachments/{aid}           DELETE  Delete an attachment
# /api/v1/books/{bid}/index                       POST    Ingest (background, 202)
# /api/v1/books/{bid}/query                       POST    SSE answer stream
# /api/v1/upload                                  POST    Store an uploaded file
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from contextlib import aclosing
from typing import Annotated, Any

import structlog
from fastapi import APIRouter, BackgroundTasks, Depends, Request, UploadFile
from fastapi.responses import StreamingResponse

from mindlens.api.auth import OwnerDep
from mindlens.api.schemas import (
    AttachmentListResponse,
    AttachmentResponse,
    BookListResponse,
    BookResponse,
    CreateAttachmentRequest,
    CreateBookRequest,
    DeleteResponse,
    ErrorResponse,
    HealthResponse,
    IndexRequest,
    IndexResponse,
    QueryRequest,
    RenameAttachmentRequest,
    UpdateBookRequest,
    UploadResponse,
)
from mindlens.models.library import SourceKind
from mindlens.models.rag import AnswerEvent, AnswerEventType, QueryScope, tenant_namespace
from mindlens.services.answer_streamer import AnswerStreamer
from mindlens.services.ingestion.ingestion_service import IngestionService
from mindlens.services.library_service import LibraryService
from mindlens.services.retrieval_service import RetrievalService
from mindlens.utils.errors import MindLensError, ValidationError
from mindlens.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)

router = APIRouter(prefix="/api/v1")

_APP_VERSION = "0.1.0"

# Uploads are read in 64 KB increments so oversized files are rejected
# without buffering the whole payload.
_UPLOAD_CHUNK_SIZE = 64 * 1024

_SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


# ---------------------------------------------------------------------------
# Dependency injection helpers: resolve singletons from app.state
# ---------------------------------------------------------------------------


def _get_library(request: Request) -> LibraryService:
    """Return the library service from application state."""
    return request.app.state.library_service


def _get_ingestion(request: Request) -> IngestionService:
    """Return the ingestion orchestrator from application state."""
    return request.app.state.ingestion_service


def _get_retrieval(request: Request) -> RetrievalService:
    """Return the retrieval engine from application state."""
    return request.app.state.retrieval_service


def _get_streamer(request: Request) -> AnswerStreamer:
    """Return the answer streamer from application state."""
    return request.app.state.answer_streamer


LibraryDep = Annotated[LibraryService, Depends(_get_library)]
IngestionDep = Annotated[IngestionService, Depends(_get_ingestion)]
RetrievalDep = Annotated[RetrievalService, Depends(_get_retrieval)]
StreamerDep = Annotated[AnswerStreamer, Depends(_get_streamer)]


# ---------------------------------------------------------------------------
# System endpoints
# ---------------------------------------------------------------------------


@router.get("/health", response_model=HealthResponse, summary="Application health check")
async def health_check(request: Request) -> HealthResponse:
    """Return application health, version, and the configured providers."""
    providers: dict[str, Any] = dict(getattr(request.app.state, "provider_registry", {}))

    vector_store = getattr(request.app.state, "vector_store", None)
    index_ok = vector_store is not None and vector_store.is_available()
    providers["vector_store_available"] = index_ok

    return HealthResponse(
        status="healthy" if index_ok else "degraded",
        version=_APP_VERSION,
        providers=providers,
    )


# ---------------------------------------------------------------------------
# Books
# ---------------------------------------------------------------------------


@router.get("/books", response_model=BookListResponse, summary="List the caller's books")
async def list_books(owner: OwnerDep, library: LibraryDep) -> BookListResponse:
    entries = await library.list_collections(owner.owner_id)
    return BookListResponse(
        books=[BookResponse.from_collection(c, attachment_count=n) for c, n in entries]
    )


@router.post(
    "/books",
    response_model=BookResponse,
    status_code=201,
    responses={400: {"model": ErrorResponse}},
    summary="Create a book",
)
async def create_book(
    body: CreateBookRequest, owner: OwnerDep, library: LibraryDep
) -> BookResponse:
    collection = await library.create_collection(
        owner.owner_id,
        title=body.title,
        description=body.description,
        cover_image=body.cover_image,
        is_private=body.is_private,
    )
    return BookResponse.from_collection(collection, attachment_count=0)


@router.get(
    "/books/{book_id}",
    response_model=BookResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Read a book",
)
async def get_book(book_id: str, owner: OwnerDep, library: LibraryDep) -> BookResponse:
    collection = await library.get_collection(owner.owner_id, book_id)
    attachments = await library.list_attachments(owner.owner_id, book_id)
    return BookResponse.from_collection(collection, attachment_count=len(attachments))


@router.put(
    "/books/{book_id}",
    response_model=BookResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    summary="Update a book's title, description or privacy",
)
async def update_book(
    book_id: str, body: UpdateBookRequest, owner: OwnerDep, library: LibraryDep
) -> BookResponse:
    collection = await library.update_collection(
        owner.owner_id,
        book_id,
        title=body.title,
        description=body.description,
        is_private=body.is_private,
        cover_image=body.cover_image,
    )
    return BookResponse.from_collection(collection)


@router.delete(
    "/books/{book_id}",
    response_model=DeleteResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Delete a book with its attachments and indexed content",
)
async def delete_book(book_id: str, owner: OwnerDep, library: LibraryDep) -> DeleteResponse:
    removed = await library.delete_collection(owner.owner_id, book_id)
    return DeleteResponse(message=f"Book deleted successfully ({removed} attachments removed)")


# ---------------------------------------------------------------------------
# Attachments
# ---------------------------------------------------------------------------


@router.get(
    "/books/{book_id}/attachments",
    response_model=AttachmentListResponse,
    responses={404: {"model": ErrorResponse}},
    summary="List a book's attachments, newest first",
)
async def list_attachments(
    book_id: str, owner: OwnerDep, library: LibraryDep
) -> AttachmentListResponse:
    attachments = await library.list_attachments(owner.owner_id, book_id)
    return AttachmentListResponse(
        attachments=[AttachmentResponse.from_attachment(a) for a in attachments]
    )


@router.post(
    "/books/{book_id}/attachments",
    response_model=AttachmentResponse,
    status_code=201,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    summary="Add a web page, video or uploaded file to a book",
)
async def create_attachment(
    book_id: str, body: CreateAttachmentRequest, owner: OwnerDep, library: LibraryDep
) -> AttachmentResponse:
    try:
        kind = SourceKind(body.type)
    except ValueError:
        raise ValidationError(message="Invalid attachment type") from None

    if kind.requires_url and not body.url:
        raise ValidationError(message="URL is required for website and youtube attachments")
    locator = body.url if kind.requires_url else body.file_path

    attachment = await library.add_attachment(
        owner.owner_id,
        book_id,
        kind,
        name=body.name,
        locator=locator or "",
        original_file_name=body.original_file_name,
        file_size=body.file_size,
        mime_type=body.mime_type,
    )
    return AttachmentResponse.from_attachment(attachment)


@router.get(
    "/books/{book_id}/attachments/{attachment_id}",
    response_model=AttachmentResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Read an attachment, including its processing status",
)
async def get_attachment(
    book_id: str, attachment_id: str, owner: OwnerDep, library: LibraryDep
) -> AttachmentResponse:
    attachment = await library.get_attachment(owner.owner_id, book_id, attachment_id)
    return AttachmentResponse.from_attachment(attachment)


@router.put(
    "/books/{book_id}/attachments/{attachment_id}",
    response_model=AttachmentResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    summary="Rename an attachment",
)
async def rename_attachment(
    book_id: str,
    attachment_id: str,
    body: RenameAttachmentRequest,
    owner: OwnerDep,
    library: LibraryDep,
) -> AttachmentResponse:
    attachment = await library.rename_attachment(
        owner.owner_id, book_id, attachment_id, body.name
    )
    return AttachmentResponse.from_attachment(attachment)


@router.delete(
    "/books/{book_id}/attachments/{attachment_id}",
    response_model=DeleteResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Delete an attachment and its indexed content",
)
async def delete_attachment(
    book_id: str, attachment_id: str, owner: OwnerDep, library: LibraryDep
) -> DeleteResponse:
    await library.delete_attachment(owner.owner_id, book_id, attachment_id)
    return DeleteResponse(message="Attachment deleted successfully")


# ---------------------------------------------------------------------------
# Indexing
# ---------------------------------------------------------------------------


async def _run_ingestion(
    ingestion: IngestionService,
    owner_id: str,
    book_id: str,
    attachment_id: str,
    kind: SourceKind,
    locator: str,
) -> None:
    """Run one ingestion after the 202 response has been sent.

    The outcome is recorded on the attachment; clients poll the attachment
    for ``completed`` / ``failed``.
    """
    try:
        await ingestion.ingest(owner_id, book_id, attachment_id, kind, locator)
    except MindLensError as exc:
        _logger.warning(
            "background_ingestion_failed",
            attachment_id=attachment_id,
            error_type=type(exc).__name__,
            error=exc.message,
        )


@router.post(
    "/books/{book_id}/index",
    response_model=IndexResponse,
    status_code=202,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    summary="Index an attachment's source into the caller's vector namespace",
)
async def index_attachment(
    book_id: str,
    body: IndexRequest,
    owner: OwnerDep,
    library: LibraryDep,
    ingestion: IngestionDep,
    background_tasks: BackgroundTasks,
    request: Request,
) -> IndexResponse:
    """Validate the request, then ingest in the background.

    Request-level problems (unknown book or attachment, bad locator) are
    reported synchronously; acquisition and indexing failures end up on
    the attachment's status.
    """
    attachment = await library.get_attachment(owner.owner_id, book_id, body.attachment_id)
    if body.source_type:
        try:
            kind = SourceKind(body.source_type)
        except ValueError:
            raise ValidationError(message=f"Unsupported source type: {body.source_type}") from None
    else:
        kind = attachment.source_kind
    locator = (body.source_url if kind.requires_url else body.file_path) or attachment.locator

    await ingestion.begin(owner.owner_id, book_id, body.attachment_id, kind, locator)

    background_tasks.add_task(
        _run_ingestion,
        ingestion,
        owner.owner_id,
        book_id,
        body.attachment_id,
        kind,
        locator,
    )

    prefix = request.app.state.settings.namespace_prefix
    return IndexResponse(
        status="processing",
        book_id=book_id,
        attachment_id=body.attachment_id,
        source_type=kind.value,
        namespace=tenant_namespace(owner.owner_id, prefix=prefix),
    )


# ---------------------------------------------------------------------------
# Query (Server-Sent Events)
# ---------------------------------------------------------------------------


def format_sse(event: AnswerEvent) -> str:
    """Encode one answer event as an SSE ``data:`` frame."""
    if event.type is AnswerEventType.DONE:
        return "data: [DONE]\n\n"
    key = "content" if event.type is AnswerEventType.CONTENT else "error"
    return f"data: {json.dumps({key: event.data})}\n\n"


async def _sse_frames(events: AsyncIterator[AnswerEvent]) -> AsyncIterator[str]:
    # aclosing() propagates a client disconnect to the generator chain.
    finished = False
    try:
        async with aclosing(events) as stream:
            async for event in stream:
                if event.type is AnswerEventType.DONE:
                    finished = True
                yield format_sse(event)
    except MindLensError as exc:
        _logger.error("answer_stream_failed", error_type=type(exc).__name__, error=exc.message)
        yield format_sse(AnswerEvent.error(exc.message))
    except Exception as exc:
        # Headers are already sent; the client still gets an error and [DONE].
        _logger.exception("answer_stream_crashed", error_type=type(exc).__name__)
        yield format_sse(AnswerEvent.error("Answer generation failed unexpectedly"))
    if not finished:
        yield format_sse(AnswerEvent.done())


@router.post(
    "/books/{book_id}/query",
    responses={
        200: {"content": {"text/event-stream": {}}},
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
    },
    summary="Ask a question over one book (or all books) as a streamed answer",
)
async def query_book(
    book_id: str,
    body: QueryRequest,
    owner: OwnerDep,
    library: LibraryDep,
    retrieval: RetrievalDep,
    streamer: StreamerDep,
) -> StreamingResponse:
    if not body.user_query or not body.user_query.strip():
        raise ValidationError(message="User query is required")

    # The book in the path must belong to the caller even for all-book queries.
    book = await library.get_collection(owner.owner_id, book_id)
    scope = (
        QueryScope.all_collections()
        if body.include_all_books
        else QueryScope.collection(book_id)
    )

    chunks = await retrieval.retrieve(owner.owner_id, scope, body.user_query, k=body.result_limit)
    _logger.info(
        "query_received",
        book_id=book_id,
        all_books=body.include_all_books,
        chunks=len(chunks),
    )

    scope_title = None if body.include_all_books else book.title
    events = streamer.answer(body.user_query.strip(), chunks, scope_title=scope_title)
    return StreamingResponse(
        _sse_frames(events),
        media_type="text/event-stream",
        headers=_SSE_HEADERS,
    )


# ---------------------------------------------------------------------------
# Upload
# ---------------------------------------------------------------------------


@router.post(
    "/upload",
    response_model=UploadResponse,
    responses={400: {"model": ErrorResponse}},
    summary="Store an uploaded document for a file attachment",
)
async def upload_file(
    file: UploadFile,
    owner: OwnerDep,
    library: LibraryDep,
    request: Request,
) -> UploadResponse:
    max_bytes: int = request.app.state.settings.max_upload_bytes

    chunks: list[bytes] = []
    total_size = 0
    while True:
        chunk = await file.read(_UPLOAD_CHUNK_SIZE)
        if not chunk:
            break
        total_size += len(chunk)
        if total_size > max_bytes:
            raise ValidationError(
                message=f"File size exceeds {max_bytes // (1024 * 1024)}MB limit"
            )
        chunks.append(chunk)
    data = b"".join(chunks)
    del chunks

    stored = await library.store_upload(
        owner.owner_id,
        file_name=file.filename or "",
        content_type=file.content_type,
        data=data,
    )
    return UploadResponse(**stored)
