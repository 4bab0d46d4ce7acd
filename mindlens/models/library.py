"""Collection ("book") and attachment models for the MindLens library.

A **collection** is an owner-scoped, named grouping of sources.  An
**attachment** is one source inside a collection -- a web page, a video,
or an uploaded file -- tracked through a small processing lifecycle:

    processing ──► completed
        │   ▲
        ▼   │ (new ingestion run, same attachment identity)
      failed ───┘

Models are frozen Pydantic v2 models; state changes produce a new copy via
:func:`transition_status`, which also stamps the lifecycle timestamps.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from mindlens.utils.errors import InvalidStateTransitionError


def utc_now() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

class SourceKind(str, Enum):
    """The kind of source an attachment was created from.

    Older clients sent ``"website"``, ``"youtube"`` and ``"pdf"``; those
    spellings are accepted and mapped onto the current values.
    """

    WEB_PAGE = "web_page"
    VIDEO = "video"
    FILE = "file"

    @classmethod
    def _missing_(cls, value: object) -> SourceKind | None:
        aliases = {
            "website": cls.WEB_PAGE,
            "web": cls.WEB_PAGE,
            "web-page": cls.WEB_PAGE,
            "youtube": cls.VIDEO,
            "pdf": cls.FILE,
        }
        if isinstance(value, str):
            return aliases.get(value.strip().lower())
        return None

    @property
    def requires_url(self) -> bool:
        return self in (SourceKind.WEB_PAGE, SourceKind.VIDEO)


class AttachmentStatus(str, Enum):
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not AttachmentStatus.PROCESSING


# ---------------------------------------------------------------------------
# Collection
# ---------------------------------------------------------------------------

class Collection(BaseModel):
    """An owner-scoped, named grouping of attachments (a "book")."""

    model_config = ConfigDict(frozen=True)

    collection_id: str
    owner_id: str
    title: str = Field(min_length=1, max_length=100)
    description: str = Field(default="", max_length=500)
    cover_image: str | None = None
    is_private: bool = True
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


# ---------------------------------------------------------------------------
# Attachment
# ---------------------------------------------------------------------------

class AttachmentMetadata(BaseModel):
    """Structured metadata refreshed by ingestion runs."""

    model_config = ConfigDict(frozen=True)

    title: str | None = None
    description: str | None = None
    thumbnail: str | None = None
    duration: float | None = Field(default=None, ge=0)
    # Total extracted characters across all loaded pages (named word_count for
    # compatibility with existing clients).
    word_count: int | None = Field(default=None, ge=0)
    language: str | None = None
    # Preview of the first 1000 extracted characters.
    extracted_text: str | None = None
    chunk_count: int | None = Field(default=None, ge=0)
    error: str | None = None


class Attachment(BaseModel):
    """One ingested source belonging to exactly one collection and one owner."""

    model_config = ConfigDict(frozen=True)

    attachment_id: str
    collection_id: str
    owner_id: str
    source_kind: SourceKind
    name: str = Field(min_length=1, max_length=200)
    locator: str
    original_file_name: str | None = None
    file_size: int | None = Field(default=None, ge=0)
    mime_type: str | None = None
    status: AttachmentStatus = AttachmentStatus.PROCESSING
    metadata: AttachmentMetadata = Field(default_factory=AttachmentMetadata)
    processing_started_at: datetime | None = None
    processing_completed_at: datetime | None = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


# Allowed (from, to) pairs.  processing -> processing covers a second run
# started while the first is still in flight (callers serialize re-runs).
_ALLOWED_TRANSITIONS: frozenset[tuple[AttachmentStatus, AttachmentStatus]] = frozenset(
    {
        (AttachmentStatus.PROCESSING, AttachmentStatus.PROCESSING),
        (AttachmentStatus.PROCESSING, AttachmentStatus.COMPLETED),
        (AttachmentStatus.PROCESSING, AttachmentStatus.FAILED),
        (AttachmentStatus.COMPLETED, AttachmentStatus.PROCESSING),
        (AttachmentStatus.FAILED, AttachmentStatus.PROCESSING),
    }
)


def transition_status(
    attachment: Attachment,
    new_status: AttachmentStatus,
    metadata_updates: dict[str, Any] | None = None,
    now: datetime | None = None,
) -> Attachment:
    """Return a copy of *attachment* moved to *new_status*.

    Entering ``processing`` stamps ``processing_started_at`` and clears the
    completion stamp and any previous error.  Entering a terminal state
    stamps ``processing_completed_at``.  *metadata_updates* are merged into
    the attachment's metadata.

    Raises
    ------
    InvalidStateTransitionError
        If the move is not part of the lifecycle (e.g. completed -> failed
        without a new run).
    """
    if (attachment.status, new_status) not in _ALLOWED_TRANSITIONS:
        raise InvalidStateTransitionError(
            message=(
                f"Attachment {attachment.attachment_id} cannot move from "
                f"{attachment.status.value} to {new_status.value}"
            )
        )

    now = now or utc_now()
    metadata = attachment.metadata.model_dump()
    update: dict[str, Any] = {"status": new_status, "updated_at": now}

    if new_status is AttachmentStatus.PROCESSING:
        update["processing_started_at"] = now
        update["processing_completed_at"] = None
        metadata["error"] = None
    else:
        update["processing_completed_at"] = now

    if metadata_updates:
        metadata.update(metadata_updates)
    update["metadata"] = AttachmentMetadata(**metadata)

    return attachment.model_copy(update=update)
