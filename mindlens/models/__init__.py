"""Pydantic data models for the MindLens library and RAG pipeline."""

from mindlens.models.library import (
    Attachment,
    AttachmentMetadata,
    AttachmentStatus,
    Collection,
    SourceKind,
    transition_status,
    utc_now,
)
from mindlens.models.rag import (
    AnswerEvent,
    AnswerEventType,
    ChunkMetadata,
    DocumentChunk,
    IngestionResult,
    QueryScope,
    RetrievedChunk,
    SourcePage,
    TextChunk,
    tenant_namespace,
)

__all__ = [
    "AnswerEvent",
    "AnswerEventType",
    "Attachment",
    "AttachmentMetadata",
    "AttachmentStatus",
    "ChunkMetadata",
    "Collection",
    "DocumentChunk",
    "IngestionResult",
    "QueryScope",
    "RetrievedChunk",
    "SourceKind",
    "SourcePage",
    "TextChunk",
    "tenant_namespace",
    "transition_status",
    "utc_now",
]
