"""RAG pipeline data models for MindLens.

Defines Pydantic v2 models for loaded source pages, document chunks,
retrieval results, ingestion summaries, query scopes and streamed answer
events.  Value objects use frozen config.

Pipeline overview:

    1. LOAD: a source loader turns a URL or stored file into SourcePages.
    2. CHUNK: pages are split into overlapping DocumentChunks.
    3. EMBED + INDEX: chunks are embedded and written to the owner's
       tenant namespace in the vector store.
    4. RETRIEVE: a question is embedded and matched against the owner's
       chunks, filtered by owner and (optionally) collection.
    5. ANSWER: ranked chunks become the context for a streamed LLM answer,
       relayed to the caller as AnswerEvents.
"""

from __future__ import annotations

import hashlib
import re
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from mindlens.models.library import SourceKind

# Chroma collection names: 3-63 chars of [a-zA-Z0-9._-], alphanumeric at
# both ends.  Namespaces stay inside that alphabet minus the dot.
_NAMESPACE_UNSAFE = re.compile(r"[^a-zA-Z0-9_-]")
_NAMESPACE_MAX_LEN = 63


def tenant_namespace(owner_id: str, prefix: str = "mindlens") -> str:
    """Derive the vector-index namespace that holds *owner_id*'s chunks.

    The result is ``"<prefix>-<owner_id>"`` with unsafe characters replaced
    by ``_``.  Owner ids that would overflow the length limit are replaced
    by a stable SHA-256 digest, so the mapping stays deterministic.
    """
    if not owner_id:
        raise ValueError("owner_id must be non-empty")

    safe_owner = _NAMESPACE_UNSAFE.sub("_", owner_id)
    namespace = f"{prefix}-{safe_owner}"
    if len(namespace) > _NAMESPACE_MAX_LEN or not namespace[-1].isalnum():
        digest = hashlib.sha256(owner_id.encode("utf-8")).hexdigest()[:32]
        namespace = f"{prefix}-{digest}"
    return namespace


# ---------------------------------------------------------------------------
# SourcePage: one unit of loaded content, before chunking.
# ---------------------------------------------------------------------------
class SourcePage(BaseModel):
    """A page of text produced by a source loader.

    ``metadata`` is loader-specific: ``source`` (the URL or file name),
    ``title``, ``page_number``, ``duration``, ``language``, ...
    """

    model_config = ConfigDict(frozen=True)

    text: str
    metadata: dict[str, Any] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# TextChunk: a chunker window, before ownership is stamped on it.
# ---------------------------------------------------------------------------
class TextChunk(BaseModel):
    """A window of page text produced by the chunker.

    Carries a copy of the originating page's metadata.
    """

    model_config = ConfigDict(frozen=True)

    text: str
    metadata: dict[str, Any] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# DocumentChunk: the fundamental unit of the vector index.
# ---------------------------------------------------------------------------
class ChunkMetadata(BaseModel):
    """Ownership and provenance stamped onto every stored chunk.

    ``owner_id`` and ``collection_id`` are the fields retrieval filters on;
    ``collection_title`` and ``attachment_name`` are denormalized copies used
    to build answer context without another metadata lookup.
    """

    model_config = ConfigDict(frozen=True)

    owner_id: str
    collection_id: str
    attachment_id: str
    source_kind: SourceKind
    source_locator: str
    chunk_index: int = Field(ge=0)
    collection_title: str = ""
    attachment_name: str = ""
    page_number: int | None = None


class DocumentChunk(BaseModel):
    """A chunk of source text, ready for embedding and storage.

    The embedding vector itself lives only in the vector index.
    """

    model_config = ConfigDict(frozen=True)

    chunk_id: str = Field(description="Unique identifier for this chunk in the index.")
    text: str = Field(description="The chunk's textual content.")
    metadata: ChunkMetadata


# ---------------------------------------------------------------------------
# RetrievedChunk: a search result from the vector store.
# ---------------------------------------------------------------------------
class RetrievedChunk(BaseModel):
    """A stored chunk returned from a similarity query, with its score."""

    model_config = ConfigDict(frozen=True)

    chunk: DocumentChunk
    similarity_score: float = Field(
        default=0.0,
        ge=-1.0,
        le=1.0,
        description="Cosine similarity between the query and this chunk.",
    )


# ---------------------------------------------------------------------------
# IngestionResult: output of one ingestion run.
# ---------------------------------------------------------------------------
class IngestionResult(BaseModel):
    """Summary of a single successful ingestion run."""

    model_config = ConfigDict(frozen=True)

    attachment_id: str
    collection_id: str
    namespace: str
    chunk_count: int = Field(default=0, ge=0)
    character_count: int = Field(default=0, ge=0)
    page_count: int = Field(default=0, ge=0)
    ingestion_time: float = Field(
        default=0.0,
        ge=0.0,
        description="Wall-clock time in seconds for the ingestion run.",
    )


# ---------------------------------------------------------------------------
# QueryScope: which of an owner's collections a question searches.
# ---------------------------------------------------------------------------
class QueryScope(BaseModel):
    """Either one collection or every collection the owner has."""

    model_config = ConfigDict(frozen=True)

    collection_id: str | None = None

    @classmethod
    def collection(cls, collection_id: str) -> QueryScope:
        if not collection_id:
            raise ValueError("collection_id must be non-empty")
        return cls(collection_id=collection_id)

    @classmethod
    def all_collections(cls) -> QueryScope:
        return cls(collection_id=None)

    @property
    def is_single_collection(self) -> bool:
        return self.collection_id is not None


# ---------------------------------------------------------------------------
# AnswerEvent: one item of a streamed answer.
# ---------------------------------------------------------------------------
class AnswerEventType(str, Enum):
    CONTENT = "content"
    ERROR = "error"
    DONE = "done"


class AnswerEvent(BaseModel):
    """A fragment, an error notice, or the terminal marker of an answer stream."""

    model_config = ConfigDict(frozen=True)

    type: AnswerEventType
    data: str = ""

    @classmethod
    def content(cls, text: str) -> AnswerEvent:
        return cls(type=AnswerEventType.CONTENT, data=text)

    @classmethod
    def error(cls, message: str) -> AnswerEvent:
        return cls(type=AnswerEventType.ERROR, data=message)

    @classmethod
    def done(cls) -> AnswerEvent:
        return cls(type=AnswerEventType.DONE)
