"""Shared pytest fixtures for the MindLens test suite."""

from __future__ import annotations

import hashlib
import re
from collections.abc import AsyncIterator
from pathlib import Path
from typing import Any

import httpx
import pytest
import pytest_asyncio

from mindlens.config.settings import Settings
from mindlens.interfaces.embedding_provider import IEmbeddingProvider
from mindlens.interfaces.llm_provider import ILLMProvider
from mindlens.models.library import SourceKind
from mindlens.models.rag import ChunkMetadata, DocumentChunk
from mindlens.providers.blob.local_blob_store import LocalBlobStore
from mindlens.providers.loaders.file_loader import FileLoader
from mindlens.providers.loaders.registry import SourceLoaderRegistry
from mindlens.providers.loaders.transcript_loader import TranscriptLoader
from mindlens.providers.loaders.web_loader import WebLoader
from mindlens.providers.metadata.sqlite_metadata_store import SQLiteMetadataStore
from mindlens.providers.vector_store.memory_provider import InMemoryVectorStore
from mindlens.services.answer_streamer import AnswerStreamer
from mindlens.services.ingestion.chunker import TextChunker
from mindlens.services.ingestion.ingestion_service import IngestionService
from mindlens.services.library_service import LibraryService
from mindlens.services.retrieval_service import RetrievalService
from mindlens.utils.errors import GenerationError

# ---------------------------------------------------------------------------
# Mock embedding provider
# ---------------------------------------------------------------------------

_EMBEDDING_DIM = 1024
_TOKEN = re.compile(r"[a-z0-9]+")


def _hash_to_vector(text: str, dim: int = _EMBEDDING_DIM) -> list[float]:
    """Generate a deterministic bag-of-words vector for *text*.

    Each lowercase token is hashed into one of *dim* buckets and the counts
    are normalised to unit length, so texts sharing words score a positive
    cosine similarity and unrelated texts score close to zero.
    """
    values = [0.0] * dim
    for token in _TOKEN.findall(text.lower()):
        bucket = int.from_bytes(hashlib.sha256(token.encode("utf-8")).digest()[:4], "little")
        values[bucket % dim] += 1.0
    magnitude = sum(v * v for v in values) ** 0.5
    if magnitude == 0:
        values[0] = 1.0
        return values
    return [v / magnitude for v in values]


class MockEmbeddingProvider(IEmbeddingProvider):
    """In-memory deterministic embedding provider for tests."""

    def __init__(self) -> None:
        self.calls: list[list[str]] = []

    async def embed(self, texts: list[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        return [_hash_to_vector(t) for t in texts]

    async def embed_single(self, text: str) -> list[float]:
        self.calls.append([text])
        return _hash_to_vector(text)

    def get_dimension(self) -> int:
        return _EMBEDDING_DIM

    def get_provider_name(self) -> str:
        return "mock-embedding"

    def is_available(self) -> bool:
        return True


# ---------------------------------------------------------------------------
# Mock LLM provider
# ---------------------------------------------------------------------------

_SOURCE_LINE = re.compile(r"^Source \d+ \(([^)]*)\):", re.MULTILINE)
_BOOK_LINE = re.compile(r"^### Book: (.+)$", re.MULTILINE)


class MockLLMProvider(ILLMProvider):
    """Scripted streaming LLM.

    With no *fragments* it answers by citing the first source and book
    found in the system prompt.  *fail_after* raises *error* (a
    ``GenerationError`` by default) after that many fragments have been
    yielded.
    """

    def __init__(
        self,
        fragments: list[str] | None = None,
        fail_after: int | None = None,
        error_message: str = "mock generation failed",
        error: Exception | None = None,
    ) -> None:
        self.fragments = fragments
        self.fail_after = fail_after
        self.error_message = error_message
        self.error = error
        self.calls: list[dict[str, Any]] = []
        self.closed = 0

    async def stream(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.7,
        max_tokens: int = 2000,
    ) -> AsyncIterator[str]:
        self.calls.append(
            {
                "system_prompt": system_prompt,
                "user_prompt": user_prompt,
                "temperature": temperature,
                "max_tokens": max_tokens,
            }
        )
        fragments = self.fragments if self.fragments is not None else self._cite(system_prompt)
        try:
            for index, fragment in enumerate(fragments):
                if self.fail_after is not None and index >= self.fail_after:
                    break
                yield fragment
            if self.fail_after is not None:
                if self.error is not None:
                    raise self.error
                raise GenerationError(message=self.error_message, provider_name="mock-llm")
        finally:
            self.closed += 1

    @staticmethod
    def _cite(system_prompt: str) -> list[str]:
        source = _SOURCE_LINE.search(system_prompt)
        book = _BOOK_LINE.search(system_prompt)
        name = source.group(1) if source else "no source"
        title = book.group(1) if book else "no book"
        return ["According to ", name, " in the book ", title, ", the answer is in your sources."]

    def get_provider_name(self) -> str:
        return "mock-llm"

    def is_available(self) -> bool:
        return True


# ---------------------------------------------------------------------------
# Fake network sources
# ---------------------------------------------------------------------------


def make_mock_transport(routes: dict[str, Any]) -> httpx.MockTransport:
    """Serve *routes* (URL -> HTML string, JSON dict or httpx.Response).

    Unknown URLs answer 404.  A route value that is an exception instance
    is raised, which lets tests simulate transport failures.
    """

    def handler(request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        body = routes.get(url, routes.get(url.rstrip("/")))
        if body is None:
            return httpx.Response(404, text="not found")
        if isinstance(body, Exception):
            raise body
        if isinstance(body, httpx.Response):
            return body
        if isinstance(body, (dict, list)):
            return httpx.Response(200, json=body)
        return httpx.Response(200, html=body)

    return httpx.MockTransport(handler)


def html_page(title: str, body: str, links: list[str] | None = None) -> str:
    anchors = "".join(f'<a href="{href}">{href}</a>' for href in links or [])
    return (
        f"<html><head><title>{title}</title></head>"
        f"<body><article><p>{body}</p></article>{anchors}</body></html>"
    )


def make_video_info(
    caption_url: str = "https://captions.test/abcdefghijk.json3",
    language: str = "en",
    automatic: bool = False,
) -> dict[str, Any]:
    tracks = {
        language: [
            {"ext": "vtt", "url": caption_url + ".vtt"},
            {"ext": "json3", "url": caption_url},
        ]
    }
    return {
        "title": "Quarterly Earnings Call",
        "description": "Management discusses the quarter.",
        "thumbnail": "https://img.test/thumb.jpg",
        "duration": 1834,
        "uploader": "Example Corp",
        "subtitles": {} if automatic else tracks,
        "automatic_captions": tracks if automatic else {},
    }


def json3_payload(*lines: str) -> dict[str, Any]:
    return {"events": [{"segs": [{"utf8": line}, {"utf8": "\n"}]} for line in lines]}


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


def make_chunk(
    text: str,
    owner_id: str = "owner-a",
    collection_id: str = "book-1",
    attachment_id: str = "att-1",
    index: int = 0,
    collection_title: str = "Research",
    attachment_name: str = "Q3 report",
) -> DocumentChunk:
    return DocumentChunk(
        chunk_id=f"{attachment_id}:{index}",
        text=text,
        metadata=ChunkMetadata(
            owner_id=owner_id,
            collection_id=collection_id,
            attachment_id=attachment_id,
            source_kind=SourceKind.WEB_PAGE,
            source_locator="https://example.com/q3",
            chunk_index=index,
            collection_title=collection_title,
            attachment_name=attachment_name,
        ),
    )


def make_settings(tmp_path: Path, **overrides: Any) -> Settings:
    """Settings pointing every store at *tmp_path*, ignoring any local .env file."""
    values: dict[str, Any] = {
        "openai_api_key": "",
        "anthropic_api_key": "",
        "vector_store_backend": "memory",
        "metadata_db_path": str(tmp_path / "mindlens.db"),
        "upload_dir": str(tmp_path / "uploads"),
        "chromadb_persist_dir": str(tmp_path / "chromadb"),
        "auth_secret": "",
        "app_env": "test",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def build_components(
    tmp_path: Path,
    llm: ILLMProvider | None = None,
    routes: dict[str, Any] | None = None,
    video_info: dict[str, Any] | None = None,
    settings: Settings | None = None,
) -> dict[str, Any]:
    """Assemble the same component dict as ``mindlens.main._build_all``, offline.

    Web pages and caption downloads are served from *routes*; video info
    comes from *video_info*.
    """
    settings = settings or make_settings(tmp_path)
    routes = routes if routes is not None else {}
    transport = make_mock_transport(routes)
    info = video_info if video_info is not None else make_video_info()

    embedding = MockEmbeddingProvider()
    llm = llm or MockLLMProvider()
    vector_store = InMemoryVectorStore()
    metadata_store = SQLiteMetadataStore(db_path=settings.metadata_db_path)
    blob_store = LocalBlobStore(root_dir=settings.upload_dir)

    registry = SourceLoaderRegistry(
        [
            FileLoader(blob_store=blob_store),
            WebLoader(max_depth=1, max_pages=10, transport=transport),
            TranscriptLoader(info_extractor=lambda url: info, transport=transport),
        ]
    )
    chunker = TextChunker(chunk_size=settings.chunk_size, overlap=settings.chunk_overlap)

    return {
        "settings": settings,
        "embedding_provider": embedding,
        "llm": llm,
        "metadata_store": metadata_store,
        "vector_store": vector_store,
        "blob_store": blob_store,
        "library_service": LibraryService(
            metadata_store=metadata_store,
            vector_store=vector_store,
            blob_store=blob_store,
            max_upload_bytes=settings.max_upload_bytes,
        ),
        "ingestion_service": IngestionService(
            registry=registry,
            chunker=chunker,
            embedding_provider=embedding,
            vector_store=vector_store,
            metadata_store=metadata_store,
            blob_store=blob_store,
        ),
        "retrieval_service": RetrievalService(
            embedding_provider=embedding,
            vector_store=vector_store,
            metadata_store=metadata_store,
        ),
        "answer_streamer": AnswerStreamer(llm=llm),
        "provider_registry": {
            "llm": llm.get_provider_name(),
            "embedding": embedding.get_provider_name(),
            "vector_store": vector_store.get_provider_name(),
        },
    }


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_embedding_provider() -> MockEmbeddingProvider:
    return MockEmbeddingProvider()


@pytest.fixture
def mock_llm_provider() -> MockLLMProvider:
    return MockLLMProvider()


@pytest.fixture
def memory_vector_store() -> InMemoryVectorStore:
    return InMemoryVectorStore()


@pytest.fixture
def blob_store(tmp_path: Path) -> LocalBlobStore:
    return LocalBlobStore(root_dir=tmp_path / "uploads")


@pytest_asyncio.fixture
async def metadata_store(tmp_path: Path) -> SQLiteMetadataStore:
    """Create and initialize a metadata store with a temp DB."""
    store = SQLiteMetadataStore(db_path=tmp_path / "metadata.db")
    await store.initialize()
    return store


@pytest.fixture
def web_routes() -> dict[str, Any]:
    """Mutable URL -> response map served to the web and transcript loaders."""
    return {}


@pytest_asyncio.fixture
async def components(tmp_path: Path, web_routes: dict[str, Any]) -> dict[str, Any]:
    """Fully wired, offline pipeline with an initialized metadata store."""
    built = build_components(tmp_path, routes=web_routes)
    await built["metadata_store"].initialize()
    return built


@pytest.fixture
def sample_report_text() -> str:
    """Return a multi-paragraph quarterly report for chunking tests."""
    return (
        "Quarterly revenue rose 12% to 4.2 billion dollars, driven by subscription "
        "growth in every region. Operating margin widened by two points as hosting "
        "costs fell.\n\n"
        "The board approved a new share buyback programme worth 500 million dollars. "
        "Management expects the programme to complete within eighteen months.\n\n"
        "Headcount grew modestly, mostly in engineering and customer support. Attrition "
        "remained below the industry average for the fourth consecutive quarter.\n\n"
        "Guidance for the next quarter assumes revenue growth between 9% and 11%, "
        "with continued investment in data centre capacity and research."
    )
