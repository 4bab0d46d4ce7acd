"""MindLens FastAPI application entry point.

Wires together all providers, services, and routes via dependency injection.
Loads configuration from ``.env`` and ``config/config.yaml`` and configures
structured logging.

``_build_all`` is also used by the CLI, so the command line and the web
server always select the same embedding model, vector index and stores.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any

import structlog
import uvicorn
from fastapi import FastAPI

from mindlens.api.middleware import (
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    configure_cors,
)
from mindlens.api.routes import router as api_router
from mindlens.config.loader import load_config
from mindlens.config.settings import Settings
from mindlens.interfaces.embedding_provider import IEmbeddingProvider
from mindlens.interfaces.llm_provider import ILLMProvider
from mindlens.interfaces.vector_store_provider import IVectorStoreProvider
from mindlens.providers.blob.local_blob_store import LocalBlobStore
from mindlens.providers.embedding.fastembed_embedding_provider import FastEmbedEmbeddingProvider
from mindlens.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider
from mindlens.providers.llm.anthropic_provider import AnthropicLLMProvider
from mindlens.providers.llm.openai_provider import OpenAILLMProvider
from mindlens.providers.loaders.file_loader import FileLoader
from mindlens.providers.loaders.registry import SourceLoaderRegistry
from mindlens.providers.loaders.transcript_loader import TranscriptLoader
from mindlens.providers.loaders.web_loader import WebLoader
from mindlens.providers.metadata.sqlite_metadata_store import SQLiteMetadataStore
from mindlens.providers.vector_store.chromadb_provider import ChromaDBProvider
from mindlens.providers.vector_store.memory_provider import InMemoryVectorStore
from mindlens.services.answer_streamer import AnswerStreamer
from mindlens.services.ingestion.chunker import TextChunker
from mindlens.services.ingestion.ingestion_service import IngestionService
from mindlens.services.library_service import LibraryService
from mindlens.services.retrieval_service import RetrievalService
from mindlens.utils.errors import ConfigurationError
from mindlens.utils.logging import configure_logging, get_logger

_APP_VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Module-level settings & logging
# ---------------------------------------------------------------------------

settings = Settings()

configure_logging(
    log_level=settings.log_level,
    json_output=(settings.app_env == "production"),
)
_logger: structlog.BoundLogger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Provider selection
# ---------------------------------------------------------------------------


def _build_llm_provider(app_settings: Settings) -> ILLMProvider:
    """Select the answer-generation backend from configured API keys.

    Priority order: OpenAI (or an OpenAI-compatible endpoint) -> Anthropic.
    With neither configured the OpenAI provider is still returned; queries
    then report a generation error in the answer stream.
    """
    if app_settings.openai_api_key or app_settings.openai_base_url:
        return OpenAILLMProvider(settings=app_settings)
    if app_settings.anthropic_api_key:
        return AnthropicLLMProvider(settings=app_settings)
    _logger.warning("no_llm_provider_configured", msg="Set OPENAI_API_KEY or ANTHROPIC_API_KEY.")
    return OpenAILLMProvider(settings=app_settings)


def _build_embedding_provider(app_settings: Settings) -> IEmbeddingProvider:
    """Select the embedding provider.

    Priority: OpenAI (if an API key is set) -> local FastEmbed model.
    The same provider must be used for ingestion and retrieval, so changing
    it requires re-indexing.
    """
    if app_settings.openai_api_key:
        return OpenAIEmbeddingProvider(settings=app_settings)
    return FastEmbedEmbeddingProvider(model_name=app_settings.fastembed_model or None)


def _build_vector_store(app_settings: Settings) -> IVectorStoreProvider:
    backend = app_settings.vector_store_backend.strip().lower()
    if backend == "chromadb":
        return ChromaDBProvider(persist_directory=app_settings.chromadb_persist_dir)
    if backend == "memory":
        return InMemoryVectorStore()
    raise ConfigurationError(
        message=f"Unknown vector_store_backend {app_settings.vector_store_backend!r}; "
        "expected 'chromadb' or 'memory'"
    )


def _build_all(app_settings: Settings, app_config: dict[str, Any] | None = None) -> dict[str, Any]:
    """Construct every provider and service instance for the application.

    Returns a flat dict of named components to be stored on ``app.state``.
    """
    app_config = app_config if app_config is not None else load_config(settings=app_settings)
    loader_config = app_config.get("loaders", {})
    web_config = loader_config.get("web", {})
    github_config = loader_config.get("github", {})
    transcript_config = loader_config.get("transcript", {})

    embedding_provider = _build_embedding_provider(app_settings)
    llm = _build_llm_provider(app_settings)
    vector_store = _build_vector_store(app_settings)
    metadata_store = SQLiteMetadataStore(db_path=app_settings.metadata_db_path)
    blob_store = LocalBlobStore(root_dir=app_settings.upload_dir)

    registry = SourceLoaderRegistry(
        [
            FileLoader(blob_store=blob_store),
            WebLoader(
                timeout=app_settings.web_fetch_timeout,
                max_depth=app_settings.web_max_depth,
                max_pages=app_settings.web_max_pages,
                github_branch=app_settings.github_branch,
                exclude_dirs=web_config.get("exclude_dirs"),
                github_ignore_patterns=github_config.get("ignore_patterns"),
                user_agent=web_config.get("user_agent"),
            ),
            TranscriptLoader(
                languages=list(app_settings.transcript_languages),
                prefer_manual_captions=transcript_config.get("prefer_manual_captions", True),
                timeout=app_settings.web_fetch_timeout,
            ),
        ]
    )
    chunker = TextChunker(chunk_size=app_settings.chunk_size, overlap=app_settings.chunk_overlap)

    allowed_types = app_config.get("upload", {}).get("allowed_content_types")
    library_service = LibraryService(
        metadata_store=metadata_store,
        vector_store=vector_store,
        blob_store=blob_store,
        namespace_prefix=app_settings.namespace_prefix,
        max_upload_bytes=app_settings.max_upload_bytes,
        allowed_upload_types=frozenset(allowed_types) if allowed_types else None,
    )
    ingestion_service = IngestionService(
        registry=registry,
        chunker=chunker,
        embedding_provider=embedding_provider,
        vector_store=vector_store,
        metadata_store=metadata_store,
        blob_store=blob_store,
        namespace_prefix=app_settings.namespace_prefix,
    )
    retrieval_service = RetrievalService(
        embedding_provider=embedding_provider,
        vector_store=vector_store,
        metadata_store=metadata_store,
        namespace_prefix=app_settings.namespace_prefix,
        default_top_k=app_settings.retrieval_top_k,
    )
    answer_streamer = AnswerStreamer(
        llm=llm,
        temperature=app_settings.generation_temperature,
        max_tokens=app_settings.generation_max_tokens,
    )

    provider_registry: dict[str, Any] = {
        "llm": llm.get_provider_name(),
        "llm_available": llm.is_available(),
        "embedding": embedding_provider.get_provider_name(),
        "vector_store": vector_store.get_provider_name(),
        "metadata_store": metadata_store.get_provider_name(),
        "source_kinds": [kind.value for kind in registry.kinds()],
    }

    return {
        "settings": app_settings,
        "metadata_store": metadata_store,
        "vector_store": vector_store,
        "blob_store": blob_store,
        "library_service": library_service,
        "ingestion_service": ingestion_service,
        "retrieval_service": retrieval_service,
        "answer_streamer": answer_streamer,
        "provider_registry": provider_registry,
    }


# ---------------------------------------------------------------------------
# FastAPI application factory
# ---------------------------------------------------------------------------


def create_app(
    app_settings: Settings | None = None,
    components: dict[str, Any] | None = None,
) -> FastAPI:
    """Build and configure the FastAPI application.

    *components* replaces :func:`_build_all` (tests inject in-memory
    providers this way).
    """
    app_settings = app_settings or settings

    @asynccontextmanager
    async def _lifespan(application: FastAPI):  # noqa: ANN202
        """Initialise all providers and services on startup, clean up on shutdown."""
        built = components if components is not None else _build_all(app_settings)
        built.setdefault("settings", app_settings)

        for key, value in built.items():
            setattr(application.state, key, value)

        metadata_store = built["metadata_store"]
        await metadata_store.initialize()

        _logger.info(
            "app_startup",
            version=_APP_VERSION,
            environment=app_settings.app_env,
            providers=built.get("provider_registry", {}),
        )

        yield

        await metadata_store.close()
        _logger.info("app_shutdown")

    application = FastAPI(
        title="MindLens API",
        version=_APP_VERSION,
        description=(
            "Organize web pages, videos and documents into books, index them into "
            "a per-user vector namespace, and ask questions answered only from "
            "your own sources."
        ),
        lifespan=_lifespan,
    )

    # -- Middleware (order matters: last added = first executed) --
    application.add_middleware(ErrorHandlingMiddleware)
    application.add_middleware(RequestLoggingMiddleware)
    configure_cors(application, allowed_origins=list(app_settings.cors_origins))

    # -- API routes --
    application.include_router(api_router)

    return application


app = create_app()


def run() -> None:
    """Serve the application with uvicorn."""
    uvicorn.run(
        "mindlens.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=(settings.app_env == "development"),
    )


if __name__ == "__main__":
    run()
