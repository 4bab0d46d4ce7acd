"""Public interface definitions for all external collaborators.

Every external service in the MindLens pipeline (embedding API, vector
index, LLM, metadata database, file storage, source acquisition) is reached
through one of the abstract base classes below.  Concrete adapters live in
``mindlens/providers/`` and are wired together in ``mindlens/main.py``.

CONCRETE PROVIDER MAP:
    Interface              →  Concrete implementations (in mindlens/providers/)
    ─────────────────────────────────────────────────────────────────────
    IEmbeddingProvider     →  OpenAIEmbeddingProvider, FastEmbedEmbeddingProvider
    IVectorStoreProvider   →  ChromaDBProvider, InMemoryVectorStore
    ILLMProvider           →  OpenAILLMProvider, AnthropicLLMProvider
    IMetadataStore         →  SQLiteMetadataStore
    IBlobStore             →  LocalBlobStore
    ISourceLoader          →  FileLoader, WebLoader, TranscriptLoader
"""

from mindlens.interfaces.blob_store import IBlobStore
from mindlens.interfaces.embedding_provider import IEmbeddingProvider
from mindlens.interfaces.llm_provider import ILLMProvider
from mindlens.interfaces.metadata_store import IMetadataStore
from mindlens.interfaces.source_loader import ISourceLoader
from mindlens.interfaces.vector_store_provider import IVectorStoreProvider

__all__ = [
    "IBlobStore",
    "IEmbeddingProvider",
    "ILLMProvider",
    "IMetadataStore",
    "ISourceLoader",
    "IVectorStoreProvider",
]
