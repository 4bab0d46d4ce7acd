"""Vector store provider implementations.

Two implementations of IVectorStoreProvider:
    - ChromaDBProvider    : persistent, one chromadb collection per tenant
    - InMemoryVectorStore : numpy cosine search, process-local

Both refuse queries whose filter does not pin ``owner_id``.
"""

from mindlens.providers.vector_store.chromadb_provider import ChromaDBProvider
from mindlens.providers.vector_store.memory_provider import InMemoryVectorStore

__all__ = ["ChromaDBProvider", "InMemoryVectorStore"]
