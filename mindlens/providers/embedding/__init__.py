"""Embedding provider implementations.

Embeddings convert text into numeric vectors that capture semantic meaning.
The same provider embeds stored chunks at ingestion time and questions at
query time.

Two implementations of IEmbeddingProvider, in selection order:
    1. OpenAIEmbeddingProvider   : text-embedding-3-small (1536 dims),
       used when an OpenAI API key is configured.
    2. FastEmbedEmbeddingProvider: local ONNX model, no API key.

FastEmbedEmbeddingProvider is imported directly where needed so that the
package imports cleanly without its model weights downloaded.
"""

from mindlens.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider

__all__ = ["OpenAIEmbeddingProvider"]
