"""Abstract base class for text-embedding service providers.

Defines the contract for turning text into embedding vectors.
Implementations may wrap OpenAI ``text-embedding-3-small`` or a local
FastEmbed ONNX model.  The same provider must embed both stored chunks and
query text, otherwise similarity scores are meaningless.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementations:
#   OpenAIEmbeddingProvider    : text-embedding-3-small (requires API key)
#   FastEmbedEmbeddingProvider : lightweight ONNX, no API key needed
# Located in: mindlens/providers/embedding/
class IEmbeddingProvider(ABC):
    """Contract for text-embedding services used by ingestion and retrieval."""

    @abstractmethod
    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Generate embedding vectors for a batch of texts.

        Parameters
        ----------
        texts:
            One or more text strings to embed.  Implementations batch
            internally if the underlying API has a per-call limit.

        Returns
        -------
        list[list[float]]
            Embedding vectors corresponding positionally to *texts*.

        Raises
        ------
        mindlens.utils.errors.EmbeddingServiceError
            If the embedding backend is unavailable or rejects the input.
        """

    @abstractmethod
    async def embed_single(self, text: str) -> list[float]:
        """Generate an embedding vector for a single text (e.g. a query)."""

    @abstractmethod
    def get_dimension(self) -> int:
        """Return the dimensionality of the embedding vectors.

        Example values: ``1536`` (OpenAI ``text-embedding-3-small``),
        ``384`` (FastEmbed ``BAAI/bge-small-en-v1.5``).
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this embedding provider."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the provider is configured (credentials / model present)."""
