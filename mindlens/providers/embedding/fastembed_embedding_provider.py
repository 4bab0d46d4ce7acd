"""Local embedding adapter for books indexed without an OpenAI key.

Runs a fastembed ONNX model on CPU.  Chunks are embedded with
``passage_embed`` and questions with ``query_embed``, so retrieval models
that distinguish the two (the BGE family) rank correctly.

The model is created on first use and shared by every ingestion run and
query in the process; weights are fetched once into the local cache.
"""

from __future__ import annotations

import asyncio
import importlib.util
import threading
from collections.abc import Iterable
from typing import Any

import structlog

from mindlens.interfaces.embedding_provider import IEmbeddingProvider
from mindlens.utils.errors import EmbeddingServiceError

logger = structlog.get_logger(logger_name=__name__)

_KNOWN_DIMENSIONS: dict[str, int] = {
    "BAAI/bge-small-en-v1.5": 384,
    "BAAI/bge-base-en-v1.5": 768,
    "sentence-transformers/all-MiniLM-L6-v2": 384,
    "intfloat/multilingual-e5-large": 1024,
}


class FastEmbedEmbeddingProvider(IEmbeddingProvider):
    """Chunk and query embeddings from a local fastembed model.

    Parameters
    ----------
    model_name:
        fastembed model id; ``BAAI/bge-small-en-v1.5`` when omitted.
    batch_size:
        Number of chunks handed to the ONNX session at a time.
    """

    def __init__(self, model_name: str | None = None, batch_size: int = 64) -> None:
        self._model_name = model_name or "BAAI/bge-small-en-v1.5"
        self._batch_size = batch_size
        self._dimension = _KNOWN_DIMENSIONS.get(self._model_name, 384)
        self._model: Any = None
        self._model_lock = threading.Lock()

    # ------------------------------------------------------------------
    # IEmbeddingProvider implementation
    # ------------------------------------------------------------------

    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Embed chunk texts for storage in a tenant namespace."""
        if not texts:
            return []
        vectors = await self._run("passage_embed", texts)
        logger.debug("fastembed_passages", model=self._model_name, count=len(vectors))
        return vectors

    async def embed_single(self, text: str) -> list[float]:
        """Embed one question for retrieval."""
        vectors = await self._run("query_embed", [text])
        return vectors[0]

    def get_dimension(self) -> int:
        return self._dimension

    def get_provider_name(self) -> str:
        return f"fastembed_{self._model_name.rsplit('/', 1)[-1]}"

    def is_available(self) -> bool:
        return importlib.util.find_spec("fastembed") is not None

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _run(self, method: str, texts: list[str]) -> list[list[float]]:
        try:
            vectors = await asyncio.to_thread(self._embed_blocking, method, texts)
        except EmbeddingServiceError:
            raise
        except Exception as exc:
            raise EmbeddingServiceError(
                message=f"fastembed {method} failed for {len(texts)} text(s): {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        if len(vectors) != len(texts):
            raise EmbeddingServiceError(
                message=f"Expected {len(texts)} embeddings, received {len(vectors)}",
                provider_name=self.get_provider_name(),
            )
        return vectors

    def _embed_blocking(self, method: str, texts: list[str]) -> list[list[float]]:
        model = self._ensure_model()
        encode = getattr(model, method)
        vectors: list[list[float]] = []
        for start in range(0, len(texts), self._batch_size):
            vectors.extend(_as_lists(encode(texts[start : start + self._batch_size])))

        # Unlisted models report their width on first use.
        if vectors and len(vectors[0]) != self._dimension:
            logger.info(
                "fastembed_dimension_detected",
                model=self._model_name,
                expected=self._dimension,
                actual=len(vectors[0]),
            )
            self._dimension = len(vectors[0])
        return vectors

    def _ensure_model(self) -> Any:
        with self._model_lock:
            if self._model is None:
                from fastembed import TextEmbedding

                logger.info("fastembed_model_loading", model=self._model_name)
                try:
                    self._model = TextEmbedding(model_name=self._model_name)
                except Exception as exc:
                    raise EmbeddingServiceError(
                        message=f"Failed to load fastembed model '{self._model_name}': {exc}",
                        provider_name=self.get_provider_name(),
                    ) from exc
            return self._model


def _as_lists(arrays: Iterable[Any]) -> list[list[float]]:
    return [[float(x) for x in array] for array in arrays]
