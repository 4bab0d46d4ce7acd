"""Embedding adapter for the OpenAI embeddings endpoint.

Also serves OpenAI-compatible gateways when ``OPENAI_BASE_URL`` is set.
Requests are split so that no single call exceeds the endpoint's input
count, and vectors are reassembled by their ``index`` field so that the
i-th vector always belongs to the i-th chunk.
"""

from __future__ import annotations

import openai
import structlog

from mindlens.config.settings import Settings
from mindlens.interfaces.embedding_provider import IEmbeddingProvider
from mindlens.utils.errors import EmbeddingServiceError

logger = structlog.get_logger(logger_name=__name__)

# Upper bound on inputs per embeddings request.
_MAX_INPUTS_PER_CALL = 2048

_WIDTHS = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
}


class OpenAIEmbeddingProvider(IEmbeddingProvider):
    """Chunk and query embeddings from ``text-embedding-3-small`` (or the configured model)."""

    def __init__(self, settings: Settings, client: openai.AsyncOpenAI | None = None) -> None:
        self._api_key = settings.openai_api_key
        self._model = settings.openai_embedding_model or "text-embedding-3-small"
        self._label = (
            "openai-compatible_embedding" if settings.openai_base_url else "openai_embedding"
        )
        if client is None:
            client = openai.AsyncOpenAI(
                api_key=self._api_key,
                base_url=settings.openai_base_url or None,
            )
        self._client = client

    async def embed(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []

        vectors: list[list[float]] = []
        for offset in range(0, len(texts), _MAX_INPUTS_PER_CALL):
            window = texts[offset : offset + _MAX_INPUTS_PER_CALL]
            vectors.extend(await self._request(window))

        if len(vectors) != len(texts):
            raise EmbeddingServiceError(
                message=f"Expected {len(texts)} embeddings, received {len(vectors)}",
                provider_name=self._label,
            )
        return vectors

    async def embed_single(self, text: str) -> list[float]:
        return (await self.embed([text]))[0]

    def get_dimension(self) -> int:
        return _WIDTHS.get(self._model, 1536)

    def get_provider_name(self) -> str:
        return self._label

    def is_available(self) -> bool:
        return bool(self._api_key)

    async def _request(self, window: list[str]) -> list[list[float]]:
        # The endpoint rejects empty strings; a single space embeds as "nothing".
        inputs = [text if text.strip() else " " for text in window]
        try:
            response = await self._client.embeddings.create(input=inputs, model=self._model)
        except openai.APIError as exc:
            raise EmbeddingServiceError(
                message=f"{self._label} request failed: {exc}",
                provider_name=self._label,
            ) from exc

        usage = getattr(response, "usage", None)
        logger.info(
            "openai_embedding_request",
            provider=self._label,
            model=self._model,
            inputs=len(inputs),
            tokens=getattr(usage, "total_tokens", None),
        )
        items = sorted(response.data, key=lambda item: getattr(item, "index", 0))
        return [list(item.embedding) for item in items]
