"""OpenAI-compatible LLM provider adapter.

Wraps the ``openai`` async client to implement :class:`ILLMProvider` with
streamed chat completions.  When a custom ``openai_base_url`` is configured
(TogetherAI, Groq, Fireworks, a local server), the client points at that URL
instead of the default OpenAI endpoint.
"""

from __future__ import annotations

from collections.abc import AsyncIterator

import httpx
import openai
import structlog

from mindlens.config.settings import Settings
from mindlens.interfaces.llm_provider import ILLMProvider
from mindlens.utils.errors import GenerationError

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_TEXT_MODEL = "gpt-4o-mini"


class OpenAILLMProvider(ILLMProvider):
    """LLM provider backed by an OpenAI-compatible chat completions API.

    Uses ``gpt-4o-mini`` unless ``openai_text_model`` overrides it.
    """

    def __init__(self, settings: Settings, client: openai.AsyncOpenAI | None = None) -> None:
        self._api_key = settings.openai_api_key

        if client is None:
            # Build client kwargs: add base_url only when a custom endpoint
            # is configured.
            client_kwargs: dict = {
                "api_key": self._api_key,
                "timeout": openai.Timeout(60.0, connect=5.0),
            }
            if settings.openai_base_url:
                client_kwargs["base_url"] = settings.openai_base_url
            client = openai.AsyncOpenAI(**client_kwargs)

        self._client = client
        self._text_model = settings.openai_text_model or _DEFAULT_TEXT_MODEL
        self._provider_label = "openai-compatible" if settings.openai_base_url else "openai"

    # ------------------------------------------------------------------
    # ILLMProvider implementation
    # ------------------------------------------------------------------

    async def stream(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.7,
        max_tokens: int = 2000,
    ) -> AsyncIterator[str]:
        """Stream a chat completion, yielding each non-empty content delta."""
        try:
            response = await self._client.chat.completions.create(
                model=self._text_model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                temperature=temperature,
                max_tokens=max_tokens,
                stream=True,
            )
        except openai.APITimeoutError as exc:
            raise GenerationError(
                message=f"{self._provider_label} timed out",
                provider_name=self.get_provider_name(),
            ) from exc
        except openai.APIError as exc:
            raise GenerationError(
                message=f"{self._provider_label} API error: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        fragments = 0
        try:
            async for chunk in response:
                if not chunk.choices:
                    continue
                content = chunk.choices[0].delta.content
                if content:
                    fragments += 1
                    yield content
        except openai.APIError as exc:
            raise GenerationError(
                message=f"{self._provider_label} stream interrupted: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        except httpx.HTTPError as exc:
            # The SDK does not wrap transport errors raised while reading the stream.
            raise GenerationError(
                message=f"{self._provider_label} connection lost mid-stream: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        finally:
            await response.close()

        logger.info(
            "openai_stream_completed",
            model=self._text_model,
            provider=self._provider_label,
            fragments=fragments,
        )

    def is_available(self) -> bool:
        """Return ``True`` if an API key is configured (doesn't verify it works)."""
        return bool(self._api_key)

    def get_provider_name(self) -> str:
        return self._provider_label
