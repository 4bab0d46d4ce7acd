"""Anthropic LLM provider adapter.

Wraps the ``anthropic`` async client to implement :class:`ILLMProvider`.

Differences from the OpenAI adapter:
    - Uses Anthropic's Messages API (not chat.completions)
    - System prompt is a separate parameter, not a message in the list
    - Streaming goes through ``messages.stream()``, an async context
      manager exposing ``text_stream``
"""

from __future__ import annotations

from collections.abc import AsyncIterator

import anthropic
import httpx
import structlog

from mindlens.config.settings import Settings
from mindlens.interfaces.llm_provider import ILLMProvider
from mindlens.utils.errors import GenerationError

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_MODEL = "claude-sonnet-4-20250514"


class AnthropicLLMProvider(ILLMProvider):
    """LLM provider backed by the Anthropic Claude API."""

    def __init__(
        self, settings: Settings, client: anthropic.AsyncAnthropic | None = None
    ) -> None:
        self._api_key = settings.anthropic_api_key
        self._client = client or anthropic.AsyncAnthropic(api_key=self._api_key)
        self._model = settings.anthropic_model or _DEFAULT_MODEL

    async def stream(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.7,
        max_tokens: int = 2000,
    ) -> AsyncIterator[str]:
        fragments = 0
        try:
            async with self._client.messages.stream(
                model=self._model,
                max_tokens=max_tokens,
                # Anthropic takes the system prompt as a separate kwarg.
                system=system_prompt,
                messages=[{"role": "user", "content": user_prompt}],
                temperature=temperature,
            ) as stream:
                async for text in stream.text_stream:
                    if text:
                        fragments += 1
                        yield text
        except anthropic.APIError as exc:
            raise GenerationError(
                message=f"Anthropic API error: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        except httpx.HTTPError as exc:
            raise GenerationError(
                message=f"Anthropic connection lost mid-stream: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        logger.info("anthropic_stream_completed", model=self._model, fragments=fragments)

    def is_available(self) -> bool:
        """Return ``True`` if an Anthropic API key is configured."""
        return bool(self._api_key)

    def get_provider_name(self) -> str:
        return "anthropic"
