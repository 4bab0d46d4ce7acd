"""Abstract base class for LLM service providers.

Defines the contract for the large-language-model backend that writes
answers from retrieved context.  Implementations wrap OpenAI or Anthropic.
The answer path uses :meth:`ILLMProvider.stream`; :meth:`complete` is the
buffered form built on the same call.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator


# Concrete implementations: OpenAILLMProvider, AnthropicLLMProvider
# Located in: mindlens/providers/llm/
class ILLMProvider(ABC):
    """Contract for LLM services used to synthesize answers."""

    @abstractmethod
    def stream(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.7,
        max_tokens: int = 2000,
    ) -> AsyncIterator[str]:
        """Stream a completion as text fragments, in generation order.

        Implementations are async generators.  Closing the iterator early
        (``aclose()``) must release the underlying HTTP stream.

        Parameters
        ----------
        system_prompt:
            The system/instruction message that sets the model's behaviour.
        user_prompt:
            The user-facing prompt containing context and question.
        temperature:
            Sampling temperature (0.0 = deterministic, 1.0 = creative).
        max_tokens:
            Upper bound on the number of tokens in the response.

        Yields
        ------
        str
            Non-empty text fragments.

        Raises
        ------
        mindlens.utils.errors.GenerationError
            If the API call fails before or during streaming.
        """

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.7,
        max_tokens: int = 2000,
    ) -> str:
        """Generate a full completion by draining :meth:`stream`."""
        parts: list[str] = []
        async for fragment in self.stream(
            system_prompt, user_prompt, temperature=temperature, max_tokens=max_tokens
        ):
            parts.append(fragment)
        return "".join(parts)

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier, e.g. ``"openai"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if credentials are present (no network call)."""
