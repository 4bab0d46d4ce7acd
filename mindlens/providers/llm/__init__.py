"""LLM provider adapters.

Two concrete implementations of ILLMProvider (mindlens/interfaces/llm_provider.py):
    - OpenAILLMProvider   : gpt-4o-mini by default (also OpenAI-compatible APIs)
    - AnthropicLLMProvider: Claude

At startup, main.py creates the provider matching the available API key
(OPENAI_API_KEY first, then ANTHROPIC_API_KEY) and stores it on app.state.
"""

from mindlens.providers.llm.anthropic_provider import AnthropicLLMProvider
from mindlens.providers.llm.openai_provider import OpenAILLMProvider

__all__ = ["AnthropicLLMProvider", "OpenAILLMProvider"]
