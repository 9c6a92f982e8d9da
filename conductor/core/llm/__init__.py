"""Language-model providers."""

from conductor.config import LLMConfig
from conductor.core.llm.anthropic import AnthropicProvider
from conductor.core.llm.base import LLMProvider
from conductor.core.llm.local import LocalProvider
from conductor.core.llm.types import LLMMessage, LLMResponse, ToolCall

__all__ = [
    "LLMMessage",
    "LLMResponse",
    "ToolCall",
    "LLMProvider",
    "AnthropicProvider",
    "LocalProvider",
    "create_provider",
]


def create_provider(config: LLMConfig) -> LLMProvider:
    """Factory to create the appropriate LLM provider from config."""
    if config.provider == "local":
        return LocalProvider(config)
    return AnthropicProvider(config)
