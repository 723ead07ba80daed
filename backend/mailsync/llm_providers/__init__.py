"""LLM Provider implementations"""

from config.llm_config import LLMConfig, LLMProvider

from .anthropic_provider import AnthropicProvider
from .base_provider import BaseLLMProvider, LLMResponse
from .openai_provider import OpenAIProvider

PROVIDER_CLASSES = {
    LLMProvider.ANTHROPIC: AnthropicProvider,
    LLMProvider.OPENAI: OpenAIProvider,
}


def get_llm_provider(config: LLMConfig) -> BaseLLMProvider:
    """Instantiate the provider selected by an LLMConfig."""
    provider_class = PROVIDER_CLASSES.get(config.provider)
    if provider_class is None:
        raise ValueError(f"Unsupported LLM provider: {config.provider}")

    return provider_class(
        api_key=config.api_key,
        model=config.model,
        timeout=config.timeout,
        max_tokens=config.max_tokens,
        temperature=config.temperature,
        debug=config.debug,
        api_base_url=config.api_base_url,
        max_retries=config.max_retries,
    )


__all__ = [
    "BaseLLMProvider",
    "LLMResponse",
    "AnthropicProvider",
    "OpenAIProvider",
    "get_llm_provider",
]
