"""
Anthropic Provider Implementation
Uses Claude models via Anthropic API
"""

from typing import Optional

import anthropic

from ..logging_config import get_logger
from .base_provider import BaseLLMProvider, LLMResponse

logger = get_logger(__name__)


class AnthropicProvider(BaseLLMProvider):
    """Anthropic Claude LLM provider implementation"""

    PRICING = {
        "claude-3-5-sonnet": (0.003, 0.015),
        "claude-3-5-haiku": (0.0008, 0.004),
        "claude-3-opus": (0.015, 0.075),
    }
    DEFAULT_PRICING = (0.003, 0.015)

    def __init__(
        self,
        api_key: str,
        model: str = "claude-3-5-haiku-20241022",
        timeout: int = 30,
        max_tokens: int = 500,
        temperature: float = 0.1,
        debug: bool = False,
        api_base_url: Optional[str] = None,
        max_retries: int = 3,
    ):
        """
        Initialize Anthropic provider.

        Args:
            api_key: Anthropic API key
            model: Claude model to use
            timeout: Request timeout in seconds
            max_tokens: Completion token limit
            temperature: Sampling temperature
            debug: Enable debug logging
            api_base_url: Custom API base URL (for proxies)
            max_retries: Client-side retries on transient API errors
        """
        super().__init__(api_key, model, timeout, max_tokens, temperature, debug)
        self.client = anthropic.Anthropic(api_key=api_key, base_url=api_base_url, max_retries=max_retries)

    def complete(self, prompt: str, system_prompt: str = None) -> LLMResponse:
        kwargs = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "messages": [{"role": "user", "content": prompt}],
            "timeout": self.timeout,
        }
        if system_prompt:
            kwargs["system"] = system_prompt

        try:
            response = self.client.messages.create(**kwargs)
        except anthropic.APIError as e:
            if self.debug:
                logger.debug(f"Anthropic completion error: {e}")
            raise

        input_tokens = response.usage.input_tokens
        output_tokens = response.usage.output_tokens

        return LLMResponse(
            content=response.content[0].text,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            total_tokens=input_tokens + output_tokens,
            cost=self.calculate_cost(input_tokens, output_tokens),
        )
