"""
OpenAI Provider Implementation
Uses GPT models via OpenAI API
"""

from typing import Optional

from openai import APIError, OpenAI

from ..logging_config import get_logger
from .base_provider import BaseLLMProvider, LLMResponse

logger = get_logger(__name__)


class OpenAIProvider(BaseLLMProvider):
    """OpenAI GPT LLM provider implementation"""

    PRICING = {
        "gpt-4o-mini": (0.00015, 0.0006),
        "gpt-4o": (0.005, 0.015),
        "gpt-4-turbo": (0.010, 0.030),
        "gpt-3.5-turbo": (0.0005, 0.0015),
    }
    DEFAULT_PRICING = (0.010, 0.030)

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        timeout: int = 30,
        max_tokens: int = 500,
        temperature: float = 0.1,
        debug: bool = False,
        api_base_url: Optional[str] = None,
        max_retries: int = 3,
    ):
        """
        Initialize OpenAI provider.

        Args:
            api_key: OpenAI API key
            model: GPT model to use
            timeout: Request timeout in seconds
            max_tokens: Completion token limit
            temperature: Sampling temperature
            debug: Enable debug logging
            api_base_url: Custom API base URL (for proxies)
            max_retries: Client-side retries on transient API errors
        """
        super().__init__(api_key, model, timeout, max_tokens, temperature, debug)
        self.client = OpenAI(api_key=api_key, base_url=api_base_url, max_retries=max_retries)

    def complete(self, prompt: str, system_prompt: str = None) -> LLMResponse:
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
                timeout=self.timeout,
            )
        except APIError as e:
            if self.debug:
                logger.debug(f"OpenAI completion error: {e}")
            raise

        usage = response.usage
        input_tokens = usage.prompt_tokens if usage else 0
        output_tokens = usage.completion_tokens if usage else 0

        return LLMResponse(
            content=response.choices[0].message.content or "",
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            total_tokens=input_tokens + output_tokens,
            cost=self.calculate_cost(input_tokens, output_tokens),
        )
