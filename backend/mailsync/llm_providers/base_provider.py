"""
Base LLM Provider Abstract Class
Defines the interface every LLM provider used for booking extraction follows
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass
class LLMResponse:
    """Simple response from LLM completion"""

    content: str  # The text content of the response
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0
    cost: float = 0.0  # Cost in USD


class BaseLLMProvider(ABC):
    """Abstract base class for LLM providers"""

    # (input, output) USD per 1K tokens, matched by model-name substring
    PRICING: dict[str, tuple[float, float]] = {}
    DEFAULT_PRICING: tuple[float, float] = (0.0, 0.0)

    def __init__(
        self,
        api_key: str,
        model: str,
        timeout: int = 30,
        max_tokens: int = 500,
        temperature: float = 0.1,
        debug: bool = False,
    ):
        """
        Initialize LLM provider.

        Args:
            api_key: API key for the provider
            model: Model name/ID
            timeout: Request timeout in seconds
            max_tokens: Completion token limit
            temperature: Sampling temperature (low for consistent extraction)
            debug: Enable debug logging
        """
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.debug = debug

    @abstractmethod
    def complete(self, prompt: str, system_prompt: str = None) -> LLMResponse:
        """
        Simple completion API for single prompt.

        Args:
            prompt: The user prompt
            system_prompt: Optional system prompt

        Returns:
            LLMResponse with content and token/cost info
        """

    def calculate_cost(self, tokens_in: int, tokens_out: int) -> float:
        """
        Calculate estimated cost for a request.

        Args:
            tokens_in: Input tokens
            tokens_out: Output tokens

        Returns:
            Estimated cost in USD
        """
        input_cost_per_1k, output_cost_per_1k = self.DEFAULT_PRICING
        for model_name, costs in self.PRICING.items():
            if model_name in self.model.lower():
                input_cost_per_1k, output_cost_per_1k = costs
                break

        total_cost = (tokens_in / 1000) * input_cost_per_1k + (tokens_out / 1000) * output_cost_per_1k
        return round(total_cost, 6)
