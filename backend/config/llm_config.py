"""
LLM Configuration Management
Handles environment variables, validation, and provider configuration for
the AI booking extractor
"""

import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Load from .env in the backend directory; real environment variables win
ENV_PATH = Path(__file__).parent.parent / ".env"
load_dotenv(ENV_PATH, override=False)


class LLMProvider(str, Enum):
    """Supported LLM providers"""
    ANTHROPIC = "anthropic"
    OPENAI = "openai"


class LLMModel(str, Enum):
    """Known models by provider"""
    # Anthropic
    CLAUDE_SONNET = "claude-3-5-sonnet-20241022"
    CLAUDE_HAIKU = "claude-3-5-haiku-20241022"

    # OpenAI
    GPT_4O = "gpt-4o"
    GPT_4O_MINI = "gpt-4o-mini"
    GPT_3_5_TURBO = "gpt-3.5-turbo"


DEFAULT_MODELS = {
    LLMProvider.ANTHROPIC: LLMModel.CLAUDE_HAIKU.value,
    LLMProvider.OPENAI: LLMModel.GPT_4O_MINI.value,
}

PROVIDER_API_KEY_ENV = {
    LLMProvider.ANTHROPIC: "ANTHROPIC_API_KEY",
    LLMProvider.OPENAI: "OPENAI_API_KEY",
}


@dataclass
class LLMConfig:
    """LLM Configuration object"""
    provider: LLMProvider
    model: str
    api_key: str
    api_base_url: Optional[str] = None
    timeout: int = 30
    max_retries: int = 3
    max_tokens: int = 500
    temperature: float = 0.1
    debug: bool = False

    def __post_init__(self):
        """Validate configuration after initialization"""
        self.validate()

    def validate(self):
        """Validate LLM configuration"""
        if not self.provider:
            raise ValueError("LLM_PROVIDER is required")

        if not self.api_key:
            raise ValueError(f"API key required for provider: {self.provider}")

        if self.timeout <= 0:
            raise ValueError("LLM_TIMEOUT must be greater than 0")

        if self.max_tokens <= 0:
            raise ValueError("LLM_MAX_TOKENS must be greater than 0")

        # Provider-specific validation
        if self.provider == LLMProvider.ANTHROPIC:
            if not self.model.startswith("claude"):
                raise ValueError(f"Invalid Anthropic model: {self.model}")

        elif self.provider == LLMProvider.OPENAI:
            if not self.model.startswith(("gpt-", "o1", "o3", "o4")):
                raise ValueError(f"Invalid OpenAI model: {self.model}")


def load_llm_config() -> Optional[LLMConfig]:
    """
    Load LLM configuration from environment variables.

    Environment Variables:
    - LLM_PROVIDER: anthropic|openai (AI extraction is disabled when unset)
    - LLM_MODEL: Model name (default depends on provider)
    - LLM_API_KEY: API key (falls back to ANTHROPIC_API_KEY / OPENAI_API_KEY)
    - LLM_API_BASE_URL: Custom API endpoint (optional)
    - LLM_TIMEOUT: Request timeout in seconds (default: 30)
    - LLM_MAX_RETRIES: Number of retries (default: 3)
    - LLM_MAX_TOKENS: Completion token limit (default: 500)
    - LLM_DEBUG: Debug mode (default: false)

    Returns:
        LLMConfig object or None if AI extraction is not configured
    """
    provider_str = os.getenv("LLM_PROVIDER", "").strip().lower()

    # If no provider is set, AI extraction is disabled
    if not provider_str:
        return None

    try:
        provider = LLMProvider(provider_str)
    except ValueError:
        raise ValueError(
            f"Invalid LLM_PROVIDER: {provider_str}. "
            f"Must be one of: {', '.join([p.value for p in LLMProvider])}"
        )

    # Generic LLM_API_KEY first, then the provider-specific key
    api_key = os.getenv("LLM_API_KEY", "").strip()
    if not api_key:
        api_key = os.getenv(PROVIDER_API_KEY_ENV[provider], "").strip()

    model = os.getenv("LLM_MODEL", "").strip() or DEFAULT_MODELS[provider]

    return LLMConfig(
        provider=provider,
        model=model,
        api_key=api_key,
        api_base_url=os.getenv("LLM_API_BASE_URL") or None,
        timeout=int(os.getenv("LLM_TIMEOUT", "30")),
        max_retries=int(os.getenv("LLM_MAX_RETRIES", "3")),
        max_tokens=int(os.getenv("LLM_MAX_TOKENS", "500")),
        debug=os.getenv("LLM_DEBUG", "false").lower() == "true",
    )

