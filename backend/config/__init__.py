"""Backend configuration module"""

from .llm_config import LLMConfig, LLMProvider, load_llm_config

__all__ = [
    "LLMConfig",
    "LLMProvider",
    "load_llm_config",
]
