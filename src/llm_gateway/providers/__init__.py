"""Provider definitions for llm_gateway."""

from .base import BaseProvider, ProviderCapabilities
from .chutes import ChutesProvider
from .huggingface import HuggingFaceProvider
from .ollama import OllamaProvider
from .openai_compat import OpenAICompatibleProvider
from .openrouter import OpenRouterProvider

__all__ = [
    "BaseProvider",
    "ProviderCapabilities",
    "OpenAICompatibleProvider",
    "OllamaProvider",
    "OpenRouterProvider",
    "ChutesProvider",
    "HuggingFaceProvider",
]
