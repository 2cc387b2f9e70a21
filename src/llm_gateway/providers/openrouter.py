"""OpenRouter provider implementation."""

from __future__ import annotations

from typing import Any

from llm_gateway.providers.base import ProviderCapabilities
from llm_gateway.providers.openai_compat import OpenAICompatibleProvider

_DEFAULT_BASE_URL = "https://openrouter.ai/api/v1"
_APP_TITLE = "AI Content Generation Platform"


class OpenRouterProvider(OpenAICompatibleProvider):
    """OpenRouter chat completions (SSE). No embeddings."""

    name = "openrouter"
    display_name = "OpenRouter"
    default_base_url = _DEFAULT_BASE_URL
    provider_capabilities = ProviderCapabilities(
        streaming=True,
        tools=True,
        vision=True,
        thinking=True,
        embeddings=False,
        structured_output=True,
    )

    def _default_headers(self) -> dict[str, str]:
        # HTTP-Referer comes from config.extra_headers when the app sets one
        return {"X-Title": _APP_TITLE}

    def _thinking_params(self) -> dict[str, Any]:
        return {"reasoning": {"enabled": True}}
