"""Chutes AI provider implementation."""

from __future__ import annotations

from typing import Any

from llm_gateway.providers.base import ProviderCapabilities
from llm_gateway.providers.openai_compat import OpenAICompatibleProvider

_DEFAULT_BASE_URL = "https://llm.chutes.ai/v1"


class ChutesProvider(OpenAICompatibleProvider):
    """Chutes chat completions (SSE).

    Reasoning models here often wrap their reasoning in inline
    ``<thinking>`` tags or send ``reasoning_content``; both are handled by the
    shared OpenAI-compatible translation.
    """

    name = "chutes"
    display_name = "Chutes AI"
    default_base_url = _DEFAULT_BASE_URL
    provider_capabilities = ProviderCapabilities(
        streaming=True,
        tools=True,
        vision=False,
        thinking=True,
        embeddings=False,
        structured_output=False,
    )

    def _thinking_params(self) -> dict[str, Any]:
        return {"think": True}
