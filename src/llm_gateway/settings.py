"""Environment-driven settings and the composition root.

Only the application reads the environment: it builds :class:`GatewaySettings`
(from the process environment and an optional ``.env`` file) and hands it to
:func:`build_manager` or :func:`build_gateway`. Library code takes explicit
:class:`~llm_gateway.types.ProviderConfig` objects.
"""

from __future__ import annotations

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from llm_gateway.capabilities import CapabilityRegistry
from llm_gateway.client import Gateway
from llm_gateway.manager import BUILTIN_FACTORIES, ProviderManager
from llm_gateway.types import ProviderConfig


class GatewaySettings(BaseSettings):
    """Provider credentials and transport defaults."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    llm_default_provider: str = "ollama"
    llm_timeout_ms: int = 60_000
    llm_retries: int = 3
    llm_retry_delay_ms: int = 1_000

    # Ollama Cloud
    ollama_api_key: str = ""
    ollama_base_url: str = ""
    ollama_default_model: str = ""

    # OpenRouter
    openrouter_api_key: str = ""
    app_url: str = Field("", validation_alias=AliasChoices("app_url", "NEXT_PUBLIC_APP_URL"))

    # Chutes
    chutes_api_key: str = ""
    chutes_api_base_url: str = ""

    # Hugging Face
    huggingface_api_key: str = ""
    huggingface_base_url: str = ""

    @field_validator("llm_default_provider")
    @classmethod
    def validate_default_provider(cls, v: str) -> str:
        if v not in BUILTIN_FACTORIES:
            raise ValueError(f"llm_default_provider must be one of {sorted(BUILTIN_FACTORIES)}, got {v!r}")
        return v

    @field_validator("llm_timeout_ms", "llm_retries")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be >= 1")
        return v

    def provider_configs(self) -> list[ProviderConfig]:
        """Configs for Ollama (anonymous allowed) and every provider that has a key."""
        common = {
            "timeout_ms": self.llm_timeout_ms,
            "retries": self.llm_retries,
            "retry_delay_ms": self.llm_retry_delay_ms,
        }
        configs = [
            ProviderConfig(
                type="ollama",
                api_key=self.ollama_api_key or None,
                base_url=self.ollama_base_url or None,
                default_model=self.ollama_default_model or None,
                **common,
            )
        ]
        if self.openrouter_api_key:
            headers = {"HTTP-Referer": self.app_url} if self.app_url else {}
            configs.append(
                ProviderConfig(type="openrouter", api_key=self.openrouter_api_key, extra_headers=headers, **common)
            )
        if self.chutes_api_key:
            configs.append(
                ProviderConfig(
                    type="chutes",
                    api_key=self.chutes_api_key,
                    base_url=self.chutes_api_base_url or None,
                    **common,
                )
            )
        if self.huggingface_api_key:
            configs.append(
                ProviderConfig(
                    type="huggingface",
                    api_key=self.huggingface_api_key,
                    base_url=self.huggingface_base_url or None,
                    **common,
                )
            )
        return configs


def build_manager(settings: GatewaySettings, registry: CapabilityRegistry | None = None) -> ProviderManager:
    """Create a :class:`ProviderManager` with every provider ``settings`` enables."""
    manager = ProviderManager(registry)
    for config in settings.provider_configs():
        manager.configure(config)
    manager.set_default(settings.llm_default_provider)
    return manager


def build_gateway(settings: GatewaySettings | None = None) -> Gateway:
    """Create a :class:`Gateway`, loading settings from the environment if not given."""
    return Gateway(build_manager(settings or GatewaySettings()))
