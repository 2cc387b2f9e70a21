"""Registry of provider factories and their lazily created instances."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass

from llm_gateway.capabilities import CapabilityRegistry, ModelRequirements
from llm_gateway.errors import UnsupportedProviderError
from llm_gateway.providers import ChutesProvider, HuggingFaceProvider, OllamaProvider, OpenRouterProvider
from llm_gateway.providers.base import BaseProvider
from llm_gateway.types import ModelInfo, ProviderConfig

logger = logging.getLogger(__name__)

# called as factory(config, registry=registry); provider classes qualify
ProviderFactory = Callable[..., BaseProvider]

BUILTIN_FACTORIES: dict[str, ProviderFactory] = {
    "ollama": OllamaProvider,
    "openrouter": OpenRouterProvider,
    "chutes": ChutesProvider,
    "huggingface": HuggingFaceProvider,
}


@dataclass(frozen=True)
class ProviderModels:
    provider: str
    models: list[ModelInfo]


@dataclass(frozen=True)
class ModelMatch:
    provider: str
    model: ModelInfo


class ProviderManager:
    """Owns provider configuration and hands out one instance per provider type.

    Nothing here reads the environment. The application builds a manager (see
    :func:`llm_gateway.settings.build_manager`) and passes it to whatever needs it.
    """

    def __init__(
        self,
        registry: CapabilityRegistry | None = None,
        factories: dict[str, ProviderFactory] | None = None,
        *,
        default_provider: str = "ollama",
    ) -> None:
        self.registry = registry or CapabilityRegistry()
        self._factories = dict(BUILTIN_FACTORIES if factories is None else factories)
        self._configs: dict[str, ProviderConfig] = {}
        self._instances: dict[str, BaseProvider] = {}
        self._stale: set[str] = set()
        self._retired: list[BaseProvider] = []
        self._lock = asyncio.Lock()
        self.default_provider = default_provider

    def register(self, provider_type: str, factory: ProviderFactory) -> None:
        """Add or replace the factory for ``provider_type``."""
        self._factories[provider_type] = factory
        old = self._instances.pop(provider_type, None)
        if old is not None:
            self._retired.append(old)
        self._stale.discard(provider_type)

    def configure(self, config: ProviderConfig) -> None:
        """Store ``config``; an existing instance is re-initialized on next use."""
        if config.type not in self._factories:
            raise UnsupportedProviderError(config.type)
        self._configs[config.type] = config
        if config.type in self._instances:
            self._stale.add(config.type)

    def set_default(self, provider_type: str) -> None:
        if provider_type not in self._factories:
            raise UnsupportedProviderError(provider_type)
        self.default_provider = provider_type

    @property
    def configured(self) -> list[str]:
        """Configured provider types, in configuration order."""
        return list(self._configs)

    def is_available(self, provider_type: str) -> bool:
        return provider_type in self._factories

    async def get(self, provider_type: str | None = None) -> BaseProvider:
        """Return the provider for ``provider_type`` (default provider when ``None``)."""
        provider_type = provider_type or self.default_provider
        if provider_type not in self._factories:
            raise UnsupportedProviderError(provider_type)

        async with self._lock:
            config = self._configs.get(provider_type) or ProviderConfig(type=provider_type)
            while self._retired:
                await self._retired.pop().aclose()
            instance = self._instances.get(provider_type)
            if instance is not None and provider_type in self._stale:
                logger.debug("Re-initializing provider %s", provider_type)
                await instance.initialize(config)
            if instance is None:
                logger.debug("Creating provider %s", provider_type)
                instance = self._factories[provider_type](config, registry=self.registry)
                self._instances[provider_type] = instance
            self._stale.discard(provider_type)
            return instance

    async def list_all_models(self) -> list[ProviderModels]:
        """Models of every configured provider. Failing providers are skipped."""
        results: list[ProviderModels] = []
        for provider_type in self.configured:
            try:
                provider = await self.get(provider_type)
                models = await provider.get_models()
            except Exception:
                logger.warning("Failed to list models for %s", provider_type, exc_info=True)
                continue
            results.append(ProviderModels(provider=provider_type, models=models))
        return results

    async def find_best_model(self, requirements: ModelRequirements) -> ModelMatch | None:
        """First listed model, across providers, that meets ``requirements``."""
        for entry in await self.list_all_models():
            for model in entry.models:
                if _meets(model, requirements):
                    return ModelMatch(provider=entry.provider, model=model)
        return None

    async def aclose(self) -> None:
        """Close every provider created so far."""
        instances = [*self._retired, *self._instances.values()]
        self._retired.clear()
        self._instances.clear()
        self._stale.clear()
        for instance in instances:
            await instance.aclose()


def _meets(model: ModelInfo, requirements: ModelRequirements) -> bool:
    caps = model.capabilities
    if requirements.task == "text" and not model.supports_text:
        return False
    if requirements.task == "vision" and not caps.supports_vision:
        return False
    if requirements.task == "embeddings" and not caps.supports_embeddings:
        return False
    if not all(caps.has(name) for name in requirements.capabilities):
        return False
    if requirements.min_context_window is not None and caps.context_window < requirements.min_context_window:
        return False
    if requirements.max_cost is not None and model.pricing is not None:
        if model.pricing.input + model.pricing.output > requirements.max_cost:
            return False
    return True
