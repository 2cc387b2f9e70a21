"""Async client orchestrating provider interactions."""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any

from llm_gateway import tools
from llm_gateway.capabilities import ModelRequirements, Task
from llm_gateway.errors import GatewayError, UnsupportedOperationError, error_for_kind
from llm_gateway.manager import ModelMatch, ProviderManager
from llm_gateway.types import (
    ChatRequest,
    ChatResponse,
    DoneEvent,
    EmbeddingRequest,
    EmbeddingResponse,
    ErrorEvent,
    ModelInfo,
    StreamEvent,
)


async def collect_response(events: AsyncIterator[StreamEvent], *, model: str, provider: str) -> ChatResponse:
    """Drain a stream into a :class:`ChatResponse`, raising on an ``ErrorEvent``."""
    async for event in events:
        if isinstance(event, DoneEvent):
            return ChatResponse.from_done(event, model=model, provider=provider)
        if isinstance(event, ErrorEvent):
            raise error_for_kind(event.kind, provider, event.message, event.status_code)
    raise GatewayError(f"{provider}: stream ended without a terminal event")


class Gateway:
    """High-level entry point for chatting with configured providers."""

    def __init__(self, manager: ProviderManager) -> None:
        self.manager = manager

    async def chat(self, req: ChatRequest) -> ChatResponse:
        """Execute a chat request and return the final result.

        With ``req.stream`` set the stream is consumed internally; failures are
        raised as the same typed errors the buffered call raises.
        """
        provider = await self.manager.get(req.provider)
        if req.stream:
            return await collect_response(provider.stream_chat(req), model=req.model, provider=provider.name)
        return await provider.create_chat(req)

    async def stream_chat(self, req: ChatRequest) -> AsyncIterator[StreamEvent]:
        """Return the event stream for ``req``.

        Unsupported features raise here, before anything is sent.
        """
        provider = await self.manager.get(req.provider)
        return provider.stream_chat(req.model_copy(update={"stream": True}))

    async def embed(self, model: str, input: str | list[str], provider: str | None = None) -> EmbeddingResponse:
        backend = await self.manager.get(provider)
        if not backend.capabilities().embeddings:
            raise UnsupportedOperationError(backend.name, "embeddings")
        return await backend.create_embeddings(EmbeddingRequest(model=model, input=input))

    async def list_models(self, task: Task | None = None) -> list[ModelInfo]:
        """Models of every configured provider, optionally only those suited to ``task``."""
        models = [model for entry in await self.manager.list_all_models() for model in entry.models]
        if task == "text":
            return [m for m in models if m.supports_text]
        if task == "vision":
            return [m for m in models if m.capabilities.supports_vision]
        if task == "embeddings":
            return [m for m in models if m.capabilities.supports_embeddings]
        return models

    async def test_provider(self, provider: str | None = None) -> bool:
        backend = await self.manager.get(provider)
        return await backend.test()

    async def structured_chat(self, req: ChatRequest, schema: tools.SchemaLike = None) -> Any:
        provider = await self.manager.get(req.provider)
        return await tools.structured_chat(provider, req, schema)

    async def run_tools(
        self,
        req: ChatRequest,
        executor: tools.ToolExecutor,
        max_iterations: int = tools.DEFAULT_MAX_ITERATIONS,
    ) -> ChatResponse:
        provider = await self.manager.get(req.provider)
        return await tools.run_tools(provider, req, executor, max_iterations=max_iterations)

    def select_model(self, requirements: ModelRequirements) -> str:
        """Offline pick from the capability registry. Always returns a model id."""
        return self.manager.registry.select_best_model(requirements)

    async def find_best_model(self, requirements: ModelRequirements) -> ModelMatch | None:
        """Pick from the live model lists of configured providers."""
        return await self.manager.find_best_model(requirements)

    async def aclose(self) -> None:
        await self.manager.aclose()

    async def __aenter__(self) -> Gateway:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()
