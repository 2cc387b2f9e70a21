"""Provider-agnostic base interfaces and helpers."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any, ClassVar, Literal, cast

import httpx

from llm_gateway.capabilities import CapabilityRegistry
from llm_gateway.decoders import SSE_DONE, Frame, NDJSONDecoder, SSEDecoder, aiter_frames
from llm_gateway.errors import GatewayError, UnsupportedOperationError
from llm_gateway.normalizer import StreamNormalizer
from llm_gateway.transport import HttpTransport
from llm_gateway.types import (
    ChatRequest,
    ChatResponse,
    DoneEvent,
    EmbeddingRequest,
    EmbeddingResponse,
    Message,
    ModelInfo,
    ProviderConfig,
    StreamEvent,
)

logger = logging.getLogger(__name__)

TEST_TIMEOUT_MS = 5_000


@dataclass(frozen=True)
class ProviderCapabilities:
    """Describes feature support for a provider as a whole."""

    chat: bool = True
    streaming: bool = True
    tools: bool = True
    vision: bool = False
    thinking: bool = False
    embeddings: bool = False
    structured_output: bool = False


class BaseProvider(ABC):
    """Abstract base class for provider implementations.

    A provider holds its config copy, its transport and the shared capability
    registry. All per-call state lives in the :class:`StreamNormalizer` created
    for that call, so one instance can serve concurrent calls.
    """

    name: ClassVar[str]
    display_name: ClassVar[str]
    default_base_url: ClassVar[str]
    provider_capabilities: ClassVar[ProviderCapabilities] = ProviderCapabilities()
    stream_format: ClassVar[Literal["ndjson", "sse"]] = "sse"
    chat_path: ClassVar[str] = "/chat/completions"
    # whether content deltas may carry inline <thinking> markers
    scan_thinking_tags: ClassVar[bool] = False

    def __init__(
        self,
        config: ProviderConfig | None = None,
        *,
        registry: CapabilityRegistry | None = None,
        http_transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.registry = registry or CapabilityRegistry()
        self._http_transport = http_transport
        self._configure(config or ProviderConfig(type=self.name))

    def _configure(self, config: ProviderConfig) -> None:
        if config.type != self.name:
            raise ValueError(f"{type(self).__name__} cannot use a '{config.type}' config")
        self.config = config.model_copy()
        self.transport = HttpTransport(
            self.config,
            default_base_url=self.default_base_url,
            default_headers=self._default_headers(),
            http_transport=self._http_transport,
        )

    async def initialize(self, config: ProviderConfig) -> None:
        """Apply a new configuration, replacing the transport."""
        old = self.transport
        self._configure(config)
        await old.aclose()

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self.transport.aclose()

    def capabilities(self) -> ProviderCapabilities:
        return self.provider_capabilities

    @property
    def default_model(self) -> str | None:
        return self.config.default_model

    async def test(self) -> bool:
        """Return whether the upstream answers a minimal request. Never raises."""
        try:
            await self._probe()
        except GatewayError as exc:
            logger.info("%s connectivity test failed: %s", self.name, exc)
            return False
        return True

    @abstractmethod
    async def _probe(self) -> None:
        """Issue the cheapest request that proves the upstream is reachable."""
        raise NotImplementedError

    @abstractmethod
    async def get_models(self) -> list[ModelInfo]:
        """Return the models this provider offers."""
        raise NotImplementedError

    async def create_chat(self, req: ChatRequest) -> ChatResponse:
        """Execute a chat request and return the final accumulated result."""
        self.ensure_supported(req)
        payload = self._build_payload(req, stream=False)
        data = await self.transport.send("POST", self.chat_path, json=payload)
        normalizer = self._new_normalizer()
        self._translate_response(data, normalizer)
        done = cast(DoneEvent, normalizer.done()[0])
        model = data.get("model") if isinstance(data, dict) else None
        return ChatResponse.from_done(done, model=model or req.model, provider=self.name)

    def stream_chat(self, req: ChatRequest) -> AsyncIterator[StreamEvent]:
        """Return an async iterator of canonical stream events.

        Capability checks run now, before any network call. Transport failures
        end the iteration with an ``ErrorEvent`` instead of raising.
        """
        self.ensure_supported(req)
        payload = self._build_payload(req, stream=True)
        return self._stream_events(payload)

    async def create_embeddings(self, req: EmbeddingRequest) -> EmbeddingResponse:
        raise UnsupportedOperationError(self.name, "embeddings")

    def ensure_supported(self, req: ChatRequest) -> None:
        """Fail fast if the request asks for unsupported features."""
        caps = self.capabilities()
        if not caps.chat:
            raise UnsupportedOperationError(self.name, "chat")
        if req.stream and not caps.streaming:
            raise UnsupportedOperationError(self.name, "streaming")
        if req.tools and not caps.tools:
            raise UnsupportedOperationError(self.name, "tools")
        if req.want_thinking and not caps.thinking:
            raise UnsupportedOperationError(self.name, "thinking")
        if req.response_format is not None and not caps.structured_output:
            raise UnsupportedOperationError(self.name, "structured_output")

    def wants_thinking(self, req: ChatRequest) -> bool:
        """Explicit request wins; otherwise ask the registry about the model."""
        if req.want_thinking is not None:
            return req.want_thinking
        return self.capabilities().thinking and self.registry.get(req.model).supports_thinking

    def message_images(self, message: Message) -> list[str]:
        """Images to send for ``message``; dropped with a warning if unsupported."""
        if not message.images:
            return []
        if not self.capabilities().vision:
            logger.warning(
                "%s does not accept image input, dropping %d image(s) from %s message",
                self.name, len(message.images), message.role,
            )
            return []
        return list(message.images)

    async def _stream_events(self, payload: dict[str, Any]) -> AsyncIterator[StreamEvent]:
        normalizer = self._new_normalizer()
        for event in normalizer.start():
            yield event

        accept = "application/x-ndjson" if self.stream_format == "ndjson" else "text/event-stream"
        try:
            async with self.transport.stream("POST", self.chat_path, json=payload, accept=accept) as response:
                async for frame in aiter_frames(response.aiter_bytes(), self._new_decoder()):
                    for event in self._translate_frame(frame, normalizer):
                        yield event
                    if normalizer.finished:
                        return
        except GatewayError as exc:
            logger.warning("%s stream failed: %s", self.name, exc)
            for event in normalizer.error(exc):
                yield event
            return
        except GeneratorExit:
            logger.debug("%s stream abandoned by consumer, connection closed", self.name)
            raise

        # upstream closed without a terminal marker
        for event in normalizer.done():
            yield event

    def _new_normalizer(self) -> StreamNormalizer:
        return StreamNormalizer(scan_thinking_tags=self.scan_thinking_tags)

    def _new_decoder(self) -> NDJSONDecoder | SSEDecoder:
        return NDJSONDecoder() if self.stream_format == "ndjson" else SSEDecoder()

    def _translate_frame(self, frame: Frame, normalizer: StreamNormalizer) -> list[StreamEvent]:
        if frame is SSE_DONE:
            return normalizer.done()
        return self._translate_chunk(cast(dict[str, Any], frame), normalizer)

    def _default_headers(self) -> dict[str, str]:
        return {}

    @abstractmethod
    def _build_payload(self, req: ChatRequest, *, stream: bool) -> dict[str, Any]:
        """Map a canonical request to the provider's native JSON body."""
        raise NotImplementedError

    @abstractmethod
    def _translate_chunk(self, chunk: dict[str, Any], normalizer: StreamNormalizer) -> list[StreamEvent]:
        """Feed one decoded stream object into ``normalizer``."""
        raise NotImplementedError

    @abstractmethod
    def _translate_response(self, data: Any, normalizer: StreamNormalizer) -> None:
        """Feed a complete (non-streaming) response body into ``normalizer``."""
        raise NotImplementedError
