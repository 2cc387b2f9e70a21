"""Async multi-provider inference gateway with a unified stream event model."""

from llm_gateway.capabilities import CapabilityRegistry, ModelCapabilities, ModelRequirements
from llm_gateway.client import Gateway, collect_response
from llm_gateway.errors import (
    AuthError,
    GatewayError,
    MalformedFrameError,
    NetworkError,
    NotFoundError,
    ProviderError,
    RateLimitedError,
    RequestTimeoutError,
    StreamAbortedError,
    StructuredOutputError,
    ToolLoopExceededError,
    UnsupportedOperationError,
    UnsupportedProviderError,
    UpstreamApiError,
)
from llm_gateway.manager import ModelMatch, ProviderManager, ProviderModels
from llm_gateway.settings import GatewaySettings, build_gateway, build_manager
from llm_gateway.types import (
    ChatRequest,
    ChatResponse,
    ContentEvent,
    DoneEvent,
    EmbeddingRequest,
    EmbeddingResponse,
    ErrorEvent,
    Message,
    ModelInfo,
    ProviderConfig,
    StartEvent,
    StreamEvent,
    ThinkingEvent,
    ToolCall,
    ToolCallEvent,
    ToolDef,
    Usage,
    UsageEvent,
)

__all__ = [
    "AuthError",
    "CapabilityRegistry",
    "ChatRequest",
    "ChatResponse",
    "ContentEvent",
    "DoneEvent",
    "EmbeddingRequest",
    "EmbeddingResponse",
    "ErrorEvent",
    "Gateway",
    "GatewayError",
    "GatewaySettings",
    "MalformedFrameError",
    "Message",
    "ModelCapabilities",
    "ModelInfo",
    "ModelMatch",
    "ModelRequirements",
    "NetworkError",
    "NotFoundError",
    "ProviderConfig",
    "ProviderError",
    "ProviderManager",
    "ProviderModels",
    "RateLimitedError",
    "RequestTimeoutError",
    "StartEvent",
    "StreamAbortedError",
    "StreamEvent",
    "StructuredOutputError",
    "ThinkingEvent",
    "ToolCall",
    "ToolCallEvent",
    "ToolDef",
    "ToolLoopExceededError",
    "UnsupportedOperationError",
    "UnsupportedProviderError",
    "UpstreamApiError",
    "Usage",
    "UsageEvent",
    "build_gateway",
    "build_manager",
    "collect_response",
]
