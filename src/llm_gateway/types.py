"""Provider-agnostic request, response and stream event models."""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from llm_gateway.capabilities import ModelCapabilities

Role = Literal["system", "user", "assistant", "tool"]
ResponseFormat = Union[Literal["json"], dict[str, Any]]


class ToolCall(BaseModel):
    """A function invocation requested by the model."""

    model_config = ConfigDict(frozen=True)

    function_name: str
    arguments: dict[str, Any] = Field(default_factory=dict)
    # OpenAI-compatible upstreams need it to match tool results to calls
    id: str | None = None


class Message(BaseModel):
    """Single chat message."""

    model_config = ConfigDict(frozen=True)

    role: Role
    content: str
    images: list[str] | None = None
    tool_calls: list[ToolCall] | None = None
    tool_call_id: str | None = None


class ToolDef(BaseModel):
    """Simple JSON-schema tool definition."""

    name: str
    description: str | None = None
    json_schema: dict[str, Any] = Field(default_factory=dict)


class ChatRequest(BaseModel):
    """Normalized request shared by all providers."""

    model: str
    messages: list[Message]
    temperature: float | None = None
    max_tokens: int | None = None
    tools: list[ToolDef] = Field(default_factory=list)
    stream: bool = False
    # None lets the capability registry decide
    want_thinking: bool | None = None
    response_format: ResponseFormat | None = None
    provider: str | None = None

    @field_validator("messages")
    @classmethod
    def _messages_not_empty(cls, value: list[Message]) -> list[Message]:
        if not value:
            raise ValueError("messages must not be empty")
        return value

    @field_validator("model")
    @classmethod
    def _model_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("model must not be blank")
        return value


class Usage(BaseModel):
    """Token accounting reported by the upstream."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    @classmethod
    def from_counts(cls, prompt_tokens: int | None, completion_tokens: int | None) -> Usage:
        prompt = prompt_tokens or 0
        completion = completion_tokens or 0
        return cls(prompt_tokens=prompt, completion_tokens=completion, total_tokens=prompt + completion)


class StartEvent(BaseModel):
    type: Literal["start"] = "start"


class ContentEvent(BaseModel):
    type: Literal["content"] = "content"
    delta: str
    accumulated: str


class ThinkingEvent(BaseModel):
    type: Literal["thinking"] = "thinking"
    delta: str
    accumulated: str


class ToolCallEvent(BaseModel):
    type: Literal["tool_call"] = "tool_call"
    calls: list[ToolCall]


class UsageEvent(BaseModel):
    type: Literal["usage"] = "usage"
    usage: Usage


class DoneEvent(BaseModel):
    type: Literal["done"] = "done"
    final_content: str
    final_thinking: str | None = None
    usage: Usage | None = None
    tool_calls: list[ToolCall] = Field(default_factory=list)
    finish_reason: str | None = None


class ErrorEvent(BaseModel):
    type: Literal["error"] = "error"
    message: str
    kind: str
    status_code: int | None = None


StreamEvent = Annotated[
    Union[StartEvent, ContentEvent, ThinkingEvent, ToolCallEvent, UsageEvent, DoneEvent, ErrorEvent],
    Field(discriminator="type"),
]

TERMINAL_EVENTS = (DoneEvent, ErrorEvent)


class ChatResponse(BaseModel):
    """Single-result chat response, i.e. the payload of the final Done event."""

    content: str
    model: str
    provider: str
    thinking: str | None = None
    tool_calls: list[ToolCall] = Field(default_factory=list)
    usage: Usage | None = None
    finish_reason: str | None = None

    @classmethod
    def from_done(cls, event: DoneEvent, *, model: str, provider: str) -> ChatResponse:
        return cls(
            content=event.final_content,
            model=model,
            provider=provider,
            thinking=event.final_thinking,
            tool_calls=list(event.tool_calls),
            usage=event.usage,
            finish_reason=event.finish_reason,
        )


class EmbeddingRequest(BaseModel):
    model: str
    input: str | list[str]

    @property
    def inputs(self) -> list[str]:
        return [self.input] if isinstance(self.input, str) else list(self.input)


class EmbeddingResponse(BaseModel):
    embeddings: list[list[float]]
    model: str
    usage: Usage | None = None


class ModelPricing(BaseModel):
    """Price per 1000 tokens."""

    input: float = 0.0
    output: float = 0.0


class ModelInfo(BaseModel):
    """A model advertised by a provider, with its capabilities."""

    id: str
    name: str
    display_name: str
    description: str | None = None
    capabilities: ModelCapabilities
    supports_text: bool = True
    pricing: ModelPricing | None = None
    provider: str | None = None

    @property
    def context_window(self) -> int:
        return self.capabilities.context_window

    def estimate_cost(self, usage: Usage) -> float:
        """Cost of ``usage`` at this model's pricing, 0 when pricing is unknown."""
        if self.pricing is None:
            return 0.0
        return (
            usage.prompt_tokens / 1000 * self.pricing.input
            + usage.completion_tokens / 1000 * self.pricing.output
        )


class ProviderConfig(BaseModel):
    """Connection settings for one provider. Adapters receive their own copy."""

    model_config = ConfigDict(frozen=True)

    type: str
    api_key: str | None = None
    base_url: str | None = None
    default_model: str | None = None
    timeout_ms: int = 60_000
    retries: int = 3
    retry_delay_ms: int = 1_000
    extra_headers: dict[str, str] = Field(default_factory=dict)
