"""Shared implementation for OpenAI-compatible Chat Completions upstreams."""

from __future__ import annotations

import json
import logging
from typing import Any, cast

from llm_gateway.capabilities import ModelCapabilities
from llm_gateway.errors import UpstreamApiError
from llm_gateway.normalizer import StreamNormalizer
from llm_gateway.providers.base import TEST_TIMEOUT_MS, BaseProvider
from llm_gateway.types import ChatRequest, Message, ModelInfo, ModelPricing, StreamEvent, ToolCall, ToolDef, Usage

_MODELS_PATH = "/models"

logger = logging.getLogger(__name__)

# explicit reasoning fields seen across OpenAI-compatible servers
REASONING_FIELDS = ("reasoning", "thinking", "reasoning_content")


def _parse_arguments(raw: Any, name: str) -> dict[str, Any]:
    if isinstance(raw, dict):
        return raw
    if not raw:
        return {}
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Tool call %r has non-JSON arguments", name)
        return {"_raw": raw}
    return value if isinstance(value, dict) else {"_value": value}


def parse_tool_calls(raw: Any) -> list[ToolCall]:
    """Complete OpenAI tool calls (``message.tool_calls``) to canonical form."""
    calls: list[ToolCall] = []
    for item in raw if isinstance(raw, list) else []:
        function = item.get("function") if isinstance(item, dict) else None
        if not isinstance(function, dict):
            logger.warning("Skipping malformed tool call %.200s", item)
            continue
        name = function.get("name", "")
        calls.append(ToolCall(function_name=name, arguments=_parse_arguments(function.get("arguments"), name), id=item.get("id")))
    return calls


class ToolCallAssembler:
    """Collects streamed tool-call fragments keyed by their ``index``."""

    def __init__(self) -> None:
        self._slots: dict[int, dict[str, Any]] = {}
        self.pending = False

    def add(self, fragments: list[dict[str, Any]]) -> None:
        for fragment in fragments:
            if not isinstance(fragment, dict):
                logger.warning("Skipping malformed tool-call fragment %.200s", fragment)
                continue
            index = fragment.get("index", len(self._slots))
            slot = self._slots.setdefault(index, {"id": None, "name": "", "arguments": ""})
            if fragment.get("id"):
                slot["id"] = fragment["id"]
            function = fragment.get("function") or {}
            if function.get("name"):
                slot["name"] += function["name"]
            arguments = function.get("arguments")
            if isinstance(arguments, dict):
                slot["arguments"] = json.dumps(arguments)
            elif arguments:
                slot["arguments"] += arguments
            self.pending = True

    def calls(self) -> list[ToolCall]:
        return [
            ToolCall(
                function_name=slot["name"],
                arguments=_parse_arguments(slot["arguments"], slot["name"]),
                id=slot["id"],
            )
            for _, slot in sorted(self._slots.items())
        ]


class _SSEStreamState(StreamNormalizer):
    """Normalizer that also owns the per-call tool-call assembler."""

    def __init__(self, *, scan_thinking_tags: bool = True) -> None:
        super().__init__(scan_thinking_tags=scan_thinking_tags)
        self.fragments = ToolCallAssembler()

    def flush_tool_calls(self) -> list[StreamEvent]:
        if not self.fragments.pending:
            return []
        self.fragments.pending = False
        return self.tool_calls(self.fragments.calls())

    def done(self) -> list[StreamEvent]:
        events = self.flush_tool_calls()
        return events + super().done()


def capabilities_from_metadata(entry: dict[str, Any]) -> ModelCapabilities:
    """Read capabilities from the explicit metadata a ``/models`` entry declares."""
    params = set(entry.get("supported_parameters") or [])
    modalities = set((entry.get("architecture") or {}).get("input_modalities") or [])
    return ModelCapabilities(
        supports_thinking=bool(params & {"reasoning", "include_reasoning"}),
        supports_vision="image" in modalities,
        supports_tools="tools" in params,
        supports_structured_output=bool(params & {"structured_outputs", "response_format"}),
        context_window=entry.get("context_length") or 4096,
    )


def _pricing(entry: dict[str, Any]) -> ModelPricing | None:
    pricing = entry.get("pricing")
    if not isinstance(pricing, dict):
        return None
    try:
        # listed per token, kept per 1000 tokens
        return ModelPricing(
            input=float(pricing.get("prompt") or 0) * 1000,
            output=float(pricing.get("completion") or 0) * 1000,
        )
    except (TypeError, ValueError):
        return None


class OpenAICompatibleProvider(BaseProvider):
    """Chat Completions over SSE, with inline ``<thinking>`` tag handling."""

    stream_format = "sse"
    chat_path = "/chat/completions"
    scan_thinking_tags = True

    async def _probe(self) -> None:
        await self.transport.send("GET", _MODELS_PATH, timeout_ms=TEST_TIMEOUT_MS, retries=1)

    async def get_models(self) -> list[ModelInfo]:
        data = await self.transport.send("GET", _MODELS_PATH)
        entries = data.get("data", []) if isinstance(data, dict) else data
        models: list[ModelInfo] = []
        for entry in entries or []:
            model_id = entry.get("id")
            if not model_id:
                continue
            if self.registry.known(model_id):
                caps = self.registry.get(model_id)
            else:
                caps = capabilities_from_metadata(entry)
            models.append(
                ModelInfo(
                    id=model_id,
                    name=model_id,
                    display_name=entry.get("name") or self.registry.display_name(model_id),
                    description=entry.get("description"),
                    capabilities=caps,
                    supports_text=not caps.supports_embeddings,
                    pricing=_pricing(entry),
                    provider=self.name,
                )
            )
        return models

    def _thinking_params(self) -> dict[str, Any]:
        """Request fields that switch the upstream into reasoning mode."""
        return {}

    def _build_payload(self, req: ChatRequest, *, stream: bool) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": req.model,
            "messages": [self._serialize_message(m) for m in req.messages],
            "stream": stream,
        }

        if stream:
            payload["stream_options"] = {"include_usage": True}
        if req.temperature is not None:
            payload["temperature"] = req.temperature
        if req.max_tokens is not None:
            payload["max_tokens"] = req.max_tokens
        if req.tools:
            payload["tools"] = self._serialize_tools(req.tools)
        if req.response_format == "json":
            payload["response_format"] = {"type": "json_object"}
        elif req.response_format is not None:
            payload["response_format"] = {
                "type": "json_schema",
                "json_schema": {"name": "response", "schema": req.response_format},
            }
        if self.wants_thinking(req):
            payload.update(self._thinking_params())

        logger.debug("%s payload for %s: %d message(s)", self.name, req.model, len(req.messages))
        return payload

    def _serialize_message(self, message: Message) -> dict[str, Any]:
        out: dict[str, Any] = {"role": message.role, "content": message.content}
        images = self.message_images(message)
        if images:
            out["content"] = [
                {"type": "text", "text": message.content},
                *({"type": "image_url", "image_url": {"url": image}} for image in images),
            ]
        if message.tool_calls:
            out["tool_calls"] = [
                {
                    "id": call.id or f"call_{i}",
                    "type": "function",
                    "function": {"name": call.function_name, "arguments": json.dumps(call.arguments)},
                }
                for i, call in enumerate(message.tool_calls)
            ]
        if message.tool_call_id:
            out["tool_call_id"] = message.tool_call_id
        return out

    @staticmethod
    def _serialize_tools(tools: list[ToolDef]) -> list[dict[str, Any]]:
        return [
            {
                "type": "function",
                "function": {
                    "name": t.name,
                    "description": t.description or "",
                    "parameters": t.json_schema,
                },
            }
            for t in tools
        ]

    def _new_normalizer(self) -> StreamNormalizer:
        return _SSEStreamState(scan_thinking_tags=self.scan_thinking_tags)

    def _translate_chunk(self, chunk: dict[str, Any], normalizer: StreamNormalizer) -> list[StreamEvent]:
        normalizer = cast(_SSEStreamState, normalizer)
        if chunk.get("error"):
            return normalizer.error(UpstreamApiError(self.name, self._error_text(chunk["error"])))

        events: list[StreamEvent] = []
        choices = chunk.get("choices") or []
        if choices:
            choice = choices[0] if isinstance(choices, list) else None
            delta = choice.get("delta") or {} if isinstance(choice, dict) else None
            if not isinstance(choice, dict) or not isinstance(delta, dict):
                logger.warning("%s: skipping malformed frame %.200s", self.name, chunk)
                return []
            events += self._apply_message_part(delta, normalizer)
            if isinstance(delta.get("tool_calls"), list):
                normalizer.fragments.add(delta["tool_calls"])
            if choice.get("finish_reason"):
                normalizer.finish(choice["finish_reason"])
                events += normalizer.flush_tool_calls()

        usage = chunk.get("usage")
        if isinstance(usage, dict):
            events += normalizer.usage(self._usage(usage))
        return events

    def _translate_response(self, data: Any, normalizer: StreamNormalizer) -> None:
        if not isinstance(data, dict):
            raise UpstreamApiError(self.name, "unexpected chat response shape")
        if data.get("error"):
            raise UpstreamApiError(self.name, self._error_text(data["error"]))
        choices = data.get("choices") or []
        if choices:
            message = choices[0].get("message") or {}
            self._apply_message_part(message, normalizer)
            normalizer.tool_calls(parse_tool_calls(message.get("tool_calls")))
            normalizer.finish(choices[0].get("finish_reason"))
        if isinstance(data.get("usage"), dict):
            normalizer.usage(self._usage(data["usage"]), emit=False)

    @staticmethod
    def _apply_message_part(part: dict[str, Any], normalizer: StreamNormalizer) -> list[StreamEvent]:
        """Content goes through the tag scanner, reasoning fields straight to thinking."""
        events: list[StreamEvent] = []
        content = part.get("content")
        if isinstance(content, str):
            events += normalizer.content(content)
        for field in REASONING_FIELDS:
            value = part.get(field)
            if isinstance(value, str):
                events += normalizer.thinking(value)
        return events

    @staticmethod
    def _usage(usage: dict[str, Any]) -> Usage:
        prompt = usage.get("prompt_tokens") or 0
        completion = usage.get("completion_tokens") or 0
        return Usage(
            prompt_tokens=prompt,
            completion_tokens=completion,
            total_tokens=usage.get("total_tokens") or prompt + completion,
        )

    @staticmethod
    def _error_text(error: Any) -> str:
        if isinstance(error, dict):
            return str(error.get("message") or error)
        return str(error)
