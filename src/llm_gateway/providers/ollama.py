"""Ollama Cloud provider implementation (NDJSON streaming)."""

from __future__ import annotations

import json
import logging
from typing import Any

from llm_gateway.errors import UpstreamApiError
from llm_gateway.normalizer import StreamNormalizer
from llm_gateway.providers.base import TEST_TIMEOUT_MS, BaseProvider, ProviderCapabilities
from llm_gateway.types import (
    ChatRequest,
    EmbeddingRequest,
    EmbeddingResponse,
    Message,
    ModelInfo,
    ModelPricing,
    StreamEvent,
    ToolCall,
    Usage,
)

logger = logging.getLogger(__name__)

_DEFAULT_BASE_URL = "https://ollama.com"
_TAGS_PATH = "/api/tags"
_EMBED_PATH = "/api/embed"


def _strip_data_uri(image: str) -> str:
    # Ollama wants bare base64, browsers hand us data URIs
    if image.startswith("data:") and "base64," in image:
        return image.split("base64,", 1)[1]
    return image


def parse_tool_calls(raw: Any) -> list[ToolCall]:
    """Ollama tool calls: ``[{"function": {"name", "arguments": {...}}}]``."""
    calls: list[ToolCall] = []
    for item in raw if isinstance(raw, list) else []:
        function = item.get("function") if isinstance(item, dict) else None
        if not isinstance(function, dict):
            logger.warning("Skipping malformed tool call %.200s", item)
            continue
        arguments = function.get("arguments") or {}
        if isinstance(arguments, str):
            try:
                arguments = json.loads(arguments)
            except json.JSONDecodeError:
                arguments = {"_raw": arguments}
        if not isinstance(arguments, dict):
            arguments = {"_raw": arguments}
        calls.append(ToolCall(function_name=function.get("name", ""), arguments=arguments, id=item.get("id")))
    return calls


class OllamaProvider(BaseProvider):
    """Async wrapper for the Ollama chat, embed and tags endpoints."""

    name = "ollama"
    display_name = "Ollama Cloud"
    default_base_url = _DEFAULT_BASE_URL
    provider_capabilities = ProviderCapabilities(
        streaming=True,
        tools=True,
        vision=True,
        thinking=True,
        embeddings=True,
        structured_output=True,
    )
    stream_format = "ndjson"
    chat_path = "/api/chat"

    async def _probe(self) -> None:
        await self.transport.send("GET", _TAGS_PATH, timeout_ms=TEST_TIMEOUT_MS, retries=1)

    async def get_models(self) -> list[ModelInfo]:
        data = await self.transport.send("GET", _TAGS_PATH)
        models: list[ModelInfo] = []
        for entry in data.get("models", []):
            if entry.get("type") == "image":
                continue
            model_id = entry.get("model") or entry.get("name")
            if not model_id:
                continue
            caps = self.registry.get(model_id)
            models.append(
                ModelInfo(
                    id=model_id,
                    name=entry.get("name", model_id),
                    display_name=self.registry.display_name(model_id),
                    capabilities=caps,
                    supports_text=not caps.supports_embeddings,
                    # Ollama Cloud is currently free
                    pricing=ModelPricing(input=0, output=0),
                    provider=self.name,
                )
            )
        return models

    async def create_embeddings(self, req: EmbeddingRequest) -> EmbeddingResponse:
        data = await self.transport.send("POST", _EMBED_PATH, json={"model": req.model, "input": req.input})
        prompt_tokens = data.get("prompt_eval_count") or 0
        return EmbeddingResponse(
            embeddings=data.get("embeddings", []),
            model=data.get("model", req.model),
            usage=Usage(prompt_tokens=prompt_tokens, total_tokens=prompt_tokens + (data.get("eval_count") or 0)),
        )

    def _build_payload(self, req: ChatRequest, *, stream: bool) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": req.model,
            "messages": [self._serialize_message(m) for m in req.messages],
            "stream": stream,
        }

        options: dict[str, Any] = {}
        if req.temperature is not None:
            options["temperature"] = req.temperature
        if req.max_tokens is not None:
            options["num_predict"] = req.max_tokens
        if options:
            payload["options"] = options

        if req.tools:
            payload["tools"] = [
                {
                    "type": "function",
                    "function": {
                        "name": t.name,
                        "description": t.description or "",
                        "parameters": t.json_schema,
                    },
                }
                for t in req.tools
            ]
        if req.response_format is not None:
            payload["format"] = req.response_format
        if self.wants_thinking(req):
            payload["think"] = True
        return payload

    def _serialize_message(self, message: Message) -> dict[str, Any]:
        out: dict[str, Any] = {"role": message.role, "content": message.content}
        images = self.message_images(message)
        if images:
            out["images"] = [_strip_data_uri(i) for i in images]
        if message.tool_calls:
            out["tool_calls"] = [
                {"function": {"name": c.function_name, "arguments": c.arguments}} for c in message.tool_calls
            ]
        return out

    def _translate_chunk(self, chunk: dict[str, Any], normalizer: StreamNormalizer) -> list[StreamEvent]:
        if chunk.get("error"):
            return normalizer.error(UpstreamApiError(self.name, str(chunk["error"])))

        message = chunk.get("message") or {}
        if not isinstance(message, dict):
            logger.warning("%s: skipping malformed frame %.200s", self.name, chunk)
            return []
        events: list[StreamEvent] = []
        content, thinking = message.get("content"), message.get("thinking")
        if isinstance(content, str):
            events += normalizer.content(content)
        if isinstance(thinking, str):
            events += normalizer.thinking(thinking)
        events += normalizer.tool_calls(parse_tool_calls(message.get("tool_calls")))

        if chunk.get("done"):
            # usage only rides on the done event for this upstream
            normalizer.usage(Usage.from_counts(chunk.get("prompt_eval_count"), chunk.get("eval_count")), emit=False)
            normalizer.finish(chunk.get("done_reason") or "stop")
            events += normalizer.done()
        return events

    def _translate_response(self, data: Any, normalizer: StreamNormalizer) -> None:
        if not isinstance(data, dict):
            raise UpstreamApiError(self.name, "unexpected chat response shape")
        if data.get("error"):
            raise UpstreamApiError(self.name, str(data["error"]))
        self._translate_chunk({**data, "done": False}, normalizer)
        normalizer.usage(Usage.from_counts(data.get("prompt_eval_count"), data.get("eval_count")), emit=False)
        normalizer.finish(data.get("done_reason") or ("stop" if data.get("done") else "length"))
