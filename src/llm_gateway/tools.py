"""Tool-execution loop and JSON structured output on top of a provider."""

from __future__ import annotations

import inspect
import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any, Union

from pydantic import BaseModel, ValidationError

from llm_gateway.errors import StructuredOutputError, ToolLoopExceededError
from llm_gateway.providers.base import BaseProvider
from llm_gateway.types import ChatRequest, ChatResponse, Message, ToolCall

logger = logging.getLogger(__name__)

DEFAULT_MAX_ITERATIONS = 5

# executor(function_name, arguments) -> result, sync or async
ToolExecutor = Callable[[str, dict[str, Any]], Union[Any, Awaitable[Any]]]
SchemaLike = Union[dict[str, Any], type[BaseModel], None]


async def _execute(executor: ToolExecutor, call: ToolCall) -> str:
    try:
        result = executor(call.function_name, call.arguments)
        if inspect.isawaitable(result):
            result = await result
    except Exception as exc:
        # tool failures go back to the model, not to the caller
        logger.warning("Tool %r failed: %s", call.function_name, exc, exc_info=True)
        return json.dumps({"error": str(exc) or "Tool execution failed"})
    if isinstance(result, str):
        return result
    return json.dumps(result, default=str)


async def run_tools(
    provider: BaseProvider,
    req: ChatRequest,
    executor: ToolExecutor,
    *,
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
) -> ChatResponse:
    """Chat until the model stops asking for tools.

    Each round appends the assistant turn (with its tool calls) and one
    ``tool`` message per call to the conversation. Raises
    :class:`ToolLoopExceededError` when the model is still calling tools after
    ``max_iterations`` rounds.
    """
    messages = list(req.messages)
    for iteration in range(1, max_iterations + 1):
        round_req = req.model_copy(update={"messages": messages, "stream": False})
        response = await provider.create_chat(round_req)
        if not response.tool_calls:
            return response

        logger.debug(
            "%s requested %d tool call(s), round %d/%d",
            req.model, len(response.tool_calls), iteration, max_iterations,
        )
        messages.append(Message(role="assistant", content=response.content, tool_calls=response.tool_calls))
        for call in response.tool_calls:
            messages.append(Message(role="tool", content=await _execute(executor, call), tool_call_id=call.id))

    raise ToolLoopExceededError(max_iterations)


def _response_format(schema: SchemaLike) -> Union[str, dict[str, Any]]:
    if schema is None:
        return "json"
    if isinstance(schema, type) and issubclass(schema, BaseModel):
        return schema.model_json_schema()
    return schema


async def structured_chat(provider: BaseProvider, req: ChatRequest, schema: SchemaLike = None) -> Any:
    """Ask for JSON and decode it.

    ``schema`` may be a JSON schema dict, a pydantic model class (the answer is
    validated into an instance) or ``None`` for free-form JSON.
    """
    response = await provider.create_chat(
        req.model_copy(update={"response_format": _response_format(schema), "stream": False})
    )
    try:
        data = json.loads(response.content)
    except json.JSONDecodeError as exc:
        raise StructuredOutputError(f"Failed to parse structured response: {exc}") from exc

    if isinstance(schema, type) and issubclass(schema, BaseModel):
        try:
            return schema.model_validate(data)
        except ValidationError as exc:
            raise StructuredOutputError(f"Structured response does not match {schema.__name__}: {exc}") from exc
    return data
