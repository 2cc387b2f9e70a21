import json
import unittest

import httpx
from pydantic import BaseModel

from llm_gateway.errors import StructuredOutputError, ToolLoopExceededError
from llm_gateway.providers import OllamaProvider
from llm_gateway.tools import run_tools, structured_chat
from llm_gateway.types import ChatRequest, Message, ProviderConfig, ToolDef

from helpers import Upstream


def _tool_reply(name: str, arguments: dict) -> httpx.Response:
    return httpx.Response(
        200,
        json={
            "message": {"content": "", "tool_calls": [{"function": {"name": name, "arguments": arguments}}]},
            "done": True,
            "done_reason": "stop",
        },
    )


def _text_reply(content: str) -> httpx.Response:
    return httpx.Response(200, json={"message": {"content": content}, "done": True})


def _provider(upstream: Upstream) -> OllamaProvider:
    return OllamaProvider(ProviderConfig(type="ollama", retry_delay_ms=0), http_transport=upstream.transport)


def _request() -> ChatRequest:
    return ChatRequest(
        model="gpt-oss:20b",
        messages=[Message(role="user", content="Weather in Paris?")],
        tools=[ToolDef(name="get_weather", json_schema={"type": "object", "properties": {"city": {"type": "string"}}})],
        want_thinking=False,
    )


class City(BaseModel):
    name: str
    population: int


class RunToolsTests(unittest.IsolatedAsyncioTestCase):
    async def test_executes_tools_until_final_answer(self) -> None:
        upstream = Upstream(lambda: _tool_reply("get_weather", {"city": "Paris"}), lambda: _text_reply("Sunny, 20C"))
        seen = []

        async def executor(name: str, arguments: dict) -> dict:
            seen.append((name, arguments))
            return {"temp": 20, "sky": "clear"}

        response = await run_tools(_provider(upstream), _request(), executor)

        self.assertEqual(response.content, "Sunny, 20C")
        self.assertEqual(seen, [("get_weather", {"city": "Paris"})])
        second = json.loads(upstream.requests[1].content)["messages"]
        self.assertEqual([m["role"] for m in second], ["user", "assistant", "tool"])
        self.assertEqual(second[1]["tool_calls"][0]["function"]["name"], "get_weather")
        self.assertEqual(json.loads(second[2]["content"]), {"temp": 20, "sky": "clear"})

    async def test_executor_failure_is_reported_to_model(self) -> None:
        upstream = Upstream(lambda: _tool_reply("get_weather", {}), lambda: _text_reply("Sorry"))

        def executor(name: str, arguments: dict) -> str:
            raise RuntimeError("service down")

        with self.assertLogs("llm_gateway.tools", level="WARNING"):
            response = await run_tools(_provider(upstream), _request(), executor)

        self.assertEqual(response.content, "Sorry")
        tool_message = json.loads(upstream.requests[1].content)["messages"][2]
        self.assertEqual(json.loads(tool_message["content"]), {"error": "service down"})

    async def test_iteration_limit(self) -> None:
        upstream = Upstream(lambda: _tool_reply("get_weather", {"city": "Paris"}))
        with self.assertRaises(ToolLoopExceededError) as ctx:
            await run_tools(_provider(upstream), _request(), lambda name, args: "again", max_iterations=2)
        self.assertEqual(upstream.calls, 2)
        self.assertEqual(str(ctx.exception), "Maximum tool execution iterations (2) exceeded")


class StructuredChatTests(unittest.IsolatedAsyncioTestCase):
    async def test_free_form_json(self) -> None:
        upstream = Upstream(lambda: _text_reply('{"answer": 42}'))
        data = await structured_chat(_provider(upstream), _request())
        self.assertEqual(data, {"answer": 42})
        self.assertEqual(json.loads(upstream.requests[0].content)["format"], "json")

    async def test_pydantic_schema(self) -> None:
        upstream = Upstream(lambda: _text_reply('{"name": "Paris", "population": 2100000}'))
        city = await structured_chat(_provider(upstream), _request(), City)
        self.assertEqual(city, City(name="Paris", population=2100000))
        sent_format = json.loads(upstream.requests[0].content)["format"]
        self.assertEqual(sent_format["required"], ["name", "population"])

    async def test_invalid_json(self) -> None:
        upstream = Upstream(lambda: _text_reply("not json"))
        with self.assertRaises(StructuredOutputError):
            await structured_chat(_provider(upstream), _request())

    async def test_schema_mismatch(self) -> None:
        upstream = Upstream(lambda: _text_reply('{"name": "Paris"}'))
        with self.assertRaises(StructuredOutputError):
            await structured_chat(_provider(upstream), _request(), City)


if __name__ == "__main__":
    unittest.main()
