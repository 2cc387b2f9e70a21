import asyncio
import unittest

import httpx

from llm_gateway.errors import (
    AuthError,
    NetworkError,
    NotFoundError,
    RateLimitedError,
    RequestTimeoutError,
    UpstreamApiError,
)
from llm_gateway.transport import HttpTransport, extract_error_message
from llm_gateway.types import ProviderConfig

from helpers import Upstream, chunked, stream_response


def _transport(upstream: Upstream, **overrides) -> HttpTransport:
    config = ProviderConfig(type="ollama", api_key="secret", retry_delay_ms=0, **overrides)
    return HttpTransport(config, default_base_url="https://api.test/", http_transport=upstream.transport)


class SendTests(unittest.TestCase):
    def test_retry_ceiling_on_503(self) -> None:
        upstream = Upstream(lambda: httpx.Response(503, json={"error": "overloaded"}))
        transport = _transport(upstream, retries=3)

        with self.assertLogs("llm_gateway.transport", level="WARNING") as logs:
            with self.assertRaises(UpstreamApiError) as ctx:
                asyncio.run(transport.send("POST", "/api/chat", json={}))

        self.assertEqual(upstream.calls, 3)
        self.assertEqual(len(logs.records), 2)
        self.assertEqual(ctx.exception.status_code, 503)
        self.assertEqual(ctx.exception.message, "overloaded")

    def test_client_errors_are_classified_without_retry(self) -> None:
        cases = [(401, AuthError), (404, NotFoundError), (429, RateLimitedError), (400, UpstreamApiError)]
        for status, expected in cases:
            with self.subTest(status=status):
                upstream = Upstream(lambda: httpx.Response(status, json={"error": {"message": "nope"}}))
                with self.assertRaises(expected) as ctx:
                    asyncio.run(_transport(upstream).send("GET", "/models"))
                self.assertEqual(upstream.calls, 1)
                self.assertEqual(ctx.exception.status_code, status)
                self.assertIn("nope", ctx.exception.message)
                self.assertTrue(str(ctx.exception).startswith("ollama: "))

    def test_network_failure_is_retried(self) -> None:
        upstream = Upstream(httpx.ConnectError("refused"), lambda: httpx.Response(200, json={"ok": True}))
        with self.assertLogs("llm_gateway.transport", level="WARNING"):
            data = asyncio.run(_transport(upstream).send("GET", "/api/tags"))
        self.assertEqual(data, {"ok": True})
        self.assertEqual(upstream.calls, 2)

    def test_persistent_network_failure(self) -> None:
        upstream = Upstream(httpx.ConnectError("refused"))
        with self.assertLogs("llm_gateway.transport", level="WARNING"):
            with self.assertRaises(NetworkError):
                asyncio.run(_transport(upstream, retries=2).send("GET", "/api/tags"))
        self.assertEqual(upstream.calls, 2)

    def test_timeout_maps_to_request_timeout(self) -> None:
        upstream = Upstream(httpx.ReadTimeout("slow"))
        with self.assertRaises(RequestTimeoutError) as ctx:
            asyncio.run(_transport(upstream).send("GET", "/api/tags", retries=1))
        self.assertEqual(ctx.exception.kind, "timeout")
        self.assertEqual(upstream.calls, 1)

    def test_headers_and_url(self) -> None:
        upstream = Upstream(lambda: httpx.Response(200, json={}))
        transport = _transport(upstream, extra_headers={"X-Test": "1"})
        asyncio.run(transport.send("GET", "/api/tags", params={"a": 1, "b": None}))

        request = upstream.requests[0]
        self.assertEqual(str(request.url), "https://api.test/api/tags?a=1")
        self.assertEqual(request.headers["Authorization"], "Bearer secret")
        self.assertEqual(request.headers["X-Test"], "1")

    def test_anonymous_without_api_key(self) -> None:
        upstream = Upstream(lambda: httpx.Response(200, json={}))
        config = ProviderConfig(type="ollama")
        transport = HttpTransport(config, default_base_url="https://api.test", http_transport=upstream.transport)
        asyncio.run(transport.send("GET", "/api/tags"))
        self.assertNotIn("Authorization", upstream.requests[0].headers)
        self.assertFalse(transport.has_credentials)

    def test_invalid_json_body(self) -> None:
        upstream = Upstream(lambda: httpx.Response(200, text="<html>"))
        with self.assertRaises(UpstreamApiError):
            asyncio.run(_transport(upstream).send("GET", "/api/tags"))


class StreamTests(unittest.TestCase):
    def test_stream_errors_are_not_retried(self) -> None:
        upstream = Upstream(lambda: httpx.Response(500, json={"error": "boom"}))
        transport = _transport(upstream, retries=3)

        async def run() -> None:
            async with transport.stream("POST", "/api/chat", json={}):
                pass

        with self.assertRaises(UpstreamApiError) as ctx:
            asyncio.run(run())
        self.assertEqual(upstream.calls, 1)
        self.assertEqual(ctx.exception.message, "boom")

    def test_stream_closes_response_on_exit(self) -> None:
        upstream = Upstream(lambda: stream_response("a\n", "b\n"))
        transport = _transport(upstream)

        async def run():
            async with transport.stream("POST", "/api/chat", json={}, accept="application/x-ndjson") as response:
                chunks = [chunk async for chunk in response.aiter_bytes()]
            return response, chunks

        response, chunks = asyncio.run(run())
        self.assertEqual(b"".join(chunks), b"a\nb\n")
        self.assertTrue(response.is_closed)
        self.assertEqual(upstream.requests[0].headers["Accept"], "application/x-ndjson")

    def test_stream_connect_failure(self) -> None:
        upstream = Upstream(httpx.ConnectError("refused"))

        async def run() -> None:
            async with _transport(upstream).stream("POST", "/api/chat", json={}):
                pass

        with self.assertRaises(NetworkError):
            asyncio.run(run())
        self.assertEqual(upstream.calls, 1)

    def test_unreadable_error_body_keeps_status(self) -> None:
        upstream = Upstream(
            lambda: httpx.Response(502, headers={"Content-Encoding": "gzip"}, content=chunked(b"Bad Gateway"))
        )

        async def run() -> None:
            async with _transport(upstream).stream("POST", "/api/chat", json={}):
                pass

        with self.assertRaises(UpstreamApiError) as ctx:
            asyncio.run(run())
        self.assertEqual(ctx.exception.status_code, 502)
        self.assertEqual(upstream.calls, 1)


class ErrorMessageTests(unittest.TestCase):
    def test_message_sources(self) -> None:
        cases = [
            (httpx.Response(500, json={"error": "plain"}), "plain"),
            (httpx.Response(500, json={"error": {"message": "nested"}}), "nested"),
            (httpx.Response(500, json={"detail": "detail text"}), "detail text"),
            (httpx.Response(502, text="upstream down"), "upstream down"),
            (httpx.Response(502, text=""), "HTTP 502: Bad Gateway"),
        ]
        for response, expected in cases:
            with self.subTest(expected=expected):
                self.assertEqual(extract_error_message(response), expected)


if __name__ == "__main__":
    unittest.main()
