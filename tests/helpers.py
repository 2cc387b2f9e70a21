"""Fakes shared by the test modules."""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from typing import Union

import httpx

from llm_gateway.types import StreamEvent

Reply = Union[httpx.Response, Exception, Callable[[], httpx.Response]]


def chunked(*parts: Union[bytes, str]) -> AsyncIterator[bytes]:
    """Async body that delivers ``parts`` as separate network chunks."""

    async def _gen() -> AsyncIterator[bytes]:
        for part in parts:
            yield part.encode("utf-8") if isinstance(part, str) else part

    return _gen()


def stream_response(*parts: Union[bytes, str], status: int = 200, content_type: str = "application/x-ndjson") -> httpx.Response:
    return httpx.Response(status, headers={"Content-Type": content_type}, content=chunked(*parts))


def sse_response(*parts: Union[bytes, str], status: int = 200) -> httpx.Response:
    return stream_response(*parts, status=status, content_type="text/event-stream")


class Upstream:
    """Records requests and answers them with queued replies.

    The last reply repeats once the queue is down to one. Exceptions are raised
    from the transport, callables are invoked to build a fresh response.
    """

    def __init__(self, *replies: Reply) -> None:
        self.requests: list[httpx.Request] = []
        self._replies = list(replies)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        reply = self._replies.pop(0) if len(self._replies) > 1 else self._replies[0]
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, httpx.Response):
            return reply
        return reply()

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)

    @property
    def calls(self) -> int:
        return len(self.requests)


async def collect_events(stream: AsyncIterator[StreamEvent]) -> list[StreamEvent]:
    events: list[StreamEvent] = []
    async for event in stream:
        events.append(event)
    return events


class TrackingStream(httpx.AsyncByteStream):
    """Response body that remembers whether the client closed it."""

    def __init__(self, *parts: Union[bytes, str]) -> None:
        self._parts = [p.encode("utf-8") if isinstance(p, str) else p for p in parts]
        self.closed = False

    async def __aiter__(self) -> AsyncIterator[bytes]:
        for part in self._parts:
            yield part

    async def aclose(self) -> None:
        self.closed = True
