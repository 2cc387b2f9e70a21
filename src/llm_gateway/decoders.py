"""Incremental frame decoders for NDJSON and Server-Sent-Events streams.

Both decoders keep a partial-line buffer between ``feed`` calls, so frames
split across network chunks are reassembled. A line that fails to parse is
logged and dropped; it never ends the stream.
"""

from __future__ import annotations

import codecs
import json
import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from typing import Any, Union

from llm_gateway.errors import MalformedFrameError

logger = logging.getLogger(__name__)


class _SSEDone:
    """Sentinel returned by :class:`SSEDecoder` for ``data: [DONE]``."""

    _instance: _SSEDone | None = None

    def __new__(cls) -> _SSEDone:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "SSE_DONE"


SSE_DONE = _SSEDone()

Frame = Union[dict[str, Any], _SSEDone]


def parse_frame(text: str) -> dict[str, Any]:
    """Parse one JSON object frame or raise :class:`MalformedFrameError`."""
    try:
        value = json.loads(text)
    except json.JSONDecodeError as exc:
        raise MalformedFrameError(text, exc.msg) from exc
    if not isinstance(value, dict):
        raise MalformedFrameError(text, "expected a JSON object")
    return value


class _LineDecoder(ABC):
    def __init__(self) -> None:
        self._utf8 = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self.malformed = 0

    def feed(self, data: bytes | str) -> list[Any]:
        text = self._utf8.decode(data) if isinstance(data, bytes) else data
        self._buffer += text
        *lines, self._buffer = self._buffer.split("\n")
        return self._handle_lines(lines)

    def flush(self) -> list[Any]:
        """Process whatever is left in the buffer once the stream has ended."""
        tail = self._buffer + self._utf8.decode(b"", final=True)
        self._buffer = ""
        return self._handle_lines([tail]) if tail.strip() else []

    def _handle_lines(self, lines: list[str]) -> list[Any]:
        frames: list[Any] = []
        for line in lines:
            frames.extend(self._handle_line(line.rstrip("\r")))
        return frames

    @abstractmethod
    def _handle_line(self, line: str) -> list[Any]:
        """Frames decoded from one complete line."""

    def _parse(self, text: str) -> list[dict[str, Any]]:
        try:
            return [parse_frame(text)]
        except MalformedFrameError as exc:
            self.malformed += 1
            logger.warning("Skipping %s", exc)
            return []


class NDJSONDecoder(_LineDecoder):
    """One JSON object per ``\\n`` terminated line."""

    def _handle_line(self, line: str) -> list[dict[str, Any]]:
        if not line.strip():
            return []
        return self._parse(line)


class SSEDecoder(_LineDecoder):
    """``data:`` lines of a Server-Sent-Events stream.

    ``[DONE]`` yields :data:`SSE_DONE`; anything fed afterwards is ignored.
    """

    def __init__(self) -> None:
        super().__init__()
        self.done = False

    def _handle_lines(self, lines: list[str]) -> list[Frame]:
        if self.done:
            return []
        return super()._handle_lines(lines)

    def _handle_line(self, line: str) -> list[Frame]:
        if self.done or not line.startswith("data:"):
            # event:, id:, retry:, ": comment" and blank separators
            return []
        payload = line[len("data:") :].strip()
        if not payload:
            return []
        if payload == "[DONE]":
            self.done = True
            return [SSE_DONE]
        return self._parse(payload)


async def aiter_frames(chunks: AsyncIterator[bytes], decoder: NDJSONDecoder | SSEDecoder) -> AsyncIterator[Frame]:
    """Run ``decoder`` over an async byte iterator, yielding decoded frames."""
    async for chunk in chunks:
        for frame in decoder.feed(chunk):
            yield frame
    for frame in decoder.flush():
        yield frame
