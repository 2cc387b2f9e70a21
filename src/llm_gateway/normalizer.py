"""Turns provider stream fragments into the canonical event sequence.

One :class:`StreamNormalizer` lives for exactly one call. Adapters feed it
whatever they pull out of a decoded frame (content deltas, explicit reasoning
deltas, tool calls, usage) and forward the events it returns.

Reasoning text reaches the normalizer two independent ways:

* inline ``<thinking>...</thinking>`` markers inside ordinary content, handled
  by a small state machine in :meth:`StreamNormalizer.content`;
* an explicit reasoning field, passed to :meth:`StreamNormalizer.thinking`.

Both may show up in the same stream.

Known limitation: tags are only recognized when the whole tag sits inside one
fragment. ``"<thin"`` followed by ``"king>"`` is treated as plain text.
"""

from __future__ import annotations

import logging

from llm_gateway.errors import GatewayError, ProviderError
from llm_gateway.types import (
    ContentEvent,
    DoneEvent,
    ErrorEvent,
    StartEvent,
    StreamEvent,
    ThinkingEvent,
    ToolCall,
    ToolCallEvent,
    Usage,
    UsageEvent,
)

logger = logging.getLogger(__name__)

OPEN_TAG = "<thinking>"
CLOSE_TAG = "</thinking>"


class StreamNormalizer:
    """Per-call accumulator and inline thinking-tag state machine.

    Every method returns the list of events it produced. Once a terminal event
    (done or error) has been produced, every method returns an empty list.

    Inline region text is emitted as it arrives, so the thinking event produced
    at a closing tag carries only the part of the region not yet emitted.
    """

    def __init__(self, *, scan_thinking_tags: bool = True) -> None:
        self.scan_thinking_tags = scan_thinking_tags
        self.accumulated_content = ""
        self.accumulated_thinking = ""
        self.in_thinking_region = False
        self.thinking_tag_buffer = ""
        self.tool_call_list: list[ToolCall] = []
        self.usage_info: Usage | None = None
        self.finish_reason: str | None = None
        self.started = False
        self.finished = False

    def start(self) -> list[StreamEvent]:
        if self.started or self.finished:
            return []
        self.started = True
        return [StartEvent()]

    def content(self, delta: str) -> list[StreamEvent]:
        """Feed a content fragment, splitting out inline thinking regions."""
        if self.finished or not delta:
            return []
        if not self.scan_thinking_tags:
            return self._emit_content(delta)

        events: list[StreamEvent] = []
        rest = delta
        while rest:
            open_at = rest.find(OPEN_TAG)
            close_at = rest.find(CLOSE_TAG)
            if open_at == -1 and close_at == -1:
                if self.in_thinking_region:
                    events.extend(self._emit_region_thinking(rest))
                else:
                    events.extend(self._emit_content(rest))
                break

            if close_at == -1 or (open_at != -1 and open_at < close_at):
                before, rest = rest[:open_at], rest[open_at + len(OPEN_TAG) :]
                if self.in_thinking_region:
                    # nested opener: the region simply continues
                    events.extend(self._emit_region_thinking(before))
                else:
                    events.extend(self._emit_content(before))
                    self.in_thinking_region = True
                    self.thinking_tag_buffer = ""
                continue

            before, rest = rest[:close_at], rest[close_at + len(CLOSE_TAG) :]
            events.extend(self._emit_region_thinking(before))
            logger.debug("Closed thinking region (%d chars)", len(self.thinking_tag_buffer))
            self.thinking_tag_buffer = ""
            self.in_thinking_region = False
        return events

    def thinking(self, delta: str) -> list[StreamEvent]:
        """Feed an explicit reasoning fragment (``thinking``/``reasoning`` fields)."""
        if self.finished or not delta:
            return []
        self.accumulated_thinking += delta
        return [ThinkingEvent(delta=delta, accumulated=self.accumulated_thinking)]

    def tool_calls(self, calls: list[ToolCall]) -> list[StreamEvent]:
        """Replace the current tool-call list."""
        if self.finished or not calls:
            return []
        self.tool_call_list = list(calls)
        return [ToolCallEvent(calls=list(calls))]

    def usage(self, usage: Usage, *, emit: bool = True) -> list[StreamEvent]:
        if self.finished:
            return []
        self.usage_info = usage
        return [UsageEvent(usage=usage)] if emit else []

    def finish(self, reason: str | None) -> None:
        if reason and not self.finished:
            self.finish_reason = reason

    def done(self) -> list[StreamEvent]:
        if self.finished:
            return []
        self.finished = True
        if self.in_thinking_region:
            logger.debug("Stream ended inside an unclosed thinking region")
        return [
            DoneEvent(
                final_content=self.accumulated_content,
                final_thinking=self.accumulated_thinking or None,
                usage=self.usage_info,
                tool_calls=list(self.tool_call_list),
                finish_reason=self.finish_reason,
            )
        ]

    def error(self, error: GatewayError | str, kind: str | None = None) -> list[StreamEvent]:
        if self.finished:
            return []
        self.finished = True
        if isinstance(error, ProviderError):
            # provider and status are known to the consumer, keep the bare message
            return [ErrorEvent(message=error.message, kind=kind or error.kind, status_code=error.status_code)]
        if isinstance(error, GatewayError):
            return [ErrorEvent(message=str(error), kind=kind or error.kind)]
        return [ErrorEvent(message=error, kind=kind or "api")]

    def _emit_content(self, text: str) -> list[StreamEvent]:
        if not text:
            return []
        self.accumulated_content += text
        return [ContentEvent(delta=text, accumulated=self.accumulated_content)]

    def _emit_region_thinking(self, text: str) -> list[StreamEvent]:
        if not text:
            return []
        self.thinking_tag_buffer += text
        self.accumulated_thinking += text
        return [ThinkingEvent(delta=text, accumulated=self.accumulated_thinking)]
