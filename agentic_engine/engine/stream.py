"""Streaming line parsers and tool-call fragment assembly.

Providers answer a streaming chat request with newline-delimited payloads,
either server-sent-event style (``data: {...}``) or bare NDJSON. The parsers
here turn each line into zero or more ``StreamEvent`` values; they never
raise on malformed input.
"""

from __future__ import annotations

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, AsyncIterator

from agentic_engine.engine.models import (
    ContentDelta,
    StreamDone,
    StreamEvent,
    ToolCall,
    ToolCallDelta,
)

logger = logging.getLogger(__name__)

DONE_SENTINEL = "[DONE]"
_DATA_PREFIX = "data:"


def extract_payload(line: str) -> str | None:
    """Return the payload carried by one raw line, ``None`` for blank lines."""
    stripped = line.strip()
    if not stripped:
        return None
    if stripped.startswith(_DATA_PREFIX):
        return stripped[len(_DATA_PREFIX):].strip()
    return stripped


class StreamEventParser(ABC):
    """Dialect-specific mapping of decoded JSON payloads to stream events."""

    @abstractmethod
    def parse_payload(self, payload: dict[str, Any]) -> list[StreamEvent]: ...

    def parse_line(self, line: str) -> list[StreamEvent]:
        payload = extract_payload(line)
        if payload is None:
            return []
        if payload == DONE_SENTINEL:
            return [StreamDone()]
        try:
            decoded = json.loads(payload)
        except json.JSONDecodeError:
            logger.debug("Skipping non-JSON stream line: %.200s", payload)
            return []
        if not isinstance(decoded, dict):
            return []
        try:
            return self.parse_payload(decoded)
        except (AttributeError, TypeError, ValueError) as exc:
            logger.debug("Skipping malformed stream payload (%s): %.200s", exc, payload)
            return []

    async def parse_stream(
        self,
        lines: AsyncIterator[str],
        cancel: asyncio.Event | None = None,
    ) -> AsyncIterator[StreamEvent]:
        """Yield events until ``[DONE]`` or end of input, then ``StreamDone``.

        When *cancel* is set the sequence stops without a ``StreamDone``.
        """
        async for line in lines:
            if cancel is not None and cancel.is_set():
                return
            for event in self.parse_line(line):
                yield event
                if isinstance(event, StreamDone):
                    return
        if cancel is not None and cancel.is_set():
            return
        yield StreamDone()


class ChatCompletionsParser(StreamEventParser):
    """``choices[0].delta`` payloads; tool-call deltas take precedence over content."""

    def parse_payload(self, payload: dict[str, Any]) -> list[StreamEvent]:
        choices = payload.get("choices") or []
        if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
            return []
        delta = choices[0].get("delta")
        if not isinstance(delta, dict):
            return []

        # a non-null tool_calls field suppresses content, even when empty
        tool_calls = delta.get("tool_calls")
        if tool_calls is not None:
            if not isinstance(tool_calls, list):
                return []
            events: list[StreamEvent] = []
            for position, call in enumerate(tool_calls):
                if not isinstance(call, dict):
                    continue
                function = call.get("function") or {}
                if not isinstance(function, dict):
                    continue
                index = call.get("index", position)
                events.append(ToolCallDelta(
                    index=index if isinstance(index, int) else position,
                    id=_text_or_none(call.get("id")),
                    name=_text_or_none(function.get("name")),
                    arguments=_text_or_none(function.get("arguments")) or "",
                ))
            return events

        content = delta.get("content")
        if isinstance(content, str) and content:
            return [ContentDelta(text=content)]
        return []


class LocalChatParser(StreamEventParser):
    """NDJSON payloads carrying ``message.content`` or a top-level ``response``."""

    def parse_payload(self, payload: dict[str, Any]) -> list[StreamEvent]:
        message = payload.get("message")
        content = message.get("content") if isinstance(message, dict) else None
        if not isinstance(content, str) or not content:
            content = payload.get("response")
        if isinstance(content, str) and content:
            return [ContentDelta(text=content)]
        return []


def _text_or_none(value: Any) -> str | None:
    return value if isinstance(value, str) and value else None


# ---------------------------------------------------------------------------
# Tool-call assembly
# ---------------------------------------------------------------------------

@dataclass
class _PendingCall:
    index: int
    id: str | None = None
    name: str = ""
    arguments: str = ""


class ToolCallAssembler:
    """Accumulates ``ToolCallDelta`` fragments into complete calls.

    Fragments are grouped by index. A fragment that carries a new, different
    id at an index already in use closes the earlier call and starts another.
    """

    def __init__(self) -> None:
        self._calls: list[_PendingCall] = []
        self._open: dict[int, _PendingCall] = {}

    def feed(self, delta: ToolCallDelta) -> None:
        pending = self._open.get(delta.index)
        if pending is not None and delta.id and pending.id and delta.id != pending.id:
            pending = None
        if pending is None:
            pending = _PendingCall(index=delta.index)
            self._open[delta.index] = pending
            self._calls.append(pending)

        if delta.id and not pending.id:
            pending.id = delta.id
        if delta.name and not pending.name:
            pending.name = delta.name
        pending.arguments += delta.arguments

    def __bool__(self) -> bool:
        return bool(self._calls)

    def finish(self) -> list[ToolCall]:
        """Completed calls in first-appearance order."""
        calls: list[ToolCall] = []
        for position, pending in enumerate(self._calls):
            if not pending.name:
                logger.warning("Dropping tool call at index %d without a function name", pending.index)
                continue
            calls.append(ToolCall(
                id=pending.id or f"call_{position}",
                name=pending.name,
                arguments=pending.arguments,
            ))
        return calls
