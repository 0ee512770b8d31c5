"""Provider adapters: ABC, HTTP streaming dialects, and a scripted mock."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Sequence

import httpx

from agentic_engine.engine.models import (
    ChatTurnRequest,
    ContentDelta,
    LlmConfig,
    StreamDone,
    StreamEvent,
)
from agentic_engine.engine.stream import (
    ChatCompletionsParser,
    LocalChatParser,
    StreamEventParser,
)
from agentic_engine.errors import MissingCredentialError
from agentic_engine.tools.registry import build_function_schema

logger = logging.getLogger(__name__)

DEFAULT_MAX_TOKENS = 4000
DEFAULT_TEMPERATURE = 0.7
DEFAULT_TOP_P = 1.0


class ProviderAdapter(ABC):
    """Turns a chat turn request into a normalized stream of events.

    ``stream()`` validates the configuration eagerly and raises on bad
    settings; once iteration starts, transport and API failures surface as a
    single error ``ContentDelta`` instead of an exception.
    """

    label: str = "Provider"
    requires_api_key: bool = False

    def validate(self, config: LlmConfig) -> None:
        if self.requires_api_key and not config.api_key:
            raise MissingCredentialError(config.provider)

    def stream(
        self,
        config: LlmConfig,
        request: ChatTurnRequest,
        cancel: asyncio.Event | None = None,
    ) -> AsyncIterator[StreamEvent]:
        self.validate(config)
        return self._stream(config, request, cancel)

    @abstractmethod
    def _stream(
        self,
        config: LlmConfig,
        request: ChatTurnRequest,
        cancel: asyncio.Event | None,
    ) -> AsyncIterator[StreamEvent]: ...


# ---------------------------------------------------------------------------
# HTTP streaming adapters
# ---------------------------------------------------------------------------

class HttpStreamingAdapter(ProviderAdapter):
    """POSTs a JSON body and parses the line-delimited streaming response."""

    parser: StreamEventParser

    def __init__(
        self,
        *,
        timeout: float | httpx.Timeout = 120.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._timeout = timeout if isinstance(timeout, httpx.Timeout) else httpx.Timeout(timeout)
        self._client = client

    @abstractmethod
    def endpoint(self, config: LlmConfig) -> str: ...

    @abstractmethod
    def build_body(self, config: LlmConfig, request: ChatTurnRequest) -> dict[str, Any]: ...

    def build_headers(self, config: LlmConfig) -> dict[str, str]:
        headers = {"Accept": "text/event-stream, application/x-ndjson"}
        if config.api_key:
            headers["Authorization"] = f"Bearer {config.api_key}"
        return headers

    async def _stream(
        self,
        config: LlmConfig,
        request: ChatTurnRequest,
        cancel: asyncio.Event | None,
    ) -> AsyncIterator[StreamEvent]:
        url = self.endpoint(config)
        body = self.build_body(config, request)
        client = self._client or httpx.AsyncClient(timeout=self._timeout)
        try:
            async with client.stream(
                "POST", url, json=body, headers=self.build_headers(config), timeout=self._timeout,
            ) as response:
                if not response.is_success:
                    detail = (await response.aread()).decode("utf-8", errors="replace")
                    logger.warning("%s returned HTTP %d", self.label, response.status_code)
                    yield ContentDelta(
                        text=f"Error: {self.label} API error: {response.status_code} - {detail}",
                        error=True,
                    )
                    return
                async for event in self.parser.parse_stream(response.aiter_lines(), cancel):
                    yield event
        except httpx.HTTPError as exc:
            reason = str(exc) or type(exc).__name__
            logger.warning("%s request failed: %s", self.label, reason)
            yield ContentDelta(text=f"Error: Failed to communicate with {self.label}: {reason}", error=True)
        finally:
            if self._client is None:
                await client.aclose()


class ChatCompletionsAdapter(HttpStreamingAdapter):
    """OpenAI-compatible ``/chat/completions`` streaming with tool calls."""

    label = "OpenAI"
    requires_api_key = True
    parser = ChatCompletionsParser()

    def endpoint(self, config: LlmConfig) -> str:
        return f"{config.base_url.rstrip('/')}/chat/completions"

    def build_body(self, config: LlmConfig, request: ChatTurnRequest) -> dict[str, Any]:
        body: dict[str, Any] = {
            "model": config.model,
            "messages": request.messages(),
            "stream": True,
            "max_tokens": config.max_tokens or DEFAULT_MAX_TOKENS,
            "temperature": config.temperature if config.temperature is not None else DEFAULT_TEMPERATURE,
            "top_p": config.top_p if config.top_p is not None else DEFAULT_TOP_P,
            "frequency_penalty": config.frequency_penalty or 0.0,
            "presence_penalty": config.presence_penalty or 0.0,
        }
        tools = request.active_tools()
        if tools:
            body["tools"] = [build_function_schema(t) for t in tools]
            body["tool_choice"] = "auto"
        return body


class LocalChatAdapter(HttpStreamingAdapter):
    """Ollama-style ``/api/chat`` NDJSON streaming. No tool calling."""

    label = "Ollama"
    parser = LocalChatParser()

    def endpoint(self, config: LlmConfig) -> str:
        return f"{config.base_url.rstrip('/')}/api/chat"

    def build_body(self, config: LlmConfig, request: ChatTurnRequest) -> dict[str, Any]:
        return {
            "model": config.model,
            "messages": request.messages(),
            "stream": True,
            "options": {
                "num_predict": config.max_tokens or DEFAULT_MAX_TOKENS,
                "temperature": config.temperature if config.temperature is not None else DEFAULT_TEMPERATURE,
                "top_p": config.top_p if config.top_p is not None else DEFAULT_TOP_P,
                "repeat_penalty": 1.0 + (config.frequency_penalty or 0.0),
                "top_k": 40,
            },
        }


# ---------------------------------------------------------------------------
# Test mock: deterministic, pre-loaded rounds
# ---------------------------------------------------------------------------

class MockProviderAdapter(ProviderAdapter):
    """Replays one scripted event list per call. Used in unit tests.

    A round that does not end with ``StreamDone`` gets one appended, the way
    a closed connection would.
    """

    label = "Mock"

    def __init__(self, rounds: Sequence[Sequence[StreamEvent]], *, requires_api_key: bool = False) -> None:
        self._rounds = [list(r) for r in rounds]
        self._call_index = 0
        self.requires_api_key = requires_api_key
        self.requests: list[ChatTurnRequest] = []

    async def _stream(
        self,
        config: LlmConfig,
        request: ChatTurnRequest,
        cancel: asyncio.Event | None,
    ) -> AsyncIterator[StreamEvent]:
        self.requests.append(request)
        if self._call_index >= len(self._rounds):
            events: list[StreamEvent] = [ContentDelta(text="[mock responses exhausted]")]
        else:
            events = self._rounds[self._call_index]
        self._call_index += 1

        for event in events:
            if cancel is not None and cancel.is_set():
                return
            await asyncio.sleep(0)
            yield event
            if isinstance(event, StreamDone) or (isinstance(event, ContentDelta) and event.error):
                return
        yield StreamDone()

    @property
    def call_count(self) -> int:
        return self._call_index
