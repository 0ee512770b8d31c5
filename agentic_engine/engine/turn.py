"""TurnOrchestrator: streams a chat turn, running tools between model rounds."""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import aclosing
from enum import Enum
from typing import AsyncIterator

from agentic_engine.config import TurnConfig
from agentic_engine.engine.llm import ProviderAdapter
from agentic_engine.engine.models import ChatTurnRequest, ContentDelta, StreamDone, ToolCall, ToolCallDelta
from agentic_engine.engine.providers import ProviderRegistry
from agentic_engine.engine.stream import ToolCallAssembler
from agentic_engine.errors import ToolArgumentsError
from agentic_engine.tools.interceptor import ToolInterceptor, ToolInvocationRecorder, serialize_result
from agentic_engine.tools.registry import ToolContext, ToolRegistry
from agentic_engine.tracing.interface import TraceCollector

logger = logging.getLogger(__name__)

FOLLOW_UP_HEADER = "Tool execution completed. Results:"


class TurnState(str, Enum):
    SENDING = "sending"
    STREAMING_CONTENT = "streaming_content"
    COLLECTING_TOOL_CALLS = "collecting_tool_calls"
    EXECUTING_TOOLS = "executing_tools"
    RESUBMITTING = "resubmitting"
    DONE = "done"


def build_follow_up(results: list[str], partial_text: str = "") -> str:
    body = f"{FOLLOW_UP_HEADER}\n" + "\n".join(results)
    if partial_text.strip():
        return f"{partial_text.strip()}\n\n{body}"
    return body


class TurnOrchestrator:
    """Public API: ``async for token in orchestrator.stream_turn(request): ...``"""

    def __init__(
        self,
        providers: ProviderRegistry,
        tool_registry: ToolRegistry,
        trace_collector: TraceCollector | None = None,
        config: TurnConfig | None = None,
    ) -> None:
        self._providers = providers
        self._tools = tool_registry
        self._trace = trace_collector
        self._config = config or TurnConfig()
        self._interceptor = ToolInterceptor(tool_registry, trace_collector)

    def stream_turn(
        self,
        request: ChatTurnRequest,
        *,
        recorder: ToolInvocationRecorder | None = None,
        cancel: asyncio.Event | None = None,
    ) -> AsyncIterator[str]:
        """Validate the agent's provider settings, then return the token stream.

        Configuration errors raise here, before any network call.
        """
        adapter = self._providers.resolve(request.agent.llm.provider)
        adapter.validate(request.agent.llm)
        return self._run(adapter, request, recorder if recorder is not None else ToolInvocationRecorder(), cancel)

    async def _run(
        self,
        adapter: ProviderAdapter,
        request: ChatTurnRequest,
        recorder: ToolInvocationRecorder,
        cancel: asyncio.Event | None,
    ) -> AsyncIterator[str]:
        trace_id = request.trace_id
        t_start = time.time()
        cfg = self._config
        current = request
        tool_rounds = 0
        identical_rounds = 0
        last_signature: tuple[tuple[str, str], ...] | None = None
        termination = "completed"

        try:
            while True:
                # 1. Send & stream -----------------------------------------
                state = TurnState.SENDING
                assembler = ToolCallAssembler()
                parts: list[str] = []
                finished = False
                t_llm = time.time()

                async with aclosing(adapter.stream(current.agent.llm, current, cancel)) as events:
                    async for event in events:
                        if isinstance(event, ContentDelta):
                            state = TurnState.STREAMING_CONTENT
                            parts.append(event.text)
                            yield event.text
                            if event.error:
                                termination = "error"
                                return
                        elif isinstance(event, ToolCallDelta):
                            state = TurnState.COLLECTING_TOOL_CALLS
                            assembler.feed(event)
                        elif isinstance(event, StreamDone):
                            finished = True

                if not finished:
                    termination = "cancelled"
                    return

                calls = assembler.finish()
                if self._trace is not None:
                    await self._trace.emit(trace_id, "llm_call", {
                        "round": tool_rounds,
                        "latency_ms": round((time.time() - t_llm) * 1000, 2),
                        "tool_calls": [c.name for c in calls],
                        "content_chars": sum(len(p) for p in parts),
                        "last_state": state.value,
                    })

                if not calls:
                    break

                # 2. Guard against runaway tool loops -----------------------
                tool_rounds += 1
                signature = tuple((c.name.lower(), c.arguments.strip()) for c in calls)
                identical_rounds = identical_rounds + 1 if signature == last_signature else 1
                last_signature = signature
                if tool_rounds > cfg.max_tool_rounds or identical_rounds > cfg.max_identical_rounds:
                    termination = "limit"
                    logger.warning(
                        "Tool-call limit exceeded for agent %s (rounds=%d, identical=%d)",
                        request.agent.id, tool_rounds, identical_rounds,
                    )
                    yield (
                        f"Error: Tool-call limit exceeded after {tool_rounds - 1} tool rounds "
                        f"(max_tool_rounds={cfg.max_tool_rounds}, "
                        f"max_identical_rounds={cfg.max_identical_rounds})"
                    )
                    return

                # 3. Execute tools -----------------------------------------
                results = await self._execute_tools(calls, current, recorder, cancel)
                if results is None:
                    termination = "cancelled"
                    return

                # 4. Resubmit ----------------------------------------------
                logger.info("Round %d: executed %d tool call(s), resubmitting", tool_rounds, len(calls))
                current = current.with_followup(build_follow_up(results, "".join(parts)))

        finally:
            if self._trace is not None:
                await self._trace.emit(trace_id, "turn_done", {
                    "rounds": tool_rounds,
                    "tool_executions": len(recorder),
                    "total_latency_ms": round((time.time() - t_start) * 1000, 2),
                    "termination": termination,
                })
                await self._trace.flush(trace_id)

    # ------------------------------------------------------------------
    # Tool execution
    # ------------------------------------------------------------------

    async def _execute_tools(
        self,
        calls: list[ToolCall],
        request: ChatTurnRequest,
        recorder: ToolInvocationRecorder,
        cancel: asyncio.Event | None,
    ) -> list[str] | None:
        """Result lines in call order, or ``None`` when cancelled."""
        context = ToolContext(agent=request.agent, session_id=request.session_id, trace_id=request.trace_id)

        if not self._config.parallel_tool_calls:
            results: list[str] = []
            for call in calls:
                if cancel is not None and cancel.is_set():
                    return None
                results.append(await self._run_call(call, request, context, recorder))
            return results

        gathered = asyncio.gather(*(self._run_call(c, request, context, recorder) for c in calls))
        if cancel is None:
            return list(await gathered)

        cancel_wait = asyncio.ensure_future(cancel.wait())
        try:
            done, _ = await asyncio.wait({gathered, cancel_wait}, return_when=asyncio.FIRST_COMPLETED)
            if gathered in done:
                return list(gathered.result())
            return None
        finally:
            cancel_wait.cancel()
            if not gathered.done():
                gathered.cancel()
                try:
                    await gathered
                except asyncio.CancelledError:
                    pass

    async def _run_call(
        self,
        call: ToolCall,
        request: ChatTurnRequest,
        context: ToolContext,
        recorder: ToolInvocationRecorder,
    ) -> str:
        spec = request.find_tool(call.name)
        if spec is None:
            logger.warning("Model requested unknown tool %s", call.name)
            return f"- {call.name}: Tool '{call.name}' not found or not assigned to this agent"

        try:
            arguments = call.parse_arguments()
        except ToolArgumentsError as exc:
            logger.warning("Malformed arguments for tool %s: %s", spec.name, exc)
            return f"- {spec.name}: Error: {exc}"

        try:
            result = await self._interceptor.invoke(spec, arguments, context, recorder)
        except Exception as exc:
            return f"- {spec.name}: Error: {str(exc) or type(exc).__name__}"
        return f"- {spec.name}: {serialize_result(result)}"
