"""Tests for TurnOrchestrator: tool-call round trips, limits, and failure folding."""

from __future__ import annotations

import asyncio
import json

import pytest

from agentic_engine.config import TurnConfig
from agentic_engine.engine.llm import MockProviderAdapter
from agentic_engine.engine.models import ChatRole, ContentDelta, LlmConfig, StreamDone, ToolCallDelta, ToolSpec
from agentic_engine.engine.providers import ProviderRegistry
from agentic_engine.engine.turn import TurnOrchestrator
from agentic_engine.errors import MissingCredentialError, ProviderNotFoundError
from agentic_engine.tools.interceptor import ToolInvocationRecorder
from agentic_engine.tools.registry import ToolDef


# -- helpers ----------------------------------------------------------------

def _orchestrator(adapter, tool_registry, **kwargs) -> TurnOrchestrator:
    return TurnOrchestrator(
        providers=ProviderRegistry({"mock": adapter}),
        tool_registry=tool_registry,
        **kwargs,
    )


def _call(name: str, arguments: str, call_id: str = "c1", index: int = 0) -> ToolCallDelta:
    return ToolCallDelta(index=index, id=call_id, name=name, arguments=arguments)


async def _tokens(stream) -> list[str]:
    return [t async for t in stream]


# -- tests ------------------------------------------------------------------

class TestTurnRoundTrip:
    async def test_plain_answer_without_tools(self, tool_registry, turn_request):
        adapter = MockProviderAdapter([[ContentDelta(text="Hi "), ContentDelta(text="there"), StreamDone()]])
        recorder = ToolInvocationRecorder()

        tokens = await _tokens(_orchestrator(adapter, tool_registry).stream_turn(turn_request, recorder=recorder))

        assert tokens == ["Hi ", "there"]
        assert adapter.call_count == 1
        assert len(recorder) == 0

    async def test_tool_call_then_final_answer(self, tool_registry, turn_request):
        adapter = MockProviderAdapter([
            [
                ToolCallDelta(index=0, id="c1", name="add", arguments='{"a": 40,'),
                ToolCallDelta(index=0, arguments=' "b": 2}'),
                StreamDone(),
            ],
            [ContentDelta(text="The answer is "), ContentDelta(text="42."), StreamDone()],
        ])
        recorder = ToolInvocationRecorder()

        tokens = await _tokens(_orchestrator(adapter, tool_registry).stream_turn(turn_request, recorder=recorder))

        assert "".join(tokens) == "The answer is 42."
        assert adapter.call_count == 2

        [record] = recorder.records
        assert record.success is True
        assert record.tool_name == "add"
        assert record.result == "42"
        assert json.loads(record.parameters) == {"a": 40, "b": 2}

        followup = adapter.requests[1]
        assert followup.message.startswith("Tool execution completed. Results:\n")
        assert "42" in followup.message
        assert followup.history[-1].role == ChatRole.USER
        assert followup.history[-1].content == "What is 40 + 2?"
        # the caller's request is left untouched
        assert turn_request.history == ()

    async def test_partial_text_is_folded_into_follow_up(self, tool_registry, turn_request):
        adapter = MockProviderAdapter([
            [ContentDelta(text="Let me add that."), _call("add", '{"a": 1, "b": 1}'), StreamDone()],
            [ContentDelta(text="2"), StreamDone()],
        ])

        tokens = await _tokens(_orchestrator(adapter, tool_registry).stream_turn(turn_request))

        assert tokens == ["Let me add that.", "2"]
        followup = adapter.requests[1].message
        assert followup.startswith("Let me add that.\n\nTool execution completed. Results:")

    async def test_tool_lookup_is_case_insensitive(self, tool_registry, turn_request):
        adapter = MockProviderAdapter([
            [_call("ADD", '{"a": 2, "b": 3}'), StreamDone()],
            [ContentDelta(text="5"), StreamDone()],
        ])
        recorder = ToolInvocationRecorder()

        await _tokens(_orchestrator(adapter, tool_registry).stream_turn(turn_request, recorder=recorder))

        assert recorder.records[0].result == "5"


class TestToolFailures:
    async def test_unknown_tool_becomes_error_result(self, tool_registry, turn_request):
        adapter = MockProviderAdapter([
            [_call("delete_everything", "{}"), StreamDone()],
            [ContentDelta(text="Sorry."), StreamDone()],
        ])
        recorder = ToolInvocationRecorder()

        tokens = await _tokens(_orchestrator(adapter, tool_registry).stream_turn(turn_request, recorder=recorder))

        assert tokens == ["Sorry."]
        assert len(recorder) == 0
        assert "Tool 'delete_everything' not found or not assigned to this agent" in adapter.requests[1].message

    async def test_malformed_arguments_become_error_result(self, tool_registry, turn_request):
        adapter = MockProviderAdapter([
            [_call("add", '{"a": 1, "b":'), StreamDone()],
            [ContentDelta(text="Oops."), StreamDone()],
        ])
        recorder = ToolInvocationRecorder()

        tokens = await _tokens(_orchestrator(adapter, tool_registry).stream_turn(turn_request, recorder=recorder))

        assert tokens == ["Oops."]
        assert len(recorder) == 0
        assert "Invalid JSON arguments for tool 'add'" in adapter.requests[1].message

    async def test_raising_tool_is_recorded_and_folded(self, tool_registry, turn_request):
        async def _explode(args, context):
            raise RuntimeError("backend unavailable")

        tool_registry.register(ToolDef(spec=ToolSpec(id="t-x", name="explode"), handler=_explode))
        request = turn_request.model_copy(update={"tools": turn_request.tools + (ToolSpec(id="t-x", name="explode"),)})
        adapter = MockProviderAdapter([
            [_call("explode", "{}"), StreamDone()],
            [ContentDelta(text="It failed."), StreamDone()],
        ])
        recorder = ToolInvocationRecorder()

        tokens = await _tokens(_orchestrator(adapter, tool_registry).stream_turn(request, recorder=recorder))

        assert tokens == ["It failed."]
        [record] = recorder.records
        assert record.success is False
        assert "backend unavailable" in record.error
        assert "- explode: Error: backend unavailable" in adapter.requests[1].message

    async def test_error_delta_ends_turn(self, tool_registry, turn_request):
        adapter = MockProviderAdapter([
            [ContentDelta(text="Error: OpenAI API error: 500 - boom", error=True)],
            [ContentDelta(text="never sent"), StreamDone()],
        ])

        tokens = await _tokens(_orchestrator(adapter, tool_registry).stream_turn(turn_request))

        assert tokens == ["Error: OpenAI API error: 500 - boom"]
        assert adapter.call_count == 1


class TestLimits:
    async def test_identical_rounds_hit_limit(self, tool_registry, turn_request):
        same_round = [_call("add", '{"a": 1, "b": 1}'), StreamDone()]
        adapter = MockProviderAdapter([same_round] * 10)
        recorder = ToolInvocationRecorder()
        orchestrator = _orchestrator(adapter, tool_registry, config=TurnConfig(max_identical_rounds=3))

        tokens = await _tokens(orchestrator.stream_turn(turn_request, recorder=recorder))

        assert tokens[-1].startswith("Error: Tool-call limit exceeded")
        assert adapter.call_count == 4
        assert len(recorder) == 3

    async def test_round_limit(self, tool_registry, turn_request):
        rounds = [[_call("add", json.dumps({"a": i, "b": 1})), StreamDone()] for i in range(10)]
        adapter = MockProviderAdapter(rounds)
        recorder = ToolInvocationRecorder()
        orchestrator = _orchestrator(
            adapter, tool_registry, config=TurnConfig(max_tool_rounds=2, max_identical_rounds=5),
        )

        tokens = await _tokens(orchestrator.stream_turn(turn_request, recorder=recorder))

        assert len(tokens) == 1 and tokens[0].startswith("Error: Tool-call limit exceeded")
        assert adapter.call_count == 3
        assert len(recorder) == 2


class TestConfigurationErrors:
    def test_unknown_provider_raises_before_streaming(self, tool_registry, turn_request):
        request = turn_request.model_copy(update={
            "agent": turn_request.agent.model_copy(update={"llm": LlmConfig(provider="nope")}),
        })
        adapter = MockProviderAdapter([])
        with pytest.raises(ProviderNotFoundError):
            _orchestrator(adapter, tool_registry).stream_turn(request)
        assert adapter.call_count == 0

    def test_missing_credential_raises_before_streaming(self, tool_registry, turn_request):
        request = turn_request.model_copy(update={
            "agent": turn_request.agent.model_copy(update={"llm": LlmConfig(provider="mock", api_key=None)}),
        })
        adapter = MockProviderAdapter([], requires_api_key=True)
        with pytest.raises(MissingCredentialError):
            _orchestrator(adapter, tool_registry).stream_turn(request)


class TestConcurrencyAndCancellation:
    async def test_tools_in_one_round_run_concurrently(self, tool_registry, turn_request):
        both_started = asyncio.Event()
        started = 0

        async def _gate(args, context):
            nonlocal started
            started += 1
            if started == 2:
                both_started.set()
            await asyncio.wait_for(both_started.wait(), timeout=2)
            return "open"

        spec = ToolSpec(id="t-gate", name="gate")
        tool_registry.register(ToolDef(spec=spec, handler=_gate))
        request = turn_request.model_copy(update={"tools": (spec,)})
        adapter = MockProviderAdapter([
            [_call("gate", "{}", "g1", 0), _call("gate", "{}", "g2", 1), StreamDone()],
            [ContentDelta(text="done"), StreamDone()],
        ])
        recorder = ToolInvocationRecorder()

        await _tokens(_orchestrator(adapter, tool_registry).stream_turn(request, recorder=recorder))

        assert [r.success for r in recorder.records] == [True, True]

    async def test_cancel_during_tool_execution(self, tool_registry, turn_request):
        cancel = asyncio.Event()

        async def _slow(args, context):
            cancel.set()
            await asyncio.sleep(10)
            return "late"

        spec = ToolSpec(id="t-slow", name="slow")
        tool_registry.register(ToolDef(spec=spec, handler=_slow))
        request = turn_request.model_copy(update={"tools": (spec,)})
        adapter = MockProviderAdapter([
            [_call("slow", "{}"), StreamDone()],
            [ContentDelta(text="never"), StreamDone()],
        ])
        recorder = ToolInvocationRecorder()

        tokens = await _tokens(
            _orchestrator(adapter, tool_registry).stream_turn(request, recorder=recorder, cancel=cancel)
        )

        assert tokens == []
        assert adapter.call_count == 1
        [record] = recorder.records
        assert record.success is False
        assert "CancelledError" in record.error


class TestTracing:
    async def test_turn_trace_is_flushed(self, tool_registry, turn_request, trace_collector, tmp_path):
        adapter = MockProviderAdapter([
            [_call("add", '{"a": 1, "b": 2}'), StreamDone()],
            [ContentDelta(text="3"), StreamDone()],
        ])
        orchestrator = _orchestrator(adapter, tool_registry, trace_collector=trace_collector)

        await _tokens(orchestrator.stream_turn(turn_request))

        path = tmp_path / "traces" / f"{turn_request.trace_id}.jsonl"
        events = [json.loads(line) for line in path.read_text().splitlines()]
        names = [e["event"] for e in events]
        assert names.count("llm_call") == 2
        assert "tool_exec" in names
        assert names[-1] == "turn_done"
        assert events[-1]["termination"] == "completed"
