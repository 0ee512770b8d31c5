"""Shared fixtures for agentic_engine tests."""

from __future__ import annotations

import pytest

from agentic_engine.engine.models import Agent, ChatTurnRequest, EmbeddingConfig, LlmConfig, ParameterSpec, ToolSpec
from agentic_engine.ingest.chunker import DocumentChunker
from agentic_engine.ingest.store import InMemoryAgentStore, InMemoryDocumentStore
from agentic_engine.memory.in_memory import InMemoryVectorStore
from agentic_engine.memory.upserter import EmbeddingUpserter
from agentic_engine.tools.registry import ToolDef, ToolRegistry
from agentic_engine.tracing.jsonl_tracer import JSONLTraceCollector


ADD_SPEC = ToolSpec(
    id="tool-add",
    name="add",
    description="Adds two integers",
    parameters=[
        ParameterSpec(name="a", type="integer", required=True),
        ParameterSpec(name="b", type="integer", required=True),
    ],
)


async def _add_handler(args: dict, context) -> str:
    return str(args["a"] + args["b"])


@pytest.fixture
def agent():
    return Agent(
        id="agent-1",
        name="helper",
        llm=LlmConfig(provider="mock", api_key="sk-test", model="test-model"),
        embedding=EmbeddingConfig(backend="hashing", dimension=128),
    )


@pytest.fixture
def tool_registry():
    registry = ToolRegistry()
    registry.register(ToolDef(spec=ADD_SPEC, handler=_add_handler))
    return registry


@pytest.fixture
def turn_request(agent):
    return ChatTurnRequest(
        agent=agent,
        message="What is 40 + 2?",
        session_id="session-1",
        tools=(ADD_SPEC,),
    )


@pytest.fixture
def trace_collector(tmp_path):
    return JSONLTraceCollector(trace_dir=str(tmp_path / "traces"))


@pytest.fixture
def vector_store():
    return InMemoryVectorStore()


@pytest.fixture
def upserter(vector_store):
    return EmbeddingUpserter(vector_store)


@pytest.fixture
def agent_store(agent):
    return InMemoryAgentStore([agent])


@pytest.fixture
def document_store():
    return InMemoryDocumentStore()


@pytest.fixture
def chunker():
    return DocumentChunker()
