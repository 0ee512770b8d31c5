"""agentic_engine: streaming tool-calling chat turns and background document ingestion.

Usage::

    from agentic_engine import create_runtime

    runtime = create_runtime()
    async for token in runtime.orchestrator.stream_turn(request):
        print(token, end="")
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()  # reads .env into os.environ (no-op if file missing)

from agentic_engine.config import RuntimeSettings
from agentic_engine.engine.models import ChatTurnRequest
from agentic_engine.engine.providers import ProviderRegistry, default_provider_registry
from agentic_engine.engine.turn import TurnOrchestrator
from agentic_engine.ingest.chunker import DocumentChunker
from agentic_engine.ingest.queue import DocumentIngestionQueue
from agentic_engine.ingest.store import InMemoryAgentStore, InMemoryDocumentStore
from agentic_engine.memory.in_memory import InMemoryVectorStore
from agentic_engine.memory.upserter import EmbeddingUpserter
from agentic_engine.tools.builtins import make_search_documents_tool
from agentic_engine.tools.interceptor import ToolInvocationRecorder
from agentic_engine.tools.registry import ToolRegistry
from agentic_engine.tracing.jsonl_tracer import JSONLTraceCollector

__all__ = [
    "AgentRuntime",
    "ChatTurnRequest",
    "ToolInvocationRecorder",
    "TurnOrchestrator",
    "create_runtime",
]


@dataclass
class AgentRuntime:
    """Every long-lived component, wired together."""

    settings: RuntimeSettings
    providers: ProviderRegistry
    tools: ToolRegistry
    orchestrator: TurnOrchestrator
    upserter: EmbeddingUpserter
    ingestion: DocumentIngestionQueue
    agents: InMemoryAgentStore
    documents: InMemoryDocumentStore


def create_runtime(
    *,
    settings: RuntimeSettings | None = None,
    trace_dir: str | None = None,
) -> AgentRuntime:
    """Wire all components and return them.

    Environment variables (all optional):
      AGENTIC_TRACE_DIR         default ``./traces``
      AGENTIC_MAX_TOOL_ROUNDS   default 10
      AGENTIC_REQUEST_TIMEOUT   seconds, default 120
      AGENTIC_CHUNK_SIZE        default 1000
      AGENTIC_CHUNK_OVERLAP     default 200
    """
    settings = settings or RuntimeSettings.from_env()
    trace_dir = trace_dir or os.environ.get("AGENTIC_TRACE_DIR") or settings.trace_dir

    # -- components --
    trace_collector = JSONLTraceCollector(trace_dir)
    providers = default_provider_registry(timeout=settings.turn.request_timeout)
    upserter = EmbeddingUpserter(InMemoryVectorStore())

    tool_registry = ToolRegistry()
    tool_registry.register(make_search_documents_tool(upserter))

    agents = InMemoryAgentStore()
    documents = InMemoryDocumentStore()

    return AgentRuntime(
        settings=settings,
        providers=providers,
        tools=tool_registry,
        orchestrator=TurnOrchestrator(
            providers=providers,
            tool_registry=tool_registry,
            trace_collector=trace_collector,
            config=settings.turn,
        ),
        upserter=upserter,
        ingestion=DocumentIngestionQueue(
            agents=agents,
            documents=documents,
            upserter=upserter,
            chunker=DocumentChunker(settings.chunking),
        ),
        agents=agents,
        documents=documents,
    )
