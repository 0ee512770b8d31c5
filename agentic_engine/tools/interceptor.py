"""Execution recording around every tool invocation."""

from __future__ import annotations

import asyncio
import json
import logging
import threading
from typing import Any

from pydantic import BaseModel

from agentic_engine.engine.models import ToolExecutionRecord, ToolSpec, utcnow
from agentic_engine.tools.registry import ToolContext, ToolRegistry
from agentic_engine.tracing.interface import TraceCollector

logger = logging.getLogger(__name__)


def serialize_result(value: Any) -> str:
    """Strings pass through verbatim; anything else becomes JSON."""
    if isinstance(value, str):
        return value
    if isinstance(value, BaseModel):
        return value.model_dump_json()
    return json.dumps(value, default=str)


def serialize_parameters(arguments: dict[str, Any]) -> str:
    try:
        return json.dumps(arguments)
    except (TypeError, ValueError):
        pass
    safe: dict[str, Any] = {}
    for key, value in arguments.items():
        try:
            json.dumps(value)
            safe[key] = value
        except (TypeError, ValueError):
            safe[key] = f"<unserializable {type(value).__name__}>"
    return json.dumps(safe)


class ToolInvocationRecorder:
    """Append-only, lock-protected list of execution records for one turn."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._records: list[ToolExecutionRecord] = []

    def add(self, record: ToolExecutionRecord) -> None:
        with self._lock:
            self._records.append(record)

    @property
    def records(self) -> list[ToolExecutionRecord]:
        with self._lock:
            return list(self._records)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


class ToolInterceptor:
    """Runs a tool through the registry and records exactly one record per call.

    Errors, cancellation included, are recorded and then re-raised.
    """

    def __init__(self, registry: ToolRegistry, trace_collector: TraceCollector | None = None) -> None:
        self._registry = registry
        self._trace = trace_collector

    async def invoke(
        self,
        spec: ToolSpec,
        arguments: dict[str, Any],
        context: ToolContext,
        recorder: ToolInvocationRecorder,
    ) -> Any:
        record = ToolExecutionRecord(
            tool_id=spec.id,
            tool_name=spec.name,
            session_id=context.session_id,
            agent_id=context.agent.id,
            parameters=serialize_parameters(arguments),
        )
        try:
            result = await self._registry.execute(spec.name, arguments, context, self._trace)
            record.result = serialize_result(result)
            record.success = True
            return result
        except (Exception, asyncio.CancelledError) as exc:
            record.success = False
            record.error = f"{type(exc).__name__}: {exc}"
            raise
        finally:
            record.ended_at = utcnow()
            recorder.add(record)
            logger.debug("Recorded tool execution %s (%s) success=%s", record.id, spec.name, record.success)
