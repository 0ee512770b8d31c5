"""Tool registry: parameter schemas, argument validation, timeout, retry, and tracing."""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, create_model

from agentic_engine.engine.models import Agent, ParameterSpec, ToolSpec
from agentic_engine.errors import ToolArgumentsError, ToolNotFoundError
from agentic_engine.tracing.interface import TraceCollector

logger = logging.getLogger(__name__)

JSON_TYPES = {"string", "number", "integer", "boolean", "array", "object"}

_PY_TYPES: dict[str, Any] = {
    "string": str,
    "number": float,
    "integer": int,
    "boolean": bool,
    "array": list,
    "object": dict,
}
_FORMAT_TYPES: dict[str, Any] = {
    "int32": int,
    "int64": int,
    "float": float,
    "double": float,
}


@dataclass(frozen=True)
class ToolContext:
    """Who is calling: passed to every handler next to its arguments."""

    agent: Agent
    session_id: str
    trace_id: str


ToolHandler = Callable[[dict[str, Any], ToolContext], Union[Awaitable[Any], Any]]


# -- schemas ------------------------------------------------------------------

def json_type(param: ParameterSpec) -> str:
    kind = (param.type or "").lower()
    return kind if kind in JSON_TYPES else "string"


def build_function_schema(spec: ToolSpec) -> dict[str, Any]:
    """OpenAI function-calling schema for one tool."""
    properties: dict[str, Any] = {}
    required: list[str] = []
    for param in spec.parameters:
        prop: dict[str, Any] = {"type": json_type(param)}
        if param.description:
            prop["description"] = param.description
        if param.format:
            prop["format"] = param.format
        if param.default is not None:
            prop["default"] = param.default
        if prop["type"] == "array":
            prop["items"] = {}
        properties[param.name] = prop
        if param.required:
            required.append(param.name)

    return {
        "type": "function",
        "function": {
            "name": spec.name,
            "description": spec.description,
            "parameters": {
                "type": "object",
                "properties": properties,
                "required": required,
            },
        },
    }


def build_input_model(spec: ToolSpec) -> type[BaseModel]:
    """Pydantic model validating (and coercing) a tool's arguments."""
    fields: dict[str, Any] = {}
    for position, param in enumerate(spec.parameters):
        py_type = _FORMAT_TYPES.get((param.format or "").lower()) or _PY_TYPES[json_type(param)]
        if param.required:
            fields[f"p{position}"] = (py_type, Field(alias=param.name))
        else:
            fields[f"p{position}"] = (py_type | None, Field(default=param.default, alias=param.name))
    return create_model(
        f"{spec.name.title().replace('_', '')}Input",
        __config__=ConfigDict(extra="allow", populate_by_name=False),
        **fields,
    )


# -- registry -----------------------------------------------------------------

@dataclass
class ToolDef:
    """Registration record binding a tool definition to its implementation."""

    spec: ToolSpec
    handler: ToolHandler
    timeout: float = 30.0
    max_retries: int = 0

    def __post_init__(self) -> None:
        self.input_model = build_input_model(self.spec)

    @property
    def name(self) -> str:
        return self.spec.name


class ToolRegistry:
    """Central tool store with validation, timeout/retry, and tracing hooks."""

    def __init__(self) -> None:
        self._tools: dict[str, ToolDef] = {}

    def register(self, tool_def: ToolDef) -> None:
        self._tools[tool_def.name.lower()] = tool_def
        logger.info("Registered tool %s (timeout=%.1fs)", tool_def.name, tool_def.timeout)

    def get(self, name: str) -> ToolDef | None:
        return self._tools.get(name.lower())

    def specs(self) -> list[ToolSpec]:
        return [t.spec for t in self._tools.values()]

    def openai_schemas(self, specs: list[ToolSpec] | None = None) -> list[dict[str, Any]]:
        """Schemas for the given active specs, or for every registered tool."""
        chosen = specs if specs is not None else self.specs()
        return [build_function_schema(s) for s in chosen if s.active]

    # -- execution ----------------------------------------------------------

    async def execute(
        self,
        name: str,
        arguments: dict[str, Any],
        context: ToolContext,
        trace_collector: TraceCollector | None = None,
    ) -> Any:
        tool = self.get(name)
        if tool is None:
            raise ToolNotFoundError(name)

        try:
            validated = tool.input_model.model_validate(arguments)
        except ValidationError as exc:
            raise ToolArgumentsError(f"Invalid arguments for tool '{tool.name}': {exc}") from exc
        call_args = validated.model_dump(by_alias=True)

        last_exc: Exception | None = None
        for attempt in range(1, tool.max_retries + 2):
            try:
                t0 = time.time()
                raw = await asyncio.wait_for(self._invoke(tool, call_args, context), timeout=tool.timeout)
                latency = time.time() - t0

                logger.info("tool=%s attempt=%d latency=%.3fs OK", tool.name, attempt, latency)
                if trace_collector is not None:
                    await trace_collector.emit(context.trace_id, "tool_exec", {
                        "tool": tool.name,
                        "attempt": attempt,
                        "latency_ms": round(latency * 1000, 2),
                        "status": "ok",
                    })
                return raw

            except Exception as exc:
                last_exc = exc
                logger.warning("tool=%s attempt=%d error=%r", tool.name, attempt, exc)
                if trace_collector is not None:
                    await trace_collector.emit(context.trace_id, "tool_exec", {
                        "tool": tool.name,
                        "attempt": attempt,
                        "status": "error",
                        "error": str(exc),
                    })

        raise last_exc  # type: ignore[misc]

    @staticmethod
    async def _invoke(tool: ToolDef, call_args: dict[str, Any], context: ToolContext) -> Any:
        if inspect.iscoroutinefunction(tool.handler):
            return await tool.handler(call_args, context)
        result = await asyncio.to_thread(tool.handler, call_args, context)
        if inspect.isawaitable(result):
            return await result
        return result
