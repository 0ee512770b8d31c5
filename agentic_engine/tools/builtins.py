"""Built-in tools: document search over an agent's collection, and HTTP API tools."""

from __future__ import annotations

import base64
import logging
from typing import Any

import httpx
from pydantic import BaseModel, Field

from agentic_engine.engine.models import ParameterSpec, ToolSpec
from agentic_engine.memory.upserter import DEFAULT_TOP_K, EmbeddingUpserter, format_results
from agentic_engine.tools.registry import ToolContext, ToolDef

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# search_documents: semantic search over the calling agent's documents
# ---------------------------------------------------------------------------

SEARCH_DOCUMENTS_SPEC = ToolSpec(
    id="builtin-search-documents",
    name="search_documents",
    description="Search the documents uploaded to this agent and return the most relevant passages.",
    parameters=[
        ParameterSpec(name="query", type="string", required=True, description="What to look for"),
        ParameterSpec(name="top_k", type="integer", format="int32", default=DEFAULT_TOP_K,
                      description="Maximum number of passages"),
    ],
)


def make_search_documents_tool(upserter: EmbeddingUpserter) -> ToolDef:
    """Factory: binds an *EmbeddingUpserter* into the tool handler."""

    async def _search_handler(args: dict[str, Any], context: ToolContext) -> str:
        if context.agent.embedding is None:
            return "Document search is not configured for this agent."
        hits = await upserter.search(context.agent, args["query"], top_k=args.get("top_k") or DEFAULT_TOP_K)
        return format_results(hits)

    return ToolDef(spec=SEARCH_DOCUMENTS_SPEC, handler=_search_handler)


# ---------------------------------------------------------------------------
# HTTP API tools
# ---------------------------------------------------------------------------

class ApiAuth(BaseModel):
    type: str = "none"  # none | bearer | apikey | basic
    token: str | None = None
    header: str = "X-API-Key"
    username: str | None = None
    password: str | None = None


class ApiToolConfig(BaseModel):
    endpoint: str
    method: str = "GET"
    headers: dict[str, str] = Field(default_factory=dict)
    auth: ApiAuth = Field(default_factory=ApiAuth)
    timeout: float = Field(default=30.0, gt=0)


def auth_headers(auth: ApiAuth) -> dict[str, str]:
    kind = auth.type.lower()
    if kind == "bearer" and auth.token:
        return {"Authorization": f"Bearer {auth.token}"}
    if kind == "apikey" and auth.token:
        return {auth.header: auth.token}
    if kind == "basic" and auth.username is not None:
        raw = f"{auth.username}:{auth.password or ''}".encode("utf-8")
        return {"Authorization": f"Basic {base64.b64encode(raw).decode('ascii')}"}
    return {}


def make_api_tool(
    spec: ToolSpec,
    config: ApiToolConfig,
    client: httpx.AsyncClient | None = None,
) -> ToolDef:
    """Expose an HTTP endpoint as a tool.

    GET sends the arguments as query parameters, other methods as a JSON
    body. Non-2xx responses raise; JSON responses are decoded, anything
    else is returned as text.
    """

    async def _api_handler(args: dict[str, Any], context: ToolContext) -> Any:
        method = config.method.upper()
        headers = {**config.headers, **auth_headers(config.auth)}
        params = {k: v for k, v in args.items() if v is not None}
        request_kwargs: dict[str, Any] = {"headers": headers, "timeout": config.timeout}
        if method == "GET":
            request_kwargs["params"] = params
        else:
            request_kwargs["json"] = params

        http = client or httpx.AsyncClient()
        try:
            response = await http.request(method, config.endpoint, **request_kwargs)
        finally:
            if client is None:
                await http.aclose()

        logger.info("api tool=%s %s %s -> %d", spec.name, method, config.endpoint, response.status_code)
        response.raise_for_status()
        try:
            return response.json()
        except ValueError:
            return response.text

    return ToolDef(spec=spec, handler=_api_handler, timeout=config.timeout + 5.0)
