"""Core data models: no internal dependencies, only Pydantic + stdlib."""

from __future__ import annotations

import json
import time
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

from agentic_engine.errors import ToolArgumentsError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Agent configuration (owned by the host application)
# ---------------------------------------------------------------------------

class LlmConfig(BaseModel):
    """Connection and generation settings for one agent's model backend."""
    provider: str = "openai"
    base_url: str = "https://api.openai.com/v1"
    api_key: str | None = None
    model: str = "gpt-4o-mini"
    max_tokens: int | None = None
    temperature: float | None = None
    top_p: float | None = None
    frequency_penalty: float | None = None
    presence_penalty: float | None = None


class EmbeddingConfig(BaseModel):
    backend: str = "hashing"  # hashing | openai
    model: str = "text-embedding-3-small"
    api_key: str | None = None
    base_url: str | None = None
    dimension: int = Field(default=256, ge=8)


class Agent(BaseModel):
    id: str
    name: str = ""
    llm: LlmConfig = Field(default_factory=LlmConfig)
    embedding: EmbeddingConfig | None = None


class Prompt(BaseModel):
    id: str = ""
    content: str


# ---------------------------------------------------------------------------
# Tool definitions
# ---------------------------------------------------------------------------

class ParameterSpec(BaseModel):
    name: str
    type: str = "string"  # string | integer | number | boolean | array | object
    required: bool = False
    default: Any = None
    description: str = ""
    format: str | None = None  # int32 | int64 | float | double


class ToolSpec(BaseModel):
    """A tool as assigned to an agent: what the model sees in its schema."""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str
    description: str = ""
    parameters: list[ParameterSpec] = Field(default_factory=list)
    active: bool = True


# ---------------------------------------------------------------------------
# Chat turn
# ---------------------------------------------------------------------------

class ChatRole(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class ChatMessage(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: ChatRole
    content: str


class ChatTurnRequest(BaseModel):
    """Everything one turn needs. Follow-up rounds derive copies, never mutate."""
    model_config = ConfigDict(frozen=True)

    agent: Agent
    prompt: Prompt | None = None
    history: tuple[ChatMessage, ...] = ()
    message: str
    session_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    tools: tuple[ToolSpec, ...] = ()
    trace_id: str = Field(default_factory=lambda: str(uuid.uuid4()))

    def messages(self) -> list[dict[str, str]]:
        """Role-tagged message list: system prompt, history, latest user message."""
        out: list[dict[str, str]] = []
        if self.prompt is not None and self.prompt.content:
            out.append({"role": ChatRole.SYSTEM.value, "content": self.prompt.content})
        out.extend({"role": m.role.value, "content": m.content} for m in self.history)
        out.append({"role": ChatRole.USER.value, "content": self.message})
        return out

    def active_tools(self) -> list[ToolSpec]:
        return [t for t in self.tools if t.active]

    def find_tool(self, name: str) -> ToolSpec | None:
        wanted = name.lower()
        return next((t for t in self.active_tools() if t.name.lower() == wanted), None)

    def with_followup(self, message: str) -> ChatTurnRequest:
        """Next round: the current user message moves into history."""
        history = self.history + (ChatMessage(role=ChatRole.USER, content=self.message),)
        return self.model_copy(update={"history": history, "message": message})


# ---------------------------------------------------------------------------
# Provider stream events
# ---------------------------------------------------------------------------

class ContentDelta(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["content"] = "content"
    text: str
    # Set by adapters for transport / API failures; such a delta ends the turn.
    error: bool = False


class ToolCallDelta(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["tool_call"] = "tool_call"
    index: int = 0
    id: str | None = None
    name: str | None = None
    arguments: str = ""


class StreamDone(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["done"] = "done"


StreamEvent = Annotated[
    Union[ContentDelta, ToolCallDelta, StreamDone],
    Field(discriminator="kind"),
]


class ToolCall(BaseModel):
    """A fully assembled tool call requested by the model."""
    id: str
    name: str
    arguments: str = ""

    def parse_arguments(self) -> dict[str, Any]:
        raw = self.arguments.strip()
        if not raw:
            return {}
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ToolArgumentsError(
                f"Invalid JSON arguments for tool '{self.name}': {exc.msg}"
            ) from exc
        if not isinstance(parsed, dict):
            raise ToolArgumentsError(
                f"Arguments for tool '{self.name}' must be a JSON object, got {type(parsed).__name__}"
            )
        return parsed


class ToolExecutionRecord(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    tool_id: str
    tool_name: str
    session_id: str
    agent_id: str
    parameters: str = "{}"
    result: str | None = None
    error: str | None = None
    success: bool = False
    started_at: datetime = Field(default_factory=utcnow)
    ended_at: datetime | None = None


# ---------------------------------------------------------------------------
# Documents & retrieval
# ---------------------------------------------------------------------------

class Document(BaseModel):
    """An uploaded document linked to an agent."""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    agent_id: str
    name: str
    doc_type: str = "txt"
    content: str | None = None
    data: bytes | None = None
    is_ingested: bool = False
    updated_at: datetime = Field(default_factory=utcnow)


class DocumentChunk(BaseModel):
    model_config = ConfigDict(frozen=True)

    key: str
    document_id: str
    text: str
    source_name: str
    source_link: str

    @classmethod
    def for_document(cls, document: Document, ordinal: int, text: str) -> DocumentChunk:
        return cls(
            key=f"{document.id}_{ordinal}",
            document_id=document.id,
            text=text,
            source_name=document.name,
            source_link=f"/documents/{document.id}",
        )


class SearchHit(BaseModel):
    chunk: DocumentChunk
    score: float


# ---------------------------------------------------------------------------
# Ingestion
# ---------------------------------------------------------------------------

class IngestionJob(BaseModel):
    model_config = ConfigDict(frozen=True)

    agent_id: str
    document_id: str | None = None  # None → reprocess every document of the agent
    enqueued_at: float = Field(default_factory=time.time)


class IngestionStatus(BaseModel):
    document_id: str
    agent_id: str
    processed: bool = True
    updated_at: datetime = Field(default_factory=utcnow)
