from agentic_engine.engine.models import (
    Agent,
    ChatMessage,
    ChatRole,
    ChatTurnRequest,
    ContentDelta,
    Document,
    DocumentChunk,
    EmbeddingConfig,
    IngestionJob,
    IngestionStatus,
    LlmConfig,
    ParameterSpec,
    Prompt,
    SearchHit,
    StreamDone,
    StreamEvent,
    ToolCall,
    ToolCallDelta,
    ToolExecutionRecord,
    ToolSpec,
)

__all__ = [
    "Agent",
    "ChatMessage",
    "ChatRole",
    "ChatTurnRequest",
    "ContentDelta",
    "Document",
    "DocumentChunk",
    "EmbeddingConfig",
    "IngestionJob",
    "IngestionStatus",
    "LlmConfig",
    "ParameterSpec",
    "Prompt",
    "SearchHit",
    "StreamDone",
    "StreamEvent",
    "ToolCall",
    "ToolCallDelta",
    "ToolExecutionRecord",
    "ToolSpec",
]
