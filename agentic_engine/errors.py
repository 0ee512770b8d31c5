"""Exception hierarchy shared by every layer of the runtime."""

from __future__ import annotations


class AgenticEngineError(Exception):
    """Base class for errors raised by agentic_engine."""


class ConfigurationError(AgenticEngineError, ValueError):
    """An agent or runtime setting cannot be used as configured."""


class ProviderNotFoundError(ConfigurationError):
    def __init__(self, provider: str, available: list[str]) -> None:
        self.provider = provider
        self.available = sorted(available)
        super().__init__(
            f"No LLM provider adapter found for provider '{provider}'. "
            f"Available providers: {', '.join(self.available) or '(none)'}"
        )


class MissingCredentialError(ConfigurationError):
    def __init__(self, provider: str) -> None:
        self.provider = provider
        super().__init__(f"Provider '{provider}' requires an API key but none is configured")


class ToolNotFoundError(AgenticEngineError, ValueError):
    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Tool '{name}' not found or not assigned to this agent")


class ToolArgumentsError(AgenticEngineError, ValueError):
    """Tool-call arguments could not be decoded or validated."""


class UnsupportedDocumentError(AgenticEngineError, ValueError):
    def __init__(self, doc_type: str) -> None:
        self.doc_type = doc_type
        super().__init__(f"Text extraction is not supported for document type '{doc_type}'")
