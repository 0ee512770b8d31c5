"""Name → adapter lookup for provider streaming adapters."""

from __future__ import annotations

import logging

import httpx

from agentic_engine.engine.llm import ChatCompletionsAdapter, LocalChatAdapter, ProviderAdapter
from agentic_engine.errors import ProviderNotFoundError

logger = logging.getLogger(__name__)


class ProviderRegistry:
    """Case-insensitive mapping of provider names to adapters."""

    def __init__(self, adapters: dict[str, ProviderAdapter] | None = None) -> None:
        self._adapters: dict[str, ProviderAdapter] = {}
        for name, adapter in (adapters or {}).items():
            self.register(name, adapter)

    def register(self, name: str, adapter: ProviderAdapter) -> None:
        self._adapters[name.lower()] = adapter
        logger.info("Registered provider %s (%s)", name.lower(), type(adapter).__name__)

    def resolve(self, name: str) -> ProviderAdapter:
        adapter = self._adapters.get((name or "").lower())
        if adapter is None:
            raise ProviderNotFoundError(name, list(self._adapters))
        return adapter

    def available_providers(self) -> set[str]:
        return set(self._adapters)


def default_provider_registry(
    *,
    timeout: float = 120.0,
    client: httpx.AsyncClient | None = None,
) -> ProviderRegistry:
    """Registry with the built-in dialects and their aliases."""
    chat_completions = ChatCompletionsAdapter(timeout=timeout, client=client)
    return ProviderRegistry({
        "openai": chat_completions,
        "azure-openai": chat_completions,
        "custom": chat_completions,
        "ollama": LocalChatAdapter(timeout=timeout, client=client),
    })
