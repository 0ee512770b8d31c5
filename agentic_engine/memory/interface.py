"""Vector store interface: depends only on engine.models."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

from agentic_engine.engine.models import DocumentChunk, SearchHit


@dataclass(frozen=True)
class VectorRecord:
    chunk: DocumentChunk
    vector: list[float]


class VectorStore(ABC):
    """Async collection-scoped vector storage.

    Swap to a real vector database by implementing this ABC.
    """

    @abstractmethod
    async def ensure_collection(self, collection: str) -> None: ...

    @abstractmethod
    async def upsert(self, collection: str, records: list[VectorRecord]) -> None: ...

    @abstractmethod
    async def search(self, collection: str, vector: list[float], top_k: int) -> list[SearchHit]: ...

    @abstractmethod
    async def delete(self, collection: str, keys: list[str]) -> None: ...

    @abstractmethod
    async def keys_for_document(self, collection: str, document_id: str) -> list[str]: ...
