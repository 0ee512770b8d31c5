"""EmbeddingUpserter: embeds document chunks into an agent's vector collection."""

from __future__ import annotations

import logging
from typing import Callable

from agentic_engine.engine.models import Agent, Document, DocumentChunk, EmbeddingConfig, SearchHit
from agentic_engine.errors import ConfigurationError
from agentic_engine.memory.embeddings import EmbeddingBackend, create_embedding_backend
from agentic_engine.memory.interface import VectorRecord, VectorStore

logger = logging.getLogger(__name__)

DEFAULT_TOP_K = 10


def collection_name(agent_id: str) -> str:
    return f"agent_{agent_id}"


def format_results(hits: list[SearchHit]) -> str:
    """Markdown block handed back to the model by the document-search tool."""
    if not hits:
        return "No relevant documents found."
    lines = ["## Search Results", ""]
    for hit in hits:
        lines.extend([
            f"**Source:** {hit.chunk.source_name}",
            f"**Score:** {hit.score:.3f}",
            f"**Content:** {hit.chunk.text}",
            f"**Link:** {hit.chunk.source_link}",
            "",
            "---",
            "",
        ])
    return "\n".join(lines).rstrip() + "\n"


class EmbeddingUpserter:
    def __init__(
        self,
        store: VectorStore,
        backend_factory: Callable[[EmbeddingConfig], EmbeddingBackend] = create_embedding_backend,
    ) -> None:
        self._store = store
        self._backend_factory = backend_factory
        self._backends: dict[str, EmbeddingBackend] = {}

    def backend_for(self, agent: Agent) -> EmbeddingBackend:
        if agent.embedding is None:
            raise ConfigurationError(f"Agent '{agent.id}' has no embedding configuration")
        backend = self._backends.get(agent.id)
        if backend is None:
            backend = self._backend_factory(agent.embedding)
            self._backends[agent.id] = backend
        return backend

    def forget(self, agent_id: str) -> None:
        """Drop the cached backend, e.g. after the agent's embedding config changed."""
        self._backends.pop(agent_id, None)

    async def upsert(self, agent: Agent, document: Document, chunks: list[str]) -> list[DocumentChunk]:
        backend = self.backend_for(agent)
        collection = collection_name(agent.id)
        await self._store.ensure_collection(collection)

        records = [DocumentChunk.for_document(document, i, text) for i, text in enumerate(chunks)]
        if not records:
            return []
        vectors = await backend.embed([r.text for r in records])
        await self._store.upsert(
            collection,
            [VectorRecord(chunk=c, vector=v) for c, v in zip(records, vectors)],
        )
        logger.info("Upserted %d chunk(s) for document %s into %s", len(records), document.id, collection)
        return records

    async def search(self, agent: Agent, query: str, top_k: int = DEFAULT_TOP_K) -> list[SearchHit]:
        backend = self.backend_for(agent)
        vector = await backend.embed_query(query)
        return await self._store.search(collection_name(agent.id), vector, top_k)

    async def delete_by_document(self, agent: Agent, document_id: str) -> int:
        collection = collection_name(agent.id)
        keys = await self._store.keys_for_document(collection, document_id)
        if keys:
            await self._store.delete(collection, keys)
            logger.info("Deleted %d chunk(s) of document %s from %s", len(keys), document_id, collection)
        return len(keys)
