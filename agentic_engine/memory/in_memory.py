"""In-memory vector store with cosine ranking: stand-in for a vector database."""

from __future__ import annotations

from agentic_engine.engine.models import SearchHit
from agentic_engine.memory.embeddings import cosine_similarity
from agentic_engine.memory.interface import VectorRecord, VectorStore


class InMemoryVectorStore(VectorStore):
    """Collections of records keyed by chunk key, indexed by document id."""

    def __init__(self) -> None:
        self._collections: dict[str, dict[str, VectorRecord]] = {}
        self._by_document: dict[str, dict[str, set[str]]] = {}

    async def ensure_collection(self, collection: str) -> None:
        self._collections.setdefault(collection, {})
        self._by_document.setdefault(collection, {})

    async def upsert(self, collection: str, records: list[VectorRecord]) -> None:
        await self.ensure_collection(collection)
        store = self._collections[collection]
        index = self._by_document[collection]
        for record in records:
            store[record.chunk.key] = record
            index.setdefault(record.chunk.document_id, set()).add(record.chunk.key)

    async def search(self, collection: str, vector: list[float], top_k: int) -> list[SearchHit]:
        records = self._collections.get(collection, {}).values()
        ranked = sorted(
            (SearchHit(chunk=r.chunk, score=round(cosine_similarity(vector, r.vector), 6)) for r in records),
            key=lambda hit: hit.score,
            reverse=True,
        )
        return ranked[:top_k]

    async def delete(self, collection: str, keys: list[str]) -> None:
        store = self._collections.get(collection, {})
        index = self._by_document.get(collection, {})
        for key in keys:
            record = store.pop(key, None)
            if record is None:
                continue
            keys_for_doc = index.get(record.chunk.document_id)
            if keys_for_doc is not None:
                keys_for_doc.discard(key)
                if not keys_for_doc:
                    del index[record.chunk.document_id]

    async def keys_for_document(self, collection: str, document_id: str) -> list[str]:
        return sorted(self._by_document.get(collection, {}).get(document_id, set()))

    def count(self, collection: str) -> int:
        return len(self._collections.get(collection, {}))
