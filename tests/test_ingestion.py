"""Tests for DocumentIngestionQueue and text extraction."""

from __future__ import annotations

import asyncio

import pytest

from agentic_engine.engine.models import Agent, Document
from agentic_engine.errors import UnsupportedDocumentError
from agentic_engine.ingest.extractors import extract_text
from agentic_engine.ingest.queue import DocumentIngestionQueue, QueueClosedError
from agentic_engine.memory.upserter import collection_name


# -- helpers ----------------------------------------------------------------

def _doc(doc_id: str, text: str, **overrides) -> Document:
    defaults = dict(id=doc_id, agent_id="agent-1", name=f"{doc_id}.txt", content=text)
    defaults.update(overrides)
    return Document(**defaults)


@pytest.fixture
async def queue(agent_store, document_store, upserter, chunker):
    q = DocumentIngestionQueue(agent_store, document_store, upserter, chunker)
    await q.start()
    yield q
    await q.stop()


# -- tests ------------------------------------------------------------------

class TestIngestionQueue:
    async def test_document_is_chunked_embedded_and_marked(self, queue, document_store, vector_store):
        document_store.save(_doc("doc-1", "Pumps need oil. Valves need grease."))
        statuses = []
        queue.subscribe(statuses.append)

        queue.enqueue("doc-1", "agent-1")
        await queue.join()

        assert vector_store.count(collection_name("agent-1")) == 1
        assert (await document_store.get("doc-1")).is_ingested is True
        [status] = statuses
        assert status.document_id == "doc-1"
        assert status.agent_id == "agent-1"
        assert status.processed is True

    async def test_reingestion_replaces_old_chunks(self, queue, document_store, vector_store):
        long_text = " ".join(f"Sentence number {i} is here." for i in range(120))
        document_store.save(_doc("doc-1", long_text))
        queue.enqueue("doc-1", "agent-1")
        await queue.join()
        assert vector_store.count(collection_name("agent-1")) > 1

        document_store.save(_doc("doc-1", "Short replacement."))
        queue.enqueue("doc-1", "agent-1")
        await queue.join()

        keys = await vector_store.keys_for_document(collection_name("agent-1"), "doc-1")
        assert keys == ["doc-1_0"]

    async def test_search_after_reingestion_sees_only_new_version(self, queue, document_store, upserter, agent):
        document_store.save(_doc("doc-1", " ".join(f"Old pump manual step {i}." for i in range(80))))
        queue.enqueue("doc-1", "agent-1")
        await queue.join()
        assert any("Old pump" in h.chunk.text for h in await upserter.search(agent, "Old pump manual step"))

        document_store.save(_doc("doc-1", "New valve guide. Grease valves weekly."))
        queue.enqueue("doc-1", "agent-1")
        await queue.join()

        hits = await upserter.search(agent, "Old pump manual step", top_k=50)
        assert hits
        assert all("Old pump" not in h.chunk.text for h in hits)
        assert all(h.chunk.document_id == "doc-1" for h in hits)

    async def test_agent_without_embedding_config_is_skipped(
        self, queue, agent_store, document_store, vector_store
    ):
        agent_store.save(Agent(id="plain"))
        document_store.save(_doc("doc-9", "Anything.", agent_id="plain"))

        queue.enqueue("doc-9", "plain")
        await queue.join()

        assert vector_store.count(collection_name("plain")) == 0
        assert (await document_store.get("doc-9")).is_ingested is False

    async def test_failure_does_not_stop_the_worker(self, queue, document_store, vector_store):
        document_store.save(_doc("bad", None, doc_type="pptx", data=b"\x00\x01"))
        document_store.save(_doc("good", "Fine text."))

        queue.enqueue("bad", "agent-1")
        queue.enqueue("missing-doc", "agent-1")
        queue.enqueue("good", "no-such-agent")
        queue.enqueue("good", "agent-1")
        await queue.join()

        assert queue.is_running
        assert await vector_store.keys_for_document(collection_name("agent-1"), "good") == ["good_0"]
        assert (await document_store.get("bad")).is_ingested is False

    async def test_reprocess_all_documents_of_agent(self, queue, document_store, vector_store):
        for i in range(3):
            document_store.save(_doc(f"doc-{i}", f"Document {i} body."))
        document_store.save(_doc("elsewhere", "Other agent.", agent_id="agent-2"))
        statuses = []

        async def _listener(status):
            statuses.append(status.document_id)

        queue.subscribe(_listener)
        queue.enqueue(None, "agent-1")
        await queue.join()

        assert sorted(statuses) == ["doc-0", "doc-1", "doc-2"]
        assert vector_store.count(collection_name("agent-1")) == 3

    async def test_stop_drains_and_refuses_new_jobs(self, agent_store, document_store, upserter, vector_store):
        q = DocumentIngestionQueue(agent_store, document_store, upserter)
        for i in range(5):
            document_store.save(_doc(f"doc-{i}", f"Body {i}."))
            q.enqueue(f"doc-{i}", "agent-1")
        assert q.queue_depth == 5
        assert not q.is_running

        await q.start()
        await q.stop()

        assert not q.is_running
        assert q.queue_depth == 0
        assert vector_store.count(collection_name("agent-1")) == 5
        with pytest.raises(QueueClosedError):
            q.enqueue("doc-0", "agent-1")

    async def test_producers_from_many_tasks(self, queue, document_store, vector_store):
        for i in range(10):
            document_store.save(_doc(f"doc-{i}", f"Body {i}."))

        async def _produce(i: int):
            await asyncio.sleep(0)
            queue.enqueue(f"doc-{i}", "agent-1")

        await asyncio.gather(*(_produce(i) for i in range(10)))
        await queue.join()

        assert vector_store.count(collection_name("agent-1")) == 10


class TestExtractors:
    def test_inline_content_wins(self):
        doc = Document(agent_id="a", name="n", doc_type="pdf", content="inline", data=b"%PDF")
        assert extract_text(doc) == "inline"

    def test_text_bytes_decoded(self):
        doc = Document(agent_id="a", name="n.md", doc_type=".MD", data="héllo".encode("utf-8"))
        assert extract_text(doc) == "héllo"

    def test_unsupported_type(self):
        doc = Document(agent_id="a", name="n", doc_type="docx", data=b"PK")
        with pytest.raises(UnsupportedDocumentError):
            extract_text(doc)
