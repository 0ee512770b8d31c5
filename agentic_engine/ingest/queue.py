"""Background document ingestion: a single consumer over an unbounded job queue."""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Awaitable, Callable, Union

from agentic_engine.engine.models import Agent, Document, IngestionJob, IngestionStatus, utcnow
from agentic_engine.ingest.chunker import DocumentChunker
from agentic_engine.ingest.extractors import extract_text
from agentic_engine.ingest.store import AgentStore, DocumentStore
from agentic_engine.memory.upserter import EmbeddingUpserter

logger = logging.getLogger(__name__)

StatusListener = Callable[[IngestionStatus], Union[Awaitable[None], None]]


class QueueClosedError(RuntimeError):
    pass


class DocumentIngestionQueue:
    """Many producers call ``enqueue``; one worker task processes jobs in order.

    A failing job is logged and dropped; the worker keeps going. ``stop()``
    refuses new jobs, lets the worker drain what is already queued, and
    returns once it has exited.
    """

    def __init__(
        self,
        agents: AgentStore,
        documents: DocumentStore,
        upserter: EmbeddingUpserter,
        chunker: DocumentChunker | None = None,
    ) -> None:
        self._agents = agents
        self._documents = documents
        self._upserter = upserter
        self._chunker = chunker or DocumentChunker()
        self._queue: asyncio.Queue[IngestionJob | None] = asyncio.Queue()
        self._worker: asyncio.Task[None] | None = None
        self._accepting = True
        self._listeners: list[StatusListener] = []

    # -- lifecycle ----------------------------------------------------------

    async def start(self) -> None:
        if self.is_running:
            return
        self._accepting = True
        self._worker = asyncio.create_task(self._consume(), name="document-ingestion")
        logger.info("Document ingestion worker started")

    async def stop(self) -> None:
        self._accepting = False
        if self._worker is None:
            return
        if not self._worker.done():
            self._queue.put_nowait(None)
        await self._worker
        self._worker = None
        logger.info("Document ingestion worker stopped")

    @property
    def is_running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    @property
    def queue_depth(self) -> int:
        return self._queue.qsize()

    def subscribe(self, listener: StatusListener) -> None:
        self._listeners.append(listener)

    # -- producers ----------------------------------------------------------

    def enqueue(self, document_id: str | None, agent_id: str) -> IngestionJob:
        if not self._accepting:
            raise QueueClosedError("Document ingestion queue is shutting down")
        job = IngestionJob(agent_id=agent_id, document_id=document_id)
        self._queue.put_nowait(job)
        logger.info(
            "Enqueued ingestion job document=%s agent=%s (depth=%d)",
            document_id or "*", agent_id, self._queue.qsize(),
        )
        return job

    async def join(self) -> None:
        """Wait until every job enqueued so far has been processed."""
        await self._queue.join()

    # -- consumer -----------------------------------------------------------

    async def _consume(self) -> None:
        while True:
            job = await self._queue.get()
            try:
                if job is None:
                    return
                await self.process(job)
            except Exception:
                logger.exception("Ingestion job failed: document=%s agent=%s", job.document_id, job.agent_id)
            finally:
                self._queue.task_done()

    async def process(self, job: IngestionJob) -> None:
        agent = await self._agents.get(job.agent_id)
        if agent is None:
            logger.warning("Dropping ingestion job: agent %s not found", job.agent_id)
            return
        if agent.embedding is None:
            logger.info("Skipping ingestion for agent %s: no embedding configuration", agent.id)
            return

        if job.document_id is not None:
            document = await self._documents.get(job.document_id)
            if document is None:
                logger.warning("Dropping ingestion job: document %s not found", job.document_id)
                return
            await self._process_document(agent, document)
            return

        documents = await self._documents.list_for_agent(agent.id)
        logger.info("Reprocessing %d document(s) for agent %s", len(documents), agent.id)
        results = await asyncio.gather(
            *(self._process_document(agent, d) for d in documents),
            return_exceptions=True,
        )
        for document, result in zip(documents, results):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, Exception):
                logger.error(
                    "Reprocessing failed for document %s of agent %s: %r",
                    document.id, agent.id, result,
                )

    async def _process_document(self, agent: Agent, document: Document) -> None:
        text = await asyncio.to_thread(extract_text, document)
        chunks = self._chunker.chunk(text)

        await self._upserter.delete_by_document(agent, document.id)
        await self._upserter.upsert(agent, document, chunks)

        updated = await self._documents.mark_ingested(document.id)
        status = IngestionStatus(
            document_id=document.id,
            agent_id=agent.id,
            processed=True,
            updated_at=updated.updated_at if updated is not None else utcnow(),
        )
        logger.info("Ingested document %s (%d chunks) for agent %s", document.id, len(chunks), agent.id)
        await self._notify(status)

    async def _notify(self, status: IngestionStatus) -> None:
        for listener in list(self._listeners):
            try:
                outcome = listener(status)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception:
                logger.exception("Ingestion status listener failed for document %s", status.document_id)
