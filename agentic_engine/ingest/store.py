"""Agent and document lookups the ingestion pipeline depends on."""

from __future__ import annotations

from abc import ABC, abstractmethod

from agentic_engine.engine.models import Agent, Document, utcnow


class AgentStore(ABC):
    @abstractmethod
    async def get(self, agent_id: str) -> Agent | None: ...


class DocumentStore(ABC):
    @abstractmethod
    async def get(self, document_id: str) -> Document | None: ...

    @abstractmethod
    async def list_for_agent(self, agent_id: str) -> list[Document]: ...

    @abstractmethod
    async def mark_ingested(self, document_id: str) -> Document | None: ...


class InMemoryAgentStore(AgentStore):
    def __init__(self, agents: list[Agent] | None = None) -> None:
        self._agents = {a.id: a for a in agents or []}

    def save(self, agent: Agent) -> None:
        self._agents[agent.id] = agent

    async def get(self, agent_id: str) -> Agent | None:
        return self._agents.get(agent_id)


class InMemoryDocumentStore(DocumentStore):
    def __init__(self, documents: list[Document] | None = None) -> None:
        self._docs = {d.id: d for d in documents or []}

    def save(self, document: Document) -> None:
        self._docs[document.id] = document

    async def get(self, document_id: str) -> Document | None:
        return self._docs.get(document_id)

    async def list_for_agent(self, agent_id: str) -> list[Document]:
        return [d for d in self._docs.values() if d.agent_id == agent_id]

    async def mark_ingested(self, document_id: str) -> Document | None:
        doc = self._docs.get(document_id)
        if doc is None:
            return None
        updated = doc.model_copy(update={"is_ingested": True, "updated_at": utcnow()})
        self._docs[document_id] = updated
        return updated
