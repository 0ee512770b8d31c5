"""Embedding backends: ABC, OpenAI implementation, and a deterministic hashing baseline."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from hashlib import blake2b
from math import sqrt

from agentic_engine.engine.models import EmbeddingConfig
from agentic_engine.errors import ConfigurationError

logger = logging.getLogger(__name__)


class EmbeddingBackend(ABC):
    @abstractmethod
    async def embed(self, texts: list[str]) -> list[list[float]]: ...

    async def embed_query(self, text: str) -> list[float]:
        return (await self.embed([text]))[0]


class OpenAIEmbeddingBackend(EmbeddingBackend):
    def __init__(self, config: EmbeddingConfig) -> None:
        # Late import so the rest of the package works without openai installed
        from openai import AsyncOpenAI

        self._client = AsyncOpenAI(api_key=config.api_key, base_url=config.base_url)
        self._model = config.model

    async def embed(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []
        response = await self._client.embeddings.create(model=self._model, input=texts)
        return [item.embedding for item in sorted(response.data, key=lambda d: d.index)]


class HashingEmbeddingBackend(EmbeddingBackend):
    """Deterministic signed token hashing, no model calls. For tests and local runs."""

    def __init__(self, dimension: int = 256) -> None:
        self.dimension = dimension

    async def embed(self, texts: list[str]) -> list[list[float]]:
        return [self._embed(text) for text in texts]

    def _embed(self, text: str) -> list[float]:
        vector = [0.0] * self.dimension
        for token in text.lower().split():
            digest = blake2b(token.strip(".,!?;:\"'()").encode("utf-8"), digest_size=8).digest()
            idx = int.from_bytes(digest[:4], "little") % self.dimension
            vector[idx] += -1.0 if digest[4] % 2 else 1.0

        norm = sqrt(sum(v * v for v in vector))
        if norm == 0:
            return vector
        return [v / norm for v in vector]


def create_embedding_backend(config: EmbeddingConfig) -> EmbeddingBackend:
    backend = config.backend.lower()
    if backend == "hashing":
        return HashingEmbeddingBackend(dimension=config.dimension)
    if backend == "openai":
        return OpenAIEmbeddingBackend(config)
    raise ConfigurationError(f"Unknown embedding backend '{config.backend}'")


def cosine_similarity(a: list[float], b: list[float]) -> float:
    if not a or not b or len(a) != len(b):
        return 0.0
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = sqrt(sum(x * x for x in a))
    norm_b = sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (norm_a * norm_b)
