"""Sentence-packing chunker with character overlap between neighbouring chunks."""

from __future__ import annotations

import re

from agentic_engine.config import ChunkingConfig

_SENTENCE_SPLIT = re.compile(r"[.!?]")


class DocumentChunker:
    """Packs sentences into chunks of at most ``max_chunk_size`` characters.

    Text is split on ``.``, ``!`` and ``?``; every sentence is re-emitted
    with a ``". "`` terminator. When the next sentence would overflow the
    buffer, the buffer is flushed and the next chunk starts with the last
    ``overlap_size`` characters of the flushed one. Sentences too long to
    fit are split on whitespace first (characters, for a single huge word).
    """

    def __init__(self, config: ChunkingConfig | None = None) -> None:
        self.config = config or ChunkingConfig()

    @property
    def _piece_limit(self) -> int:
        # Seed (overlap + space) plus piece plus ". " stays within the chunk size.
        return max(1, self.config.max_chunk_size - self.config.overlap_size - 3)

    def chunk(self, text: str) -> list[str]:
        if not text or not text.strip():
            return []

        max_size = self.config.max_chunk_size
        overlap = self.config.overlap_size

        chunks: list[str] = []
        buffer = ""
        seed_len = 0
        for sentence in self._sentences(text):
            if len(buffer) > seed_len and len(buffer) + len(sentence) + 2 > max_size:
                flushed = buffer.strip()
                chunks.append(flushed)
                buffer = flushed[-overlap:] + " " if overlap and len(flushed) > overlap else ""
                seed_len = len(buffer)
            buffer += sentence + ". "

        if len(buffer) > seed_len and buffer.strip():
            chunks.append(buffer.strip())
        return [c for c in chunks if c]

    def _sentences(self, text: str) -> list[str]:
        pieces: list[str] = []
        for raw in _SENTENCE_SPLIT.split(text):
            sentence = raw.strip()
            if sentence:
                pieces.extend(self._split_long(sentence))
        return pieces

    def _split_long(self, sentence: str) -> list[str]:
        limit = self._piece_limit
        if len(sentence) <= limit:
            return [sentence]

        parts: list[str] = []
        current = ""
        for word in sentence.split():
            while len(word) > limit:
                if current:
                    parts.append(current)
                    current = ""
                parts.append(word[:limit])
                word = word[limit:]
            if not word:
                continue
            if current and len(current) + 1 + len(word) > limit:
                parts.append(current)
                current = word
            else:
                current = f"{current} {word}" if current else word
        if current:
            parts.append(current)
        return parts
