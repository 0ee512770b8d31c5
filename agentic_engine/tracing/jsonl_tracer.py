"""Per-turn JSONL trace files."""

from __future__ import annotations

import json
import logging
import re
import time
from pathlib import Path
from typing import Any

from agentic_engine.tracing.interface import TraceCollector

logger = logging.getLogger(__name__)

_UNSAFE = re.compile(r"[^A-Za-z0-9._-]")


class JSONLTraceCollector(TraceCollector):
    """Buffers a turn's events and appends them to one file per trace id.

    Each event carries a ``seq`` number that keeps counting across flushes of
    the same trace, so a resumed turn appends after its earlier events.
    """

    def __init__(self, trace_dir: str = "./traces") -> None:
        self._dir = Path(trace_dir)
        self._dir.mkdir(parents=True, exist_ok=True)
        self._buffers: dict[str, list[dict[str, Any]]] = {}
        self._seq: dict[str, int] = {}

    def path_for(self, trace_id: str) -> Path:
        # trace ids come from callers; keep them inside trace_dir
        name = _UNSAFE.sub("_", trace_id) or "trace"
        return self._dir / f"{name}.jsonl"

    async def emit(self, trace_id: str, event_type: str, data: dict[str, Any]) -> None:
        seq = self._seq.get(trace_id, 0)
        self._seq[trace_id] = seq + 1
        self._buffers.setdefault(trace_id, []).append({
            **data,
            "ts": time.time(),
            "seq": seq,
            "trace_id": trace_id,
            "event": event_type,
        })

    async def flush(self, trace_id: str) -> None:
        entries = self._buffers.pop(trace_id, [])
        if not entries:
            return
        path = self.path_for(trace_id)
        with path.open("a", encoding="utf-8") as f:
            for entry in entries:
                f.write(json.dumps(entry, default=str) + "\n")
        logger.debug("Flushed %d trace event(s) to %s", len(entries), path)

    def pending(self, trace_id: str) -> list[dict[str, Any]]:
        """Events emitted for *trace_id* but not yet flushed."""
        return list(self._buffers.get(trace_id, []))
