"""Runtime configuration models, validated with Pydantic."""

from __future__ import annotations

import os

from pydantic import BaseModel, Field, model_validator


class ChunkingConfig(BaseModel):
    max_chunk_size: int = Field(default=1000, ge=50)
    overlap_size: int = Field(default=200, ge=0)

    @model_validator(mode="after")
    def _overlap_below_chunk(self) -> "ChunkingConfig":
        if self.overlap_size * 2 > self.max_chunk_size:
            raise ValueError("overlap_size must be at most half of max_chunk_size")
        return self


class TurnConfig(BaseModel):
    """Limits applied to a single chat turn."""

    max_tool_rounds: int = Field(default=10, ge=1)
    max_identical_rounds: int = Field(default=3, ge=1)
    parallel_tool_calls: bool = True
    request_timeout: float = Field(default=120.0, gt=0)


class RuntimeSettings(BaseModel):
    trace_dir: str = "./traces"
    log_level: str = "INFO"
    turn: TurnConfig = Field(default_factory=TurnConfig)
    chunking: ChunkingConfig = Field(default_factory=ChunkingConfig)

    @classmethod
    def from_env(cls) -> "RuntimeSettings":
        """Build settings from ``AGENTIC_*`` environment variables.

        Unset variables fall back to the model defaults.
        """
        turn: dict[str, object] = {}
        if "AGENTIC_MAX_TOOL_ROUNDS" in os.environ:
            turn["max_tool_rounds"] = int(os.environ["AGENTIC_MAX_TOOL_ROUNDS"])
        if "AGENTIC_MAX_IDENTICAL_ROUNDS" in os.environ:
            turn["max_identical_rounds"] = int(os.environ["AGENTIC_MAX_IDENTICAL_ROUNDS"])
        if "AGENTIC_REQUEST_TIMEOUT" in os.environ:
            turn["request_timeout"] = float(os.environ["AGENTIC_REQUEST_TIMEOUT"])
        if "AGENTIC_PARALLEL_TOOLS" in os.environ:
            turn["parallel_tool_calls"] = os.environ["AGENTIC_PARALLEL_TOOLS"] not in ("0", "false", "no")

        chunking: dict[str, object] = {}
        if "AGENTIC_CHUNK_SIZE" in os.environ:
            chunking["max_chunk_size"] = int(os.environ["AGENTIC_CHUNK_SIZE"])
        if "AGENTIC_CHUNK_OVERLAP" in os.environ:
            chunking["overlap_size"] = int(os.environ["AGENTIC_CHUNK_OVERLAP"])

        return cls(
            trace_dir=os.environ.get("AGENTIC_TRACE_DIR", "./traces"),
            log_level=os.environ.get("AGENTIC_LOG_LEVEL", "INFO"),
            turn=TurnConfig(**turn),
            chunking=ChunkingConfig(**chunking),
        )
