"""Configuration models. Env-var loaders mirror ``create_executor``."""

from __future__ import annotations

import os
from typing import Literal

from pydantic import BaseModel, Field


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_float(name: str) -> float | None:
    raw = os.environ.get(name)
    return float(raw) if raw else None


class ExecutorConfig(BaseModel):
    """Per-run options for ``AgentExecutor.run``."""

    max_steps: int = Field(default=6, ge=1)
    tool_timeout: float | None = Field(default=None, gt=0)  # None => each tool's own timeout
    model_timeout: float | None = Field(default=None, gt=0)
    stream: bool = False
    fail_on_tool_error: bool = False
    # Consecutive dispatch cycles in which every call failed; None disables the check.
    max_consecutive_failures: int | None = Field(default=3, ge=1)

    @classmethod
    def from_env(cls) -> ExecutorConfig:
        data: dict = {"stream": _env_bool("AGENT_STREAM", False)}
        if os.environ.get("AGENT_MAX_STEPS"):
            data["max_steps"] = int(os.environ["AGENT_MAX_STEPS"])
        data["tool_timeout"] = _env_float("AGENT_TOOL_TIMEOUT")
        data["model_timeout"] = _env_float("AGENT_MODEL_TIMEOUT")
        if os.environ.get("AGENT_MAX_CONSECUTIVE_FAILURES"):
            data["max_consecutive_failures"] = int(os.environ["AGENT_MAX_CONSECUTIVE_FAILURES"])
        return cls(**data)


class MemoryConfig(BaseModel):
    max_tokens: int | None = Field(default=None, gt=0)
    keep_recent_turns: int = Field(default=2, ge=1)
    summarizer_timeout: float | None = Field(default=None, gt=0)

    @classmethod
    def from_env(cls) -> MemoryConfig:
        raw = os.environ.get("MEMORY_MAX_TOKENS")
        return cls(
            max_tokens=int(raw) if raw else None,
            summarizer_timeout=_env_float("MEMORY_SUMMARIZER_TIMEOUT"),
        )


class RetrieverConfig(BaseModel):
    overfetch_factor: float = Field(default=2.0, ge=1.0)
    one_chunk_per_document: bool = False
    normalize_scores: bool = False
    # What counts as "the same document" when one_chunk_per_document is set.
    dedup_key: Literal["source_id", "content_hash"] = "source_id"

    @classmethod
    def from_env(cls) -> RetrieverConfig:
        data: dict = {
            "one_chunk_per_document": _env_bool("RETRIEVER_ONE_PER_DOC", False),
            "normalize_scores": _env_bool("RETRIEVER_NORMALIZE", False),
        }
        overfetch = _env_float("RETRIEVER_OVERFETCH")
        if overfetch is not None:
            data["overfetch_factor"] = overfetch
        return cls(**data)
