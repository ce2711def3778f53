"""Shared fixtures for agent_chain tests."""

from __future__ import annotations

import asyncio

import pytest
from pydantic import BaseModel

from agent_chain.engine.models import Document
from agent_chain.memory.buffer import ConversationMemory
from agent_chain.retrieval.chunking import fixed_size_splitter
from agent_chain.retrieval.in_memory import HashingEmbedder, InMemoryVectorStore
from agent_chain.retrieval.retriever import Retriever
from agent_chain.tools.builtins import CALCULATOR_TOOL
from agent_chain.tools.registry import ToolDef, ToolRegistry
from agent_chain.tracing.jsonl_tracer import JSONLTraceCollector


class EchoInput(BaseModel):
    msg: str = ""


async def _slow_handler(inp: EchoInput) -> str:
    await asyncio.sleep(0.05)
    return "slow"


async def _fast_handler(inp: EchoInput) -> str:
    return "fast"


async def _broken_handler(inp: EchoInput) -> str:
    raise RuntimeError("kaput")


async def _sleepy_handler(inp: EchoInput) -> str:
    await asyncio.sleep(1.0)
    return "too late"


def make_tool(name: str, handler, **overrides) -> ToolDef:
    defaults = dict(
        name=name,
        description=f"{name} test tool",
        input_model=EchoInput,
        handler=handler,
    )
    defaults.update(overrides)
    return ToolDef(**defaults)


SAMPLE_DOCS = [
    Document(
        id="gpu-guide",
        text="GPU temperature should not exceed 83C under sustained load. "
             "If it does, check fan speeds and thermal paste.",
        metadata={"lang": "en"},
    ),
    Document(
        id="ecc-guide",
        text="ECC errors on NVIDIA GPUs can indicate failing VRAM. "
             "Run nvidia-smi -q -d ECC to check error counts.",
        metadata={"lang": "en"},
    ),
    Document(
        id="cuda-oom",
        text="CUDA Out of Memory errors can be resolved by reducing batch size "
             "or enabling gradient checkpointing.",
        metadata={"lang": "de"},
    ),
]


@pytest.fixture
def sample_docs():
    return list(SAMPLE_DOCS)


@pytest.fixture
def tool_registry():
    registry = ToolRegistry()
    registry.register(CALCULATOR_TOOL)
    registry.register(make_tool("slow", _slow_handler))
    registry.register(make_tool("fast", _fast_handler))
    registry.register(make_tool("broken", _broken_handler))
    registry.register(make_tool("sleepy", _sleepy_handler))
    return registry


@pytest.fixture
def memory():
    return ConversationMemory()


@pytest.fixture
def store():
    return InMemoryVectorStore()


@pytest.fixture
async def retriever(store):
    retriever = Retriever(HashingEmbedder(), store, splitter=fixed_size_splitter(200, 20))
    await retriever.index(SAMPLE_DOCS)
    return retriever


@pytest.fixture
def trace_collector(tmp_path):
    return JSONLTraceCollector(trace_dir=str(tmp_path / "traces"))
