"""agent_chain — agent execution engine with tools, memory, and retrieval.

Usage::

    from agent_chain import create_executor

    executor = create_executor()
    async for event in executor.run("What is 2+2, then say hi"):
        print(event)
"""

from __future__ import annotations

import os

from dotenv import load_dotenv

load_dotenv()  # reads .env into os.environ (no-op if file missing)

from agent_chain.engine.agent import AgentExecutor
from agent_chain.engine.config import ExecutorConfig, MemoryConfig, RetrieverConfig
from agent_chain.engine.llm import ChatModel, DemoMockChatModel, OpenAIChatModel
from agent_chain.engine.models import AgentEvent, AgentEventType
from agent_chain.memory.buffer import ConversationMemory
from agent_chain.retrieval.in_memory import HashingEmbedder, InMemoryVectorStore
from agent_chain.retrieval.interface import Embedder
from agent_chain.retrieval.openai_embedder import OpenAIEmbedder
from agent_chain.retrieval.retriever import Retriever
from agent_chain.tools.builtins import CALCULATOR_TOOL, make_retrieval_tool
from agent_chain.tools.registry import ToolRegistry
from agent_chain.tracing.interface import NullTraceCollector, TraceCollector
from agent_chain.tracing.jsonl_tracer import JSONLTraceCollector

__all__ = [
    "AgentEvent",
    "AgentEventType",
    "AgentExecutor",
    "ExecutorConfig",
    "create_executor",
    "create_retriever",
]


def _use_mock(api_key: str | None, use_mock_llm: bool | None) -> bool:
    mock = use_mock_llm if use_mock_llm is not None else os.environ.get("USE_MOCK_LLM") == "1"
    return mock or not api_key


def create_retriever(
    *,
    openai_api_key: str | None = None,
    use_mock_llm: bool | None = None,
) -> Retriever:
    """Return an empty in-memory Retriever; ``await retriever.index(docs)`` to fill it."""
    api_key = openai_api_key or os.environ.get("OPENAI_API_KEY")
    embedder: Embedder
    if _use_mock(api_key, use_mock_llm):
        embedder = HashingEmbedder()
    else:
        embedder = OpenAIEmbedder(
            api_key=api_key,
            model=os.environ.get("OPENAI_EMBEDDING_MODEL", "text-embedding-3-small"),
        )
    return Retriever(embedder, InMemoryVectorStore(), RetrieverConfig.from_env())


def create_executor(
    *,
    openai_api_key: str | None = None,
    openai_model: str | None = None,
    retriever: Retriever | None = None,
    shared_memory: bool = True,
    trace_dir: str | None = None,
    use_mock_llm: bool | None = None,
) -> AgentExecutor:
    """Wire all components and return a ready-to-use AgentExecutor.

    With a ``retriever`` the goal is answered with retrieved context and a
    ``knowledge_search`` tool is registered. With ``shared_memory=False``
    every run starts from an empty history (one memory per run).

    Environment variables (all optional):
      OPENAI_API_KEY          — required for real LLM calls
      OPENAI_MODEL            — default ``gpt-4o-mini``
      OPENAI_EMBEDDING_MODEL  — default ``text-embedding-3-small``
      USE_MOCK_LLM            — set to ``1`` to use the demo mock
      TRACE_DIR               — write JSONL traces there when set
      AGENT_*, MEMORY_*, RETRIEVER_* — see ``engine.config``
    """
    api_key = openai_api_key or os.environ.get("OPENAI_API_KEY")
    model = openai_model or os.environ.get("OPENAI_MODEL", "gpt-4o-mini")
    trace_dir = trace_dir or os.environ.get("TRACE_DIR")

    # -- components --
    llm_client: ChatModel
    if _use_mock(api_key, use_mock_llm):
        llm_client = DemoMockChatModel()
    else:
        llm_client = OpenAIChatModel(api_key=api_key, model=model)

    trace_collector: TraceCollector = (
        JSONLTraceCollector(trace_dir) if trace_dir else NullTraceCollector()
    )
    memory_config = MemoryConfig.from_env()

    def memory_factory() -> ConversationMemory:
        return ConversationMemory.from_config(memory_config, summarizer=llm_client)

    tool_registry = ToolRegistry()
    tool_registry.register(CALCULATOR_TOOL)
    if retriever is not None:
        tool_registry.register(make_retrieval_tool(retriever))

    return AgentExecutor(
        llm_client=llm_client,
        tool_registry=tool_registry,
        memory=memory_factory() if shared_memory else None,
        memory_factory=memory_factory,
        retriever=retriever,
        config=ExecutorConfig.from_env(),
        trace_collector=trace_collector,
    )
