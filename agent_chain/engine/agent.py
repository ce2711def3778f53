"""AgentExecutor — the core runtime loop."""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from contextlib import aclosing
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AsyncIterator, Callable

from agent_chain.engine.cancellation import CancellationToken
from agent_chain.engine.config import ExecutorConfig
from agent_chain.engine.errors import (
    AgentChainError,
    MaxStepsExceeded,
    ModelTimeoutError,
    ProviderError,
    TooManyToolFailures,
)
from agent_chain.engine.llm import ChatModel
from agent_chain.engine.models import (
    AgentEvent,
    Cancelled,
    ErrorEvent,
    ErrorKind,
    FinalAnswer,
    LLMResult,
    Message,
    StreamChunk,
    TokenDelta,
    ToolCall,
    ToolFinished,
    ToolResult,
    ToolStarted,
    Turn,
)
from agent_chain.engine.prompts import CONTEXT_TEMPLATE, DEFAULT_SYSTEM_PROMPT
from agent_chain.memory.buffer import ConversationMemory
from agent_chain.memory.interface import Memory
from agent_chain.retrieval.retriever import Retriever
from agent_chain.tools.registry import ToolRegistry
from agent_chain.tracing.interface import NullTraceCollector, TraceCollector

logger = logging.getLogger(__name__)


class RunState(str, Enum):
    PLANNING = "planning"
    MODEL_CALL = "model_call"
    TOOL_DISPATCH = "tool_dispatch"
    ANSWERING = "answering"
    DONE = "done"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class _Run:
    run_id: str
    config: ExecutorConfig
    memory: Memory
    cancellation: CancellationToken
    state: RunState = RunState.PLANNING
    steps: int = 0
    pending: LLMResult = field(default_factory=LLMResult)
    # Tool results of the current turn, indexed by issuance position.
    results: dict[int, ToolResult] = field(default_factory=dict)
    # Invocations per tool name, checked against ToolDef.usage_limit.
    tool_usage: dict[str, int] = field(default_factory=dict)
    consecutive_failures: int = 0


class AgentExecutor:
    """Public API: ``async for event in executor.run(goal): ...``

    Each call to ``run`` drives one explicit state machine::

        Planning -> ModelCall -> ToolDispatch -> Planning ...
                              -> Answering -> Done

    with ``Failed`` and ``Cancelled`` reachable from any state. The event
    stream is a lazy async generator: if the caller stops pulling, the run
    suspends at its next ``yield``.
    """

    def __init__(
        self,
        llm_client: ChatModel,
        tool_registry: ToolRegistry | None = None,
        memory: Memory | None = None,
        retriever: Retriever | None = None,
        memory_factory: Callable[[], Memory] = ConversationMemory,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
        config: ExecutorConfig | None = None,
        trace_collector: TraceCollector | None = None,
        allowed_tools: list[str] | None = None,
        retrieval_k: int = 4,
    ) -> None:
        self._llm = llm_client
        self._tools = tool_registry or ToolRegistry()
        self._memory = memory
        self._memory_factory = memory_factory
        self._retriever = retriever
        self._system_prompt = system_prompt
        self._config = config or ExecutorConfig()
        self._trace = trace_collector or NullTraceCollector()
        self._allowed_tools = allowed_tools
        self._retrieval_k = retrieval_k

    # ------------------------------------------------------------------
    # Public run
    # ------------------------------------------------------------------

    async def run(
        self,
        goal: str,
        config: ExecutorConfig | None = None,
        cancellation: CancellationToken | None = None,
        run_id: str | None = None,
    ) -> AsyncIterator[AgentEvent]:
        run = _Run(
            run_id=run_id or str(uuid.uuid4()),
            config=config or self._config,
            # Without a shared memory, each run gets a private one.
            memory=self._memory if self._memory is not None else self._memory_factory(),
            cancellation=cancellation or CancellationToken(),
        )
        t_start = time.time()
        logger.info("run %s started (max_steps=%d)", run.run_id, run.config.max_steps)
        await self._trace.emit(run.run_id, "run_start", {
            "goal": goal,
            "max_steps": run.config.max_steps,
            "stream": run.config.stream,
        })

        try:
            # 1. Start: context + goal -----------------------------------
            try:
                system_message = await self._system_message(goal, run.run_id)
                await run.memory.append(Turn(message=Message.user(goal)))
            except AgentChainError as exc:
                yield self._fail(run, exc)
                return

            tool_schemas = self._tools.openai_schemas(self._allowed_tools) or None

            # 2. State machine -----------------------------------------------
            while run.state not in (RunState.DONE, RunState.FAILED, RunState.CANCELLED):
                if run.state is RunState.PLANNING:
                    if run.cancellation.cancelled:
                        yield self._cancel(run)
                        continue
                    run.state = RunState.MODEL_CALL

                elif run.state is RunState.MODEL_CALL:
                    messages = [system_message, *run.memory.history()]
                    t_llm = time.time()
                    try:
                        if run.config.stream:
                            result: LLMResult | None = None
                            deltas: list[str] = []
                            async with aclosing(
                                self._stream_model(messages, tool_schemas, run.config.model_timeout)
                            ) as chunks:
                                async for chunk in chunks:
                                    if chunk.delta:
                                        deltas.append(chunk.delta)
                                        yield TokenDelta(run_id=run.run_id, text=chunk.delta)
                                    if chunk.result is not None:
                                        result = chunk.result
                            if result is None:
                                result = LLMResult(content="".join(deltas))
                        else:
                            result = await self._call_model(
                                messages, tool_schemas, run.config.model_timeout
                            )
                    except AgentChainError as exc:
                        yield self._fail(run, exc)
                        continue

                    await self._trace.emit(run.run_id, "llm_call", {
                        "step": run.steps,
                        "latency_ms": round((time.time() - t_llm) * 1000, 2),
                        "has_tool_calls": bool(result.tool_calls),
                    })

                    if not result.tool_calls:
                        run.pending = result
                        run.state = RunState.ANSWERING
                    elif run.steps >= run.config.max_steps:
                        # Requested calls are dropped; nothing half-resolved reaches memory.
                        yield self._fail(run, MaxStepsExceeded(run.config.max_steps))
                    else:
                        run.pending = result
                        run.state = RunState.TOOL_DISPATCH

                elif run.state is RunState.TOOL_DISPATCH:
                    calls = run.pending.tool_calls
                    if run.cancellation.cancelled:
                        yield self._cancel(run)
                        continue

                    run.steps += 1
                    run.results = {}
                    async with aclosing(self._dispatch(run, calls)) as events:
                        async for event in events:
                            yield event
                    if run.cancellation.cancelled:
                        # In-flight tools have finished; their results are discarded.
                        yield self._cancel(run)
                        continue

                    ordered = tuple(run.results[i] for i in range(len(calls)))
                    try:
                        await run.memory.append(Turn(message=run.pending.to_message(), results=ordered))
                    except AgentChainError as exc:
                        yield self._fail(run, exc)
                        continue

                    failed = [r for r in ordered if not r.ok]
                    if failed and run.config.fail_on_tool_error:
                        yield ErrorEvent(
                            run_id=run.run_id,
                            kind=ErrorKind.TOOL_EXECUTION_ERROR,
                            message=failed[0].to_message().content,
                        )
                        run.state = RunState.FAILED
                        continue

                    if len(failed) == len(ordered):
                        run.consecutive_failures += 1
                    else:
                        run.consecutive_failures = 0
                    limit = run.config.max_consecutive_failures
                    if limit is not None and run.consecutive_failures >= limit:
                        yield self._fail(run, TooManyToolFailures(run.consecutive_failures))
                        continue
                    run.state = RunState.PLANNING

                elif run.state is RunState.ANSWERING:
                    answer = run.pending.content
                    try:
                        await run.memory.append(Turn(message=Message.assistant(answer)))
                    except AgentChainError as exc:
                        yield self._fail(run, exc)
                        continue
                    yield FinalAnswer(run_id=run.run_id, text=answer)
                    run.state = RunState.DONE

        finally:
            # 3. Flush traces ------------------------------------------------
            logger.info("run %s finished state=%s steps=%d", run.run_id, run.state.value, run.steps)
            await self._trace.emit(run.run_id, "run_done", {
                "state": run.state.value,
                "steps": run.steps,
                "total_latency_ms": round((time.time() - t_start) * 1000, 2),
            })
            await self._trace.flush(run.run_id)

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    async def _system_message(self, goal: str, run_id: str) -> Message:
        if self._retriever is None:
            return Message.system(self._system_prompt)

        t_ret = time.time()
        chunks = await self._retriever.retrieve(goal, k=self._retrieval_k)
        await self._trace.emit(run_id, "retrieve", {
            "count": len(chunks),
            "chunk_ids": [c.chunk.id for c in chunks],
            "latency_ms": round((time.time() - t_ret) * 1000, 2),
        })
        if not chunks:
            return Message.system(self._system_prompt)
        return Message.system(CONTEXT_TEMPLATE.format(
            system_prompt=self._system_prompt,
            context=Retriever.format_context(chunks),
        ))

    async def _call_model(
        self,
        messages: list[Message],
        tools: list[dict[str, Any]] | None,
        timeout: float | None,
    ) -> LLMResult:
        try:
            return await asyncio.wait_for(self._llm.complete(messages, tools), timeout)
        except asyncio.TimeoutError:
            raise ModelTimeoutError(timeout or 0) from None
        except AgentChainError:
            raise
        except Exception as exc:
            raise ProviderError(None, str(exc)) from exc

    async def _stream_model(
        self,
        messages: list[Message],
        tools: list[dict[str, Any]] | None,
        timeout: float | None,
    ) -> AsyncIterator[StreamChunk]:
        """Relay the model stream, applying ``timeout`` to the whole call."""
        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + timeout
        async with aclosing(self._llm.stream(messages, tools)) as stream:
            while True:
                remaining = None if deadline is None else max(deadline - loop.time(), 0.0)
                try:
                    chunk = await asyncio.wait_for(stream.__anext__(), remaining)
                except StopAsyncIteration:
                    return
                except asyncio.TimeoutError:
                    raise ModelTimeoutError(timeout or 0) from None
                except AgentChainError:
                    raise
                except Exception as exc:
                    raise ProviderError(None, str(exc)) from exc
                yield chunk

    async def _dispatch(self, run: _Run, calls: list[ToolCall]) -> AsyncIterator[AgentEvent]:
        """Fan out every call of one turn, then wait for all of them.

        ``ToolFinished`` events follow completion order; ``run.results`` is
        keyed by issuance position so history order never depends on latency.
        """
        for call in calls:
            yield ToolStarted(run_id=run.run_id, call=call)

        tasks = {
            asyncio.create_task(
                self._tools.invoke(
                    call,
                    run.config.tool_timeout,
                    self._trace,
                    run.run_id,
                    allowed_tools=self._allowed_tools,
                    usage=run.tool_usage,
                )
            ): i
            for i, call in enumerate(calls)
        }
        pending = set(tasks)
        try:
            while pending:
                done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
                for task in sorted(done, key=tasks.__getitem__):
                    index = tasks[task]
                    result = task.result()
                    run.results[index] = result
                    yield ToolFinished(run_id=run.run_id, call=calls[index], result=result)
                if pending and run.cancellation.cancelled:
                    logger.info(
                        "run %s cancelled with %d tools in flight; waiting for them",
                        run.run_id, len(pending),
                    )
                    return
        finally:
            # Tools are never interrupted, also when the caller abandons the stream.
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

    # ------------------------------------------------------------------
    # Terminal transitions
    # ------------------------------------------------------------------

    def _fail(self, run: _Run, exc: AgentChainError) -> ErrorEvent:
        logger.warning("run %s failed: %s", run.run_id, exc)
        run.state = RunState.FAILED
        return ErrorEvent(run_id=run.run_id, kind=exc.kind, message=str(exc))

    def _cancel(self, run: _Run) -> Cancelled:
        logger.info("run %s cancelled: %s", run.run_id, run.cancellation.reason)
        run.state = RunState.CANCELLED
        return Cancelled(run_id=run.run_id, reason=run.cancellation.reason)
