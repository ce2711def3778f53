"""Tool registry with Pydantic v2 schemas, timeouts, usage limits and tracing."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Collection

from pydantic import BaseModel, ValidationError

from agent_chain.engine.errors import ToolExecutionError, UnknownToolError
from agent_chain.engine.models import ToolCall, ToolFailure, ToolResult
from agent_chain.tracing.interface import TraceCollector

logger = logging.getLogger(__name__)


@dataclass
class ToolDef:
    """Registration record for a single tool.

    ``output_model`` is optional; without it the handler's return value is
    passed through unchanged (plain strings included). Handlers run at most
    once per call.
    """

    name: str
    description: str
    input_model: type[BaseModel]
    handler: Callable[..., Awaitable[Any]]
    output_model: type[BaseModel] | None = None
    timeout: float = 30.0
    usage_limit: int | None = None  # max invocations per run


class ToolRegistry:
    """Central tool store with timeout, usage limits and tracing hooks.

    Handlers must be safe to run concurrently with each other: the executor
    fans out every call of one assistant turn at once.
    """

    def __init__(self) -> None:
        self._tools: dict[str, ToolDef] = {}

    # -- registration -------------------------------------------------------

    def register(self, tool_def: ToolDef) -> None:
        if tool_def.name in self._tools:
            raise ValueError(f"Tool already registered: {tool_def.name}")
        self._tools[tool_def.name] = tool_def
        logger.info("Registered tool %s (timeout=%ss)", tool_def.name, tool_def.timeout)

    def get(self, name: str) -> ToolDef | None:
        return self._tools.get(name)

    def names(self) -> list[str]:
        return list(self._tools)

    # -- OpenAI function-calling schemas ------------------------------------

    def openai_schemas(self, allowed_tools: list[str] | None = None) -> list[dict[str, Any]]:
        """Return OpenAI-compatible function schemas, optionally filtered by an allowlist."""
        schemas: list[dict[str, Any]] = []
        for tool in self._tools.values():
            if allowed_tools is not None and tool.name not in allowed_tools:
                continue
            schemas.append({
                "type": "function",
                "function": {
                    "name": tool.name,
                    "description": tool.description,
                    "parameters": tool.input_model.model_json_schema(),
                },
            })
        return schemas

    # -- execution ----------------------------------------------------------

    async def execute(
        self,
        name: str,
        input_data: dict[str, Any],
        timeout: float | None = None,
        trace_collector: TraceCollector | None = None,
        trace_id: str | None = None,
    ) -> Any:
        """Run a tool once and return its validated output.

        Raises ``UnknownToolError``, ``pydantic.ValidationError`` for bad
        arguments, ``asyncio.TimeoutError`` or ``ToolExecutionError``. Failed
        handlers are never retried here; retry policy belongs to the caller.
        """
        tool = self._tools.get(name)
        if tool is None:
            raise UnknownToolError(name)

        validated_input = tool.input_model.model_validate(input_data)
        effective_timeout = timeout if timeout is not None else tool.timeout

        t0 = time.time()
        try:
            raw = await asyncio.wait_for(tool.handler(validated_input), timeout=effective_timeout)
            output = self._validate_output(tool, raw)
        except Exception as exc:
            logger.warning("tool=%s error=%r", name, exc)
            if trace_collector and trace_id:
                await trace_collector.emit(trace_id, "tool_exec", {
                    "tool": name,
                    "status": "error",
                    "error": repr(exc),
                })
            if isinstance(exc, (asyncio.TimeoutError, ToolExecutionError)):
                raise
            raise ToolExecutionError(name, str(exc)) from exc

        latency = time.time() - t0
        logger.info("tool=%s latency=%.3fs OK", name, latency)
        if trace_collector and trace_id:
            await trace_collector.emit(trace_id, "tool_exec", {
                "tool": name,
                "latency_ms": round(latency * 1000, 2),
                "status": "ok",
            })
        return output

    async def invoke(
        self,
        call: ToolCall,
        timeout: float | None = None,
        trace_collector: TraceCollector | None = None,
        trace_id: str | None = None,
        allowed_tools: Collection[str] | None = None,
        usage: dict[str, int] | None = None,
    ) -> ToolResult:
        """Execute ``call`` and fold every failure into a ``ToolResult``.

        Names outside ``allowed_tools`` are reported as ``unknown_tool``.
        ``usage`` counts invocations per tool name for one run; a call past a
        tool's ``usage_limit`` fails without running the handler.
        """
        if allowed_tools is not None and call.name not in allowed_tools:
            return self._failed(call, "unknown_tool", f"Tool '{call.name}' not found")

        tool = self._tools.get(call.name)
        if tool is not None and usage is not None:
            # Counted before the first await so concurrent calls see issuance order.
            usage[call.name] = usage.get(call.name, 0) + 1
            if tool.usage_limit is not None and usage[call.name] > tool.usage_limit:
                logger.warning("tool=%s over usage limit %d", call.name, tool.usage_limit)
                return self._failed(
                    call,
                    "usage_limit_exceeded",
                    f"Tool '{call.name}' reached its usage limit of {tool.usage_limit} calls",
                )

        try:
            output = await self.execute(call.name, call.arguments, timeout, trace_collector, trace_id)
        except UnknownToolError as exc:
            return self._failed(call, "unknown_tool", exc.cause)
        except ValidationError as exc:
            return self._failed(call, "invalid_arguments", str(exc))
        except asyncio.TimeoutError:
            effective = timeout if timeout is not None else self._tools[call.name].timeout
            return self._failed(call, "timeout", f"Tool '{call.name}' timed out after {effective:g}s")
        except ToolExecutionError as exc:
            return self._failed(call, exc.failure_kind, exc.cause)
        return ToolResult(tool_call_id=call.id, output=output)

    # -- helpers ------------------------------------------------------------

    @staticmethod
    def _validate_output(tool: ToolDef, raw: Any) -> Any:
        if tool.output_model is None:
            return raw
        try:
            if isinstance(raw, tool.output_model):
                validated = raw
            else:
                validated = tool.output_model.model_validate(raw)
        except ValidationError as exc:
            raise ToolExecutionError(tool.name, str(exc), failure_kind="invalid_output") from exc
        return validated.model_dump()

    @staticmethod
    def _failed(call: ToolCall, kind: str, message: str) -> ToolResult:
        return ToolResult(tool_call_id=call.id, error=ToolFailure(kind=kind, message=message))
