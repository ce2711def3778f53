"""Tests for ToolRegistry — execution, failure folding, timeout, usage limits, schemas."""

from __future__ import annotations

import asyncio

import pytest
from pydantic import BaseModel, ValidationError

from agent_chain.engine.errors import ToolExecutionError, UnknownToolError
from agent_chain.engine.models import ToolCall
from agent_chain.tools.builtins import CALCULATOR_TOOL, make_retrieval_tool
from agent_chain.tools.registry import ToolDef, ToolRegistry


# -- helpers ----------------------------------------------------------------

class EchoInput(BaseModel):
    msg: str


class EchoOutput(BaseModel):
    echo: str


async def _echo_handler(inp: EchoInput) -> dict:
    return {"echo": inp.msg}


async def _slow_handler(inp: EchoInput) -> dict:
    await asyncio.sleep(5)
    return {"echo": inp.msg}


async def _bad_output_handler(inp: EchoInput) -> dict:
    return {"unexpected": inp.msg}


def _make_echo_tool(**overrides) -> ToolDef:
    defaults = dict(
        name="echo",
        description="Echoes input",
        input_model=EchoInput,
        output_model=EchoOutput,
        handler=_echo_handler,
    )
    defaults.update(overrides)
    return ToolDef(**defaults)


# -- tests ------------------------------------------------------------------

class TestRegistration:

    def test_duplicate_name_rejected(self):
        registry = ToolRegistry()
        registry.register(_make_echo_tool())
        with pytest.raises(ValueError, match="already registered"):
            registry.register(_make_echo_tool())

    def test_lookup(self):
        registry = ToolRegistry()
        registry.register(_make_echo_tool())
        assert registry.get("echo").description == "Echoes input"
        assert registry.get("missing") is None
        assert registry.names() == ["echo"]


class TestToolExecution:

    async def test_basic_execution(self):
        registry = ToolRegistry()
        registry.register(_make_echo_tool())
        assert await registry.execute("echo", {"msg": "hi"}) == {"echo": "hi"}

    async def test_unknown_tool_raises(self):
        registry = ToolRegistry()
        with pytest.raises(UnknownToolError, match="not found"):
            await registry.execute("nonexistent", {"msg": "hi"})

    async def test_invalid_arguments_raise(self):
        registry = ToolRegistry()
        registry.register(_make_echo_tool())
        with pytest.raises(ValidationError):
            await registry.execute("echo", {"message": "hi"})

    async def test_invalid_output(self):
        registry = ToolRegistry()
        registry.register(_make_echo_tool(handler=_bad_output_handler))
        with pytest.raises(ToolExecutionError) as exc_info:
            await registry.execute("echo", {"msg": "hi"})
        assert exc_info.value.failure_kind == "invalid_output"

    async def test_timeout(self):
        registry = ToolRegistry()
        registry.register(_make_echo_tool(name="slow", handler=_slow_handler, timeout=0.1))

        with pytest.raises(asyncio.TimeoutError):
            await registry.execute("slow", {"msg": "hi"})

    async def test_call_timeout_overrides_tool_default(self):
        registry = ToolRegistry()
        registry.register(_make_echo_tool(name="slow", handler=_slow_handler, timeout=30.0))

        with pytest.raises(asyncio.TimeoutError):
            await registry.execute("slow", {"msg": "hi"}, timeout=0.05)

    async def test_failing_handler_runs_once(self):
        call_count = 0

        async def _flaky(inp: EchoInput) -> dict:
            nonlocal call_count
            call_count += 1
            raise RuntimeError("transient failure")

        registry = ToolRegistry()
        registry.register(_make_echo_tool(name="flaky", handler=_flaky))

        with pytest.raises(ToolExecutionError, match="transient failure"):
            await registry.execute("flaky", {"msg": "x"})
        result = await registry.invoke(ToolCall(id="t1", name="flaky", arguments={"msg": "x"}))

        assert result.error.kind == "tool_execution_error"
        assert call_count == 2


class TestInvoke:
    """``invoke`` never raises; every failure becomes a ToolResult."""

    async def test_success(self):
        registry = ToolRegistry()
        registry.register(_make_echo_tool())

        result = await registry.invoke(ToolCall(id="t1", name="echo", arguments={"msg": "hi"}))

        assert result.ok
        assert result.tool_call_id == "t1"
        assert result.to_message().content == '{"echo": "hi"}'

    @pytest.mark.parametrize(
        "name,arguments,kind",
        [
            ("missing", {"msg": "hi"}, "unknown_tool"),
            ("echo", {}, "invalid_arguments"),
            ("slow", {"msg": "hi"}, "timeout"),
            ("bad_output", {"msg": "hi"}, "invalid_output"),
        ],
    )
    async def test_failures_folded(self, name, arguments, kind):
        registry = ToolRegistry()
        registry.register(_make_echo_tool())
        registry.register(_make_echo_tool(name="slow", handler=_slow_handler, timeout=0.05))
        registry.register(_make_echo_tool(name="bad_output", handler=_bad_output_handler))

        result = await registry.invoke(ToolCall(id="t1", name=name, arguments=arguments))

        assert not result.ok
        assert result.error.kind == kind
        assert result.to_message().content.startswith(f"Tool call failed ({kind}): ")

    async def test_allowlist_blocks_registered_tool(self):
        ran = False

        async def _secret(inp: EchoInput) -> dict:
            nonlocal ran
            ran = True
            return {"echo": "secret ran"}

        registry = ToolRegistry()
        registry.register(_make_echo_tool())
        registry.register(_make_echo_tool(name="secret", handler=_secret))

        blocked = await registry.invoke(
            ToolCall(id="t1", name="secret", arguments={"msg": "x"}), allowed_tools=["echo"],
        )
        allowed = await registry.invoke(
            ToolCall(id="t2", name="echo", arguments={"msg": "x"}), allowed_tools=["echo"],
        )

        assert blocked.error.kind == "unknown_tool"
        assert not ran
        assert allowed.ok

    async def test_usage_limit(self):
        call_count = 0

        async def _counted(inp: EchoInput) -> dict:
            nonlocal call_count
            call_count += 1
            return {"echo": inp.msg}

        registry = ToolRegistry()
        registry.register(_make_echo_tool(name="limited", handler=_counted, usage_limit=2))
        usage: dict[str, int] = {}

        results = [
            await registry.invoke(
                ToolCall(id=f"t{i}", name="limited", arguments={"msg": "x"}), usage=usage,
            )
            for i in range(3)
        ]

        assert [r.ok for r in results] == [True, True, False]
        assert results[2].error.kind == "usage_limit_exceeded"
        assert "usage limit of 2" in results[2].error.message
        assert call_count == 2
        # A fresh counter starts over
        assert (await registry.invoke(
            ToolCall(id="t9", name="limited", arguments={"msg": "x"}), usage={},
        )).ok

    async def test_handler_exception(self, tool_registry):
        result = await tool_registry.invoke(ToolCall(id="t1", name="broken"))
        assert result.error.kind == "tool_execution_error"
        assert result.error.message == "kaput"


class TestBuiltins:

    @pytest.mark.parametrize(
        "expression,expected",
        [("2+2", "4"), ("2 * (3 + 4)", "14"), ("7 / 2", "3.5"), ("9 / 3", "3"), ("-2 ** 3", "-8")],
    )
    async def test_calculator(self, expression, expected):
        registry = ToolRegistry()
        registry.register(CALCULATOR_TOOL)
        assert await registry.execute("calculator", {"expression": expression}) == expected

    @pytest.mark.parametrize("expression", ["__import__('os')", "2 ** 1000", "1 / 0"])
    async def test_calculator_rejects(self, expression):
        registry = ToolRegistry()
        registry.register(CALCULATOR_TOOL)
        result = await registry.invoke(
            ToolCall(id="t1", name="calculator", arguments={"expression": expression})
        )
        assert result.error.kind == "tool_execution_error"

    async def test_knowledge_search(self, retriever):
        registry = ToolRegistry()
        registry.register(make_retrieval_tool(retriever))

        output = await registry.execute("knowledge_search", {"query": "ECC errors VRAM", "k": 2})

        assert len(output["snippets"]) == 2
        assert output["sources"][0] == "ecc-guide"


class TestOpenAISchemas:

    def test_schemas_filter_by_allowlist(self, tool_registry):
        schemas = tool_registry.openai_schemas(allowed_tools=["calculator"])
        names = [s["function"]["name"] for s in schemas]
        assert names == ["calculator"]
        assert "expression" in schemas[0]["function"]["parameters"]["properties"]

    def test_schemas_empty_when_no_match(self, tool_registry):
        schemas = tool_registry.openai_schemas(allowed_tools=["nonexistent"])
        assert schemas == []

    def test_all_schemas_without_allowlist(self, tool_registry):
        assert len(tool_registry.openai_schemas()) == len(tool_registry.names())
