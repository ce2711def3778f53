"""Tests for ConversationMemory — budgets, compaction, summarizer failures, turn integrity."""

from __future__ import annotations

import pytest

from agent_chain.engine.config import MemoryConfig
from agent_chain.engine.errors import CapacityExceeded, ModelTimeoutError, ProviderError
from agent_chain.engine.llm import MockChatModel
from agent_chain.engine.models import LLMResult, Message, Role, ToolCall, ToolResult, Turn
from agent_chain.memory.buffer import ConversationMemory
from agent_chain.memory.tokenizer import RegexTokenizer


def _turn(role: str, content: str) -> Turn:
    return Turn(message=getattr(Message, role)(content))


class TestTokenizer:

    def test_counts_words_and_punctuation(self):
        assert RegexTokenizer().count("Hello, world!") == 4
        assert RegexTokenizer().count("") == 0

    def test_message_includes_overhead_and_tool_calls(self):
        tokenizer = RegexTokenizer()
        plain = Message.user("one two")
        assert tokenizer.count_message(plain) == 2 + 3

        call = Message.assistant("", [ToolCall(id="1", name="calc", arguments={"x": 1})])
        # overhead + "calc" + {"x": 1} -> { " x " : 1 }
        assert tokenizer.count_message(call) == 3 + 1 + 7


class TestCapacity:

    async def test_unbounded_by_default(self):
        memory = ConversationMemory()
        for i in range(50):
            await memory.append(_turn("user", f"message number {i}"))
        assert len(memory.history()) == 50

    async def test_over_budget_without_summarizer(self):
        memory = ConversationMemory(max_tokens=10)
        await memory.append(_turn("user", "hi"))

        with pytest.raises(CapacityExceeded) as exc_info:
            await memory.append(_turn("user", "one two three four five six seven eight"))

        assert exc_info.value.budget == 10
        assert exc_info.value.required == 4 + 11
        assert [m.content for m in memory.history()] == ["hi"]

    async def test_from_config(self):
        memory = ConversationMemory.from_config(MemoryConfig(max_tokens=4))
        with pytest.raises(CapacityExceeded):
            await memory.append(_turn("user", "too many words here"))
        assert memory.history() == []


class TestCompaction:

    async def _fill(self, memory: ConversationMemory) -> None:
        await memory.append(_turn("system", "be brief"))
        await memory.append(_turn("user", "alpha beta gamma delta"))
        await memory.append(_turn("assistant", "epsilon zeta eta theta"))
        await memory.append(_turn("user", "iota kappa lambda mu nu xi omicron"))

    async def test_old_turns_replaced_by_summary(self):
        summarizer = MockChatModel([LLMResult(content="short")])
        memory = ConversationMemory(max_tokens=30, summarizer=summarizer, keep_recent_turns=1)
        await self._fill(memory)
        assert memory.token_count() == 29
        assert summarizer.call_count == 0

        await memory.append(_turn("assistant", "pi rho sigma"))

        history = memory.history()
        assert [m.content for m in history] == [
            "be brief",
            "Summary of earlier conversation:\nshort",
            "pi rho sigma",
        ]
        assert [m.role for m in history] == [Role.SYSTEM, Role.SYSTEM, Role.ASSISTANT]
        assert memory.token_count() <= 30

        prompt = summarizer.calls[0]
        assert prompt[1].content == (
            "user: alpha beta gamma delta\n"
            "assistant: epsilon zeta eta theta\n"
            "user: iota kappa lambda mu nu xi omicron"
        )

    async def test_compaction_that_still_overflows(self):
        summarizer = MockChatModel([LLMResult(content="short")])
        memory = ConversationMemory(max_tokens=12, summarizer=summarizer, keep_recent_turns=1)
        await memory.append(_turn("user", "a b c"))

        with pytest.raises(CapacityExceeded):
            await memory.append(_turn("user", "d e f g h i j k"))

        assert [m.content for m in memory.history()] == ["a b c"]

    async def test_nothing_to_compact(self):
        summarizer = MockChatModel([LLMResult(content="unused")])
        memory = ConversationMemory(max_tokens=10, summarizer=summarizer)

        with pytest.raises(CapacityExceeded):
            await memory.append(_turn("user", "a b c d e f g h"))

        assert summarizer.call_count == 0
        assert memory.history() == []

    async def test_summarizer_failure_leaves_history(self):
        summarizer = MockChatModel([ProviderError(503, "down")])
        memory = ConversationMemory(max_tokens=30, summarizer=summarizer, keep_recent_turns=1)
        await self._fill(memory)
        before = memory.history()

        with pytest.raises(ProviderError):
            await memory.append(_turn("assistant", "pi rho sigma"))

        assert memory.history() == before

    async def test_unexpected_summarizer_exception_wrapped(self):
        summarizer = MockChatModel([RuntimeError("socket closed")])
        memory = ConversationMemory(max_tokens=30, summarizer=summarizer, keep_recent_turns=1)
        await self._fill(memory)
        before = memory.history()

        with pytest.raises(ProviderError, match="socket closed"):
            await memory.append(_turn("assistant", "pi rho sigma"))

        assert memory.history() == before

    async def test_summarizer_timeout(self):
        summarizer = MockChatModel([LLMResult(content="late")], delay=0.5)
        memory = ConversationMemory(
            max_tokens=30, summarizer=summarizer, keep_recent_turns=1, summarizer_timeout=0.05,
        )
        await self._fill(memory)

        with pytest.raises(ModelTimeoutError):
            await memory.append(_turn("assistant", "pi rho sigma"))

        assert memory.token_count() == 29


class TestTurnIntegrity:

    async def test_unresolved_tool_calls_rejected(self):
        memory = ConversationMemory()
        message = Message.assistant("", [ToolCall(id="a", name="x"), ToolCall(id="b", name="y")])

        with pytest.raises(ValueError):
            await memory.append(Turn(message=message, results=(ToolResult(tool_call_id="a", output=1),)))

        assert memory.history() == []

    async def test_resolved_turn_expands_in_order(self):
        memory = ConversationMemory()
        message = Message.assistant("", [ToolCall(id="a", name="x"), ToolCall(id="b", name="y")])
        results = (
            ToolResult(tool_call_id="a", output={"value": 1}),
            ToolResult(tool_call_id="b", output="two"),
        )
        await memory.append(Turn(message=message, results=results))

        history = memory.history()
        assert [m.tool_call_id for m in history[1:]] == ["a", "b"]
        assert history[1].content == '{"value": 1}'
        assert history[2].content == "two"

    async def test_clear_and_transcript(self):
        memory = ConversationMemory()
        await memory.append(_turn("user", "hello"))
        await memory.append(_turn("assistant", "hi there"))

        assert memory.transcript() == "user: hello\nassistant: hi there"
        memory.clear()
        assert memory.history() == []
        assert memory.transcript() == ""
