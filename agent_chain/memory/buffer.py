"""Token-budgeted conversation memory with summarising compaction."""

from __future__ import annotations

import asyncio
import logging

from agent_chain.engine.config import MemoryConfig
from agent_chain.engine.errors import AgentChainError, CapacityExceeded, ModelTimeoutError, ProviderError
from agent_chain.engine.llm import ChatModel
from agent_chain.engine.models import LLMResult, Message, Role, Turn
from agent_chain.engine.prompts import SUMMARY_PROMPT, SUMMARY_TEMPLATE
from agent_chain.memory.interface import Memory
from agent_chain.memory.tokenizer import RegexTokenizer, Tokenizer

logger = logging.getLogger(__name__)


class ConversationMemory(Memory):
    """Append-only history bounded by ``max_tokens``.

    When an append would exceed the budget, every turn between the leading
    system messages and the ``keep_recent_turns`` most recent turns is
    replaced by one summary message produced by ``summarizer``. Without a
    summarizer the append fails with ``CapacityExceeded`` and the history is
    left untouched; context is never dropped silently. Summarizer failures
    surface as ``ProviderError`` (``ModelTimeoutError`` past
    ``summarizer_timeout``), also leaving the history untouched.
    """

    def __init__(
        self,
        max_tokens: int | None = None,
        summarizer: ChatModel | None = None,
        tokenizer: Tokenizer | None = None,
        keep_recent_turns: int = 2,
        summarizer_timeout: float | None = None,
    ) -> None:
        if keep_recent_turns < 1:
            raise ValueError("keep_recent_turns must be >= 1")
        self._max_tokens = max_tokens
        self._summarizer = summarizer
        self._tokenizer = tokenizer or RegexTokenizer()
        self._keep_recent = keep_recent_turns
        self._summarizer_timeout = summarizer_timeout
        self._turns: list[Turn] = []

    @classmethod
    def from_config(
        cls,
        config: MemoryConfig,
        summarizer: ChatModel | None = None,
        tokenizer: Tokenizer | None = None,
    ) -> ConversationMemory:
        return cls(
            max_tokens=config.max_tokens,
            summarizer=summarizer,
            tokenizer=tokenizer,
            keep_recent_turns=config.keep_recent_turns,
            summarizer_timeout=config.summarizer_timeout,
        )

    # -- Memory -------------------------------------------------------------

    async def append(self, turn: Turn) -> None:
        _check_resolved(turn)
        candidate = [*self._turns, turn]
        if self._fits(candidate):
            self._turns = candidate
            return
        if self._summarizer is None:
            raise CapacityExceeded(self._max_tokens or 0, self._count(candidate))
        # Only swap in the compacted list once it is known to fit.
        self._turns = await self._compact(candidate, self._summarizer)

    def history(self) -> list[Message]:
        return [m for turn in self._turns for m in turn.messages()]

    def clear(self) -> None:
        self._turns = []

    def token_count(self) -> int:
        return self._count(self._turns)

    # -- internals ----------------------------------------------------------

    def _count(self, turns: list[Turn]) -> int:
        return sum(
            self._tokenizer.count_message(m) for turn in turns for m in turn.messages()
        )

    def _fits(self, turns: list[Turn]) -> bool:
        return self._max_tokens is None or self._count(turns) <= self._max_tokens

    async def _compact(self, turns: list[Turn], summarizer: ChatModel) -> list[Turn]:
        budget = self._max_tokens or 0
        prefix = 0
        while (
            prefix < len(turns)
            and turns[prefix].message.role is Role.SYSTEM
            and not turns[prefix].is_summary
        ):
            prefix += 1
        recent_start = max(prefix, len(turns) - self._keep_recent)
        block = turns[prefix:recent_start]
        if not block:
            raise CapacityExceeded(budget, self._count(turns))

        transcript = "\n".join(
            f"{m.role.value}: {m.content}" for turn in block for m in turn.messages()
        )
        result = await self._summarize(summarizer, transcript)
        summary = Turn(
            message=Message.system(SUMMARY_TEMPLATE.format(summary=result.content.strip())),
            is_summary=True,
        )
        compacted = [*turns[:prefix], summary, *turns[recent_start:]]
        required = self._count(compacted)
        if required > budget:
            raise CapacityExceeded(budget, required)

        logger.info(
            "memory compacted %d turns into a summary (%d -> %d tokens)",
            len(block), self._count(turns), required,
        )
        return compacted

    async def _summarize(self, summarizer: ChatModel, transcript: str) -> LLMResult:
        prompt = [Message.system(SUMMARY_PROMPT), Message.user(transcript)]
        try:
            return await asyncio.wait_for(summarizer.complete(prompt), self._summarizer_timeout)
        except asyncio.TimeoutError:
            raise ModelTimeoutError(self._summarizer_timeout or 0) from None
        except AgentChainError:
            raise
        except Exception as exc:
            raise ProviderError(None, f"summarizer failed: {exc}") from exc


def _check_resolved(turn: Turn) -> None:
    """An assistant turn with tool calls must carry exactly one result per call."""
    call_ids = [c.id for c in turn.message.tool_calls]
    result_ids = [r.tool_call_id for r in turn.results]
    if sorted(call_ids) != sorted(result_ids):
        raise ValueError(
            f"turn results {result_ids} do not resolve tool calls {call_ids}"
        )
