"""Chat model interface, OpenAI implementation, and mocks."""

from __future__ import annotations

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator

from agent_chain.engine.errors import ProviderError
from agent_chain.engine.models import LLMResult, Message, Role, StreamChunk, ToolCall

logger = logging.getLogger(__name__)


class ChatModel(ABC):
    """Abstract chat model.

    ``complete`` returns the whole step. ``stream`` yields text deltas and a
    final chunk carrying the assembled ``LLMResult``. Providers without native
    streaming inherit a default that splits the completed content into word
    chunks.
    """

    @abstractmethod
    async def complete(
        self,
        messages: list[Message],
        tools: list[dict[str, Any]] | None = None,
    ) -> LLMResult: ...

    async def stream(
        self,
        messages: list[Message],
        tools: list[dict[str, Any]] | None = None,
    ) -> AsyncIterator[StreamChunk]:
        result = await self.complete(messages, tools)
        if result.content:
            words = result.content.split(" ")
            for i, word in enumerate(words):
                yield StreamChunk(delta=word if i == len(words) - 1 else word + " ")
        yield StreamChunk(result=result)


def _parse_arguments(raw: str | None) -> dict[str, Any]:
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("model produced non-JSON tool arguments: %.200s", raw)
        return {"__raw__": raw}
    return parsed if isinstance(parsed, dict) else {"value": parsed}


# ---------------------------------------------------------------------------
# OpenAI implementation
# ---------------------------------------------------------------------------

class OpenAIChatModel(ChatModel):
    def __init__(self, api_key: str | None = None, model: str = "gpt-4o-mini") -> None:
        # Late import so the rest of the package works without openai configured
        from openai import AsyncOpenAI

        self._client = AsyncOpenAI(api_key=api_key)
        self._model = model

    def _request(self, messages: list[Message], tools: list[dict[str, Any]] | None) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "model": self._model,
            "messages": [m.to_openai() for m in messages],
        }
        if tools:
            kwargs["tools"] = tools
        return kwargs

    async def complete(
        self,
        messages: list[Message],
        tools: list[dict[str, Any]] | None = None,
    ) -> LLMResult:
        import openai

        try:
            response = await self._client.chat.completions.create(**self._request(messages, tools))
        except openai.APIStatusError as exc:
            raise ProviderError(exc.status_code, exc.message) from exc
        except openai.APIError as exc:
            raise ProviderError(None, str(exc)) from exc

        choice = response.choices[0]
        tool_calls = [
            ToolCall(
                id=tc.id,
                name=tc.function.name,
                arguments=_parse_arguments(tc.function.arguments),
            )
            for tc in choice.message.tool_calls or []
        ]
        return LLMResult(content=choice.message.content or "", tool_calls=tool_calls)

    async def stream(
        self,
        messages: list[Message],
        tools: list[dict[str, Any]] | None = None,
    ) -> AsyncIterator[StreamChunk]:
        import openai

        content: list[str] = []
        # Tool-call fragments arrive keyed by index; buffer until the stream ends.
        partial: dict[int, dict[str, Any]] = {}
        try:
            response = await self._client.chat.completions.create(
                **self._request(messages, tools), stream=True
            )
            async for event in response:
                if not event.choices:
                    continue
                delta = event.choices[0].delta
                if delta.content:
                    content.append(delta.content)
                    yield StreamChunk(delta=delta.content)
                for tc in delta.tool_calls or []:
                    slot = partial.setdefault(tc.index, {"id": "", "name": "", "arguments": ""})
                    if tc.id:
                        slot["id"] = tc.id
                    if tc.function is not None:
                        if tc.function.name:
                            slot["name"] += tc.function.name
                        if tc.function.arguments:
                            slot["arguments"] += tc.function.arguments
        except openai.APIStatusError as exc:
            raise ProviderError(exc.status_code, exc.message) from exc
        except openai.APIError as exc:
            raise ProviderError(None, str(exc)) from exc

        tool_calls = [
            ToolCall(id=slot["id"], name=slot["name"], arguments=_parse_arguments(slot["arguments"]))
            for _, slot in sorted(partial.items())
        ]
        yield StreamChunk(result=LLMResult(content="".join(content), tool_calls=tool_calls))


# ---------------------------------------------------------------------------
# Test mock: deterministic, pre-loaded responses
# ---------------------------------------------------------------------------

class MockChatModel(ChatModel):
    """Returns pre-configured responses in order. Used in unit tests.

    A response may be an ``Exception`` instance, which is raised instead.
    ``delay`` adds artificial latency to every call.
    """

    def __init__(self, responses: list[LLMResult | Exception], delay: float = 0.0) -> None:
        self._responses = list(responses)
        self._call_index = 0
        self._delay = delay
        self.calls: list[list[Message]] = []

    async def complete(
        self,
        messages: list[Message],
        tools: list[dict[str, Any]] | None = None,
    ) -> LLMResult:
        self.calls.append(list(messages))
        if self._delay:
            await asyncio.sleep(self._delay)
        if self._call_index >= len(self._responses):
            return LLMResult(content="[mock responses exhausted]")
        result = self._responses[self._call_index]
        self._call_index += 1
        if isinstance(result, Exception):
            raise result
        return result

    @property
    def call_count(self) -> int:
        return len(self.calls)


# ---------------------------------------------------------------------------
# Demo mock: context-aware, for running without an API key
# ---------------------------------------------------------------------------

class DemoMockChatModel(ChatModel):
    """Demonstrates the full tool-calling loop without a real LLM.

    Behaviour:
    1. If the last message is a tool result → return a summary.
    2. If tools are available → call the first tool, passing the user text
       as its first required argument.
    3. Otherwise → return a generic text response.
    """

    async def complete(
        self,
        messages: list[Message],
        tools: list[dict[str, Any]] | None = None,
    ) -> LLMResult:
        last = messages[-1] if messages else None

        if last is not None and last.role is Role.TOOL:
            return LLMResult(content=f"Based on the gathered information: {last.content[:200]}")

        if tools:
            function = tools[0]["function"]
            required = function.get("parameters", {}).get("required") or ["query"]
            user_text = next(
                (m.content for m in reversed(messages) if m.role is Role.USER and m.content),
                "query",
            )
            return LLMResult(tool_calls=[
                ToolCall(id="demo-tc-1", name=function["name"], arguments={required[0]: user_text}),
            ])

        return LLMResult(content="This is a demo response. Set OPENAI_API_KEY for real LLM output.")
