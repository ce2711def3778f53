"""Pluggable token counting used by memory budgets."""

from __future__ import annotations

import json
import re
from abc import ABC, abstractmethod

from agent_chain.engine.models import Message

_TOKEN_PATTERN = re.compile(r"\w+|[^\w\s]", flags=re.UNICODE)


class Tokenizer(ABC):
    # Role and framing cost per message.
    message_overhead: int = 3

    @abstractmethod
    def count(self, text: str) -> int: ...

    def count_message(self, message: Message) -> int:
        total = self.message_overhead + self.count(message.content)
        for call in message.tool_calls:
            total += self.count(call.name) + self.count(json.dumps(call.arguments))
        return total


class RegexTokenizer(Tokenizer):
    """Counts words and punctuation marks. Cheap and deterministic."""

    def count(self, text: str) -> int:
        return len(_TOKEN_PATTERN.findall(text))


class TiktokenTokenizer(Tokenizer):
    """Exact counts for OpenAI models."""

    def __init__(self, encoding: str = "cl100k_base") -> None:
        import tiktoken

        self._encoding = tiktoken.get_encoding(encoding)

    def count(self, text: str) -> int:
        return len(self._encoding.encode(text)) if text else 0
