"""Conversation memory interface — depends only on engine.models."""

from __future__ import annotations

from abc import ABC, abstractmethod

from agent_chain.engine.models import Message, Turn


class Memory(ABC):
    """Ordered conversation history.

    Not locked internally: callers that share one instance between
    concurrent runs must synchronise access themselves.
    """

    @abstractmethod
    async def append(self, turn: Turn) -> None: ...

    @abstractmethod
    def history(self) -> list[Message]:
        """Return a read-only snapshot, oldest first."""

    @abstractmethod
    def clear(self) -> None: ...

    def transcript(self) -> str:
        return "\n".join(f"{m.role.value}: {m.content}" for m in self.history())
