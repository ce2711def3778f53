"""Core data models — no internal dependencies, only Pydantic + stdlib."""

from __future__ import annotations

import json
import time
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Conversation
# ---------------------------------------------------------------------------

class Role(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class ToolCall(BaseModel):
    """A single tool/function call requested by the model."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)


class Message(BaseModel):
    """One chat message. Immutable once created."""

    model_config = ConfigDict(frozen=True)

    role: Role
    content: str = ""
    tool_calls: tuple[ToolCall, ...] = ()
    tool_call_id: str | None = None

    @classmethod
    def system(cls, content: str) -> Message:
        return cls(role=Role.SYSTEM, content=content)

    @classmethod
    def user(cls, content: str) -> Message:
        return cls(role=Role.USER, content=content)

    @classmethod
    def assistant(cls, content: str = "", tool_calls: list[ToolCall] | None = None) -> Message:
        return cls(role=Role.ASSISTANT, content=content, tool_calls=tuple(tool_calls or ()))

    @classmethod
    def tool(cls, tool_call_id: str, content: str) -> Message:
        return cls(role=Role.TOOL, content=content, tool_call_id=tool_call_id)

    def to_openai(self) -> dict[str, Any]:
        """Render in the OpenAI chat-completions wire shape."""
        msg: dict[str, Any] = {"role": self.role.value, "content": self.content}
        if self.tool_calls:
            msg["content"] = self.content or None
            msg["tool_calls"] = [
                {
                    "id": tc.id,
                    "type": "function",
                    "function": {"name": tc.name, "arguments": json.dumps(tc.arguments)},
                }
                for tc in self.tool_calls
            ]
        if self.tool_call_id is not None:
            msg["tool_call_id"] = self.tool_call_id
        return msg


class ToolFailure(BaseModel):
    """Failure descriptor carried by a failed ToolResult."""

    model_config = ConfigDict(frozen=True)

    # unknown_tool | invalid_arguments | invalid_output | timeout
    # | usage_limit_exceeded | tool_execution_error
    kind: str
    message: str


class ToolResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    tool_call_id: str
    output: Any = None
    error: ToolFailure | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_message(self) -> Message:
        if self.error is not None:
            content = f"Tool call failed ({self.error.kind}): {self.error.message}"
        elif isinstance(self.output, str):
            content = self.output
        else:
            content = json.dumps(self.output, default=str)
        return Message.tool(self.tool_call_id, content)


class Turn(BaseModel):
    """One message plus, for a tool-calling assistant message, its results."""

    model_config = ConfigDict(frozen=True)

    message: Message
    results: tuple[ToolResult, ...] = ()
    is_summary: bool = False

    def messages(self) -> list[Message]:
        return [self.message, *(r.to_message() for r in self.results)]


# ---------------------------------------------------------------------------
# LLM helpers
# ---------------------------------------------------------------------------

class LLMResult(BaseModel):
    """Complete model response for one step."""

    content: str = ""
    tool_calls: list[ToolCall] = Field(default_factory=list)

    def to_message(self) -> Message:
        return Message.assistant(self.content, self.tool_calls)


class StreamChunk(BaseModel):
    """One item of a streamed response.

    Text arrives in ``delta``; the last chunk carries the assembled ``result``.
    """

    delta: str = ""
    result: LLMResult | None = None


# ---------------------------------------------------------------------------
# Retrieval
# ---------------------------------------------------------------------------

Scalar = Union[str, int, float, bool, None]


class Document(BaseModel):
    id: str
    text: str
    metadata: dict[str, Scalar] = Field(default_factory=dict)


class Chunk(BaseModel):
    """Contiguous span of a source document. ``start``/``end`` are UTF-8 byte offsets."""

    model_config = ConfigDict(frozen=True)

    id: str
    source_id: str
    text: str
    start: int
    end: int
    source_hash: str = ""  # sha256 of the whole source text
    metadata: dict[str, Scalar] = Field(default_factory=dict)


class ScoredChunk(BaseModel):
    chunk: Chunk
    score: float
    rank: int = 0


# ---------------------------------------------------------------------------
# Outbound events (executor → caller)
# ---------------------------------------------------------------------------

class AgentEventType(str, Enum):
    TOKEN_DELTA = "token_delta"
    TOOL_STARTED = "tool_started"
    TOOL_FINISHED = "tool_finished"
    FINAL_ANSWER = "final_answer"
    ERROR = "error"
    CANCELLED = "cancelled"


class ErrorKind(str, Enum):
    PROVIDER_ERROR = "provider_error"
    MODEL_TIMEOUT = "model_timeout"
    TOOL_EXECUTION_ERROR = "tool_execution_error"
    RETRIEVAL_ERROR = "retrieval_error"
    MAX_STEPS_EXCEEDED = "max_steps_exceeded"
    CAPACITY_EXCEEDED = "capacity_exceeded"
    INTERNAL = "internal"


class _EventBase(BaseModel):
    run_id: str = ""
    timestamp: float = Field(default_factory=time.time)


class TokenDelta(_EventBase):
    type: Literal[AgentEventType.TOKEN_DELTA] = AgentEventType.TOKEN_DELTA
    text: str


class ToolStarted(_EventBase):
    type: Literal[AgentEventType.TOOL_STARTED] = AgentEventType.TOOL_STARTED
    call: ToolCall


class ToolFinished(_EventBase):
    type: Literal[AgentEventType.TOOL_FINISHED] = AgentEventType.TOOL_FINISHED
    call: ToolCall
    result: ToolResult


class FinalAnswer(_EventBase):
    type: Literal[AgentEventType.FINAL_ANSWER] = AgentEventType.FINAL_ANSWER
    text: str


class ErrorEvent(_EventBase):
    type: Literal[AgentEventType.ERROR] = AgentEventType.ERROR
    kind: ErrorKind
    message: str


class Cancelled(_EventBase):
    type: Literal[AgentEventType.CANCELLED] = AgentEventType.CANCELLED
    reason: str = ""


AgentEvent = Annotated[
    Union[TokenDelta, ToolStarted, ToolFinished, FinalAnswer, ErrorEvent, Cancelled],
    Field(discriminator="type"),
]
