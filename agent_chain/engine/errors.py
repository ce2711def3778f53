"""Exception taxonomy. Each error carries a stable ``kind`` for event reporting."""

from __future__ import annotations

from agent_chain.engine.models import ErrorKind


class AgentChainError(Exception):
    kind: ErrorKind = ErrorKind.INTERNAL


class ProviderError(AgentChainError):
    """Model provider failed. Transient; retrying is the caller's concern."""

    kind = ErrorKind.PROVIDER_ERROR

    def __init__(self, status: int | None, message: str) -> None:
        super().__init__(f"provider error (status={status}): {message}")
        self.status = status
        self.message = message


class ModelTimeoutError(ProviderError):
    kind = ErrorKind.MODEL_TIMEOUT

    def __init__(self, timeout: float) -> None:
        super().__init__(None, f"model call timed out after {timeout:g}s")
        self.timeout = timeout


class ToolExecutionError(AgentChainError):
    kind = ErrorKind.TOOL_EXECUTION_ERROR

    def __init__(self, tool: str, cause: str, failure_kind: str = "tool_execution_error") -> None:
        super().__init__(f"tool '{tool}' failed: {cause}")
        self.tool = tool
        self.cause = cause
        self.failure_kind = failure_kind


class UnknownToolError(ToolExecutionError):
    def __init__(self, tool: str) -> None:
        super().__init__(tool, f"Tool '{tool}' not found", failure_kind="unknown_tool")


class EmbeddingError(AgentChainError):
    kind = ErrorKind.RETRIEVAL_ERROR


class StoreError(AgentChainError):
    kind = ErrorKind.RETRIEVAL_ERROR


class RetrievalError(AgentChainError):
    """All-or-nothing retrieval failure. ``stage`` is ``embed``, ``search`` or ``upsert``."""

    kind = ErrorKind.RETRIEVAL_ERROR

    def __init__(self, stage: str, cause: Exception) -> None:
        super().__init__(f"retrieval failed at stage '{stage}': {cause}")
        self.stage = stage
        self.cause = cause


class MaxStepsExceeded(AgentChainError):
    kind = ErrorKind.MAX_STEPS_EXCEEDED

    def __init__(self, max_steps: int) -> None:
        super().__init__(f"Max steps ({max_steps}) reached without final answer")
        self.max_steps = max_steps


class CapacityExceeded(AgentChainError):
    kind = ErrorKind.CAPACITY_EXCEEDED

    def __init__(self, budget: int, required: int) -> None:
        super().__init__(f"memory budget of {budget} tokens exceeded ({required} required)")
        self.budget = budget
        self.required = required


class TooManyToolFailures(AgentChainError):
    kind = ErrorKind.TOOL_EXECUTION_ERROR

    def __init__(self, count: int) -> None:
        super().__init__(f"Too many consecutive tool failures ({count} in a row)")
        self.count = count
