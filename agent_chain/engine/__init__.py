from agent_chain.engine.models import (
    AgentEvent,
    AgentEventType,
    Cancelled,
    Chunk,
    Document,
    ErrorEvent,
    ErrorKind,
    FinalAnswer,
    LLMResult,
    Message,
    Role,
    ScoredChunk,
    StreamChunk,
    TokenDelta,
    ToolCall,
    ToolFailure,
    ToolFinished,
    ToolResult,
    ToolStarted,
    Turn,
)
from agent_chain.engine.errors import (
    AgentChainError,
    CapacityExceeded,
    EmbeddingError,
    MaxStepsExceeded,
    ModelTimeoutError,
    ProviderError,
    RetrievalError,
    StoreError,
    ToolExecutionError,
    TooManyToolFailures,
    UnknownToolError,
)
from agent_chain.engine.config import ExecutorConfig, MemoryConfig, RetrieverConfig
from agent_chain.engine.cancellation import CancellationToken
from agent_chain.engine.llm import ChatModel, DemoMockChatModel, MockChatModel, OpenAIChatModel
from agent_chain.engine.agent import AgentExecutor, RunState

__all__ = [
    "AgentChainError",
    "AgentEvent",
    "AgentEventType",
    "AgentExecutor",
    "CancellationToken",
    "Cancelled",
    "CapacityExceeded",
    "ChatModel",
    "Chunk",
    "DemoMockChatModel",
    "Document",
    "EmbeddingError",
    "ErrorEvent",
    "ErrorKind",
    "ExecutorConfig",
    "FinalAnswer",
    "LLMResult",
    "MaxStepsExceeded",
    "MemoryConfig",
    "Message",
    "MockChatModel",
    "ModelTimeoutError",
    "OpenAIChatModel",
    "ProviderError",
    "RetrievalError",
    "RetrieverConfig",
    "Role",
    "RunState",
    "ScoredChunk",
    "StoreError",
    "StreamChunk",
    "TokenDelta",
    "ToolCall",
    "ToolExecutionError",
    "ToolFailure",
    "ToolFinished",
    "ToolResult",
    "ToolStarted",
    "TooManyToolFailures",
    "Turn",
    "UnknownToolError",
]
