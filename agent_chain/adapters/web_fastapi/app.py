"""FastAPI SSE adapter — thin translation layer, no business logic."""

from __future__ import annotations

import json
import logging

from fastapi import FastAPI
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, Field

from agent_chain import create_executor
from agent_chain.engine.agent import AgentExecutor
from agent_chain.engine.config import ExecutorConfig

logger = logging.getLogger(__name__)


class ChatRequest(BaseModel):
    goal: str
    # Also names the trace file, so no path separators.
    run_id: str | None = Field(default=None, pattern=r"^[A-Za-z0-9_-][A-Za-z0-9_.-]{0,127}$")
    config: ExecutorConfig | None = None


def create_app(executor: AgentExecutor | None = None) -> FastAPI:
    executor = executor or create_executor(shared_memory=False)
    app = FastAPI(title="agent-chain API", version="0.1.0")

    @app.post("/chat")
    async def chat(request: ChatRequest) -> StreamingResponse:
        async def sse_stream():
            async for event in executor.run(request.goal, request.config, run_id=request.run_id):
                payload = json.dumps(event.model_dump(mode="json"), default=str)
                yield f"event: {event.type.value}\ndata: {payload}\n\n"

        return StreamingResponse(
            sse_stream(),
            media_type="text/event-stream",
            headers={
                "Cache-Control": "no-cache",
                "X-Accel-Buffering": "no",
            },
        )

    @app.get("/health")
    async def health() -> JSONResponse:
        return JSONResponse({"status": "ok"})

    return app


def serve() -> None:
    """Entry-point for ``agent-web`` console script."""
    import uvicorn

    uvicorn.run(
        "agent_chain.adapters.web_fastapi.app:create_app",
        factory=True,
        host="0.0.0.0",
        port=8000,
        log_level="info",
    )
