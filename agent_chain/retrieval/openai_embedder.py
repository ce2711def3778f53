"""OpenAI embeddings client."""

from __future__ import annotations

import logging

from agent_chain.engine.errors import EmbeddingError
from agent_chain.retrieval.interface import Embedder

logger = logging.getLogger(__name__)


class OpenAIEmbedder(Embedder):
    def __init__(self, api_key: str | None = None, model: str = "text-embedding-3-small") -> None:
        # Late import so the rest of the package works without openai configured
        from openai import AsyncOpenAI

        self._client = AsyncOpenAI(api_key=api_key)
        self._model = model

    async def embed(self, text: str) -> list[float]:
        import openai

        try:
            response = await self._client.embeddings.create(model=self._model, input=text)
        except openai.APIError as exc:
            logger.warning("embedding request failed: %s", exc)
            raise EmbeddingError(str(exc)) from exc
        return list(response.data[0].embedding)
