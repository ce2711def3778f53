"""Embedder and VectorStore ABCs — the retrieval collaborators."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Callable

from pydantic import BaseModel, Field

from agent_chain.engine.models import Scalar

MetadataFilter = Callable[[dict[str, Scalar]], bool]


class StoreHit(BaseModel):
    id: str
    score: float  # higher = more relevant, in the store's own metric
    text: str
    metadata: dict[str, Any] = Field(default_factory=dict)


class Embedder(ABC):
    """Maps text to a fixed-dimension vector. Fails with ``EmbeddingError``."""

    @abstractmethod
    async def embed(self, text: str) -> list[float]: ...


class VectorStore(ABC):
    """Similarity index over (id, vector, text, metadata) rows.

    ``upsert`` replaces any row with the same id. ``search`` returns hits
    ordered by score descending. Fails with ``StoreError``.
    """

    metric: str = "cosine"

    @abstractmethod
    async def upsert(
        self,
        id: str,
        vector: list[float],
        text: str,
        metadata: dict[str, Any],
    ) -> None: ...

    @abstractmethod
    async def search(
        self,
        vector: list[float],
        k: int,
        filter: MetadataFilter | None = None,
    ) -> list[StoreHit]: ...
