"""In-process vector store and a deterministic hashing embedder."""

from __future__ import annotations

import hashlib
import re
from typing import Any

import numpy as np

from agent_chain.engine.errors import StoreError
from agent_chain.retrieval.interface import Embedder, MetadataFilter, StoreHit, VectorStore

_WORD = re.compile(r"\w+", flags=re.UNICODE)

METRICS = ("cosine", "dot", "euclidean")


class InMemoryVectorStore(VectorStore):
    """Brute-force similarity search over a dict of rows.

    Scores: cosine similarity, raw dot product, or negated euclidean
    distance, so that higher is always more relevant. Ties are ordered by
    id ascending.
    """

    def __init__(self, metric: str = "cosine") -> None:
        if metric not in METRICS:
            raise ValueError(f"Unknown metric '{metric}', expected one of {METRICS}")
        self.metric = metric
        self._rows: dict[str, tuple[np.ndarray, str, dict[str, Any]]] = {}
        self._dim: int | None = None

    def __len__(self) -> int:
        return len(self._rows)

    def __contains__(self, id: object) -> bool:
        return id in self._rows

    async def upsert(
        self,
        id: str,
        vector: list[float],
        text: str,
        metadata: dict[str, Any],
    ) -> None:
        arr = np.asarray(vector, dtype=float)
        if arr.ndim != 1 or arr.size == 0:
            raise StoreError(f"vector for '{id}' must be a non-empty 1-d sequence")
        if self._dim is not None and arr.size != self._dim:
            raise StoreError(f"vector for '{id}' has dimension {arr.size}, expected {self._dim}")
        self._dim = arr.size
        self._rows[id] = (arr, text, dict(metadata))

    async def search(
        self,
        vector: list[float],
        k: int,
        filter: MetadataFilter | None = None,
    ) -> list[StoreHit]:
        if k <= 0 or not self._rows:
            return []
        query = np.asarray(vector, dtype=float)
        if query.shape != (self._dim,):
            raise StoreError(f"query has dimension {query.size}, expected {self._dim}")

        ids = [i for i, row in self._rows.items() if filter is None or filter(row[2])]
        if not ids:
            return []
        matrix = np.stack([self._rows[i][0] for i in ids])
        scores = self._score(matrix, query)

        hits = [
            StoreHit(id=i, score=float(s), text=self._rows[i][1], metadata=dict(self._rows[i][2]))
            for i, s in zip(ids, scores)
        ]
        hits.sort(key=lambda h: (-h.score, h.id))
        return hits[:k]

    def _score(self, matrix: np.ndarray, query: np.ndarray) -> np.ndarray:
        if self.metric == "dot":
            return matrix @ query
        if self.metric == "euclidean":
            return -np.linalg.norm(matrix - query, axis=1)
        denom = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
        dots = matrix @ query
        return np.divide(dots, denom, out=np.zeros_like(dots), where=denom != 0)


class HashingEmbedder(Embedder):
    """Bag-of-words feature hashing, L2-normalised. No network, no model."""

    def __init__(self, dim: int = 256) -> None:
        if dim <= 0:
            raise ValueError("dim must be positive")
        self.dim = dim

    async def embed(self, text: str) -> list[float]:
        vec = np.zeros(self.dim)
        for token in _WORD.findall(text.lower()):
            h = int.from_bytes(hashlib.sha1(token.encode()).digest()[:8], "big")
            vec[h % self.dim] += 1.0 if (h >> 63) == 0 else -1.0
        norm = np.linalg.norm(vec)
        if norm:
            vec /= norm
        return vec.tolist()
