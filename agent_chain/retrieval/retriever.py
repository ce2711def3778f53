"""Retriever — index documents, then embed, search, filter, dedupe and rank."""

from __future__ import annotations

import logging
import math
from typing import Any, Iterable

from agent_chain.engine.config import RetrieverConfig
from agent_chain.engine.errors import RetrievalError
from agent_chain.engine.models import Chunk, Document, ScoredChunk
from agent_chain.retrieval.chunking import Splitter, chunk_document, fixed_size_splitter
from agent_chain.retrieval.interface import Embedder, MetadataFilter, StoreHit, VectorStore

logger = logging.getLogger(__name__)

# Row metadata keys written at index time, stripped back out on retrieval.
_RESERVED = ("_source_id", "_source_hash", "_start", "_end")


class Retriever:
    """Turns a query into a ranked, deduplicated list of ``ScoredChunk``.

    Retrieval is all-or-nothing: any embedder or store failure raises
    ``RetrievalError`` and no partial result is returned.

    Steps:
    1. Embed the query.
    2. Search the store for ``ceil(k * overfetch_factor)`` candidates.
    3. Apply the optional metadata filter.
    4. Keep the best chunk per document if ``one_chunk_per_document``.
    5. Sort by score descending, chunk id ascending; truncate to ``k``.
    6. Optionally rescale the returned scores linearly to [0, 1].
    """

    def __init__(
        self,
        embedder: Embedder,
        store: VectorStore,
        config: RetrieverConfig | None = None,
        splitter: Splitter | None = None,
    ) -> None:
        self._embedder = embedder
        self._store = store
        self.config = config or RetrieverConfig()
        self._splitter = splitter or fixed_size_splitter()

    # -- indexing -----------------------------------------------------------

    async def index(
        self,
        documents: Iterable[Document],
        splitter: Splitter | None = None,
    ) -> list[str]:
        """Chunk, embed and upsert ``documents``. Returns the chunk ids written.

        Re-indexing identical content yields identical ids, so the store
        ends up with one row per chunk.
        """
        split = splitter or self._splitter
        written: list[str] = []
        for document in documents:
            for chunk in chunk_document(document, split):
                try:
                    vector = await self._embedder.embed(chunk.text)
                except Exception as exc:
                    raise RetrievalError("embed", exc) from exc
                try:
                    await self._store.upsert(chunk.id, vector, chunk.text, _row_metadata(chunk))
                except Exception as exc:
                    raise RetrievalError("upsert", exc) from exc
                written.append(chunk.id)
        logger.info("indexed %d chunks", len(written))
        return written

    # -- retrieval ----------------------------------------------------------

    async def retrieve(
        self,
        query: str,
        k: int = 4,
        filter: MetadataFilter | None = None,
    ) -> list[ScoredChunk]:
        if k <= 0:
            raise ValueError("k must be positive")

        try:
            vector = await self._embedder.embed(query)
        except Exception as exc:
            raise RetrievalError("embed", exc) from exc

        fetch = math.ceil(k * self.config.overfetch_factor)
        try:
            hits = await self._store.search(vector, fetch)
        except Exception as exc:
            raise RetrievalError("search", exc) from exc

        candidates = [ScoredChunk(chunk=_to_chunk(hit), score=hit.score) for hit in hits]
        if filter is not None:
            candidates = [c for c in candidates if filter(c.chunk.metadata)]
        if self.config.one_chunk_per_document:
            candidates = self._best_per_document(candidates)

        candidates.sort(key=_rank_key)
        selected = candidates[:k]
        if self.config.normalize_scores:
            selected = _normalize(selected)

        logger.debug("retrieve k=%d fetched=%d returned=%d", k, len(hits), len(selected))
        return [
            ScoredChunk(chunk=item.chunk, score=item.score, rank=i)
            for i, item in enumerate(selected)
        ]

    @staticmethod
    def format_context(chunks: list[ScoredChunk]) -> str:
        """Stuff retrieved chunks into one context block."""
        return "\n\n".join(f"[{c.chunk.source_id}] {c.chunk.text}" for c in chunks)

    def _best_per_document(self, candidates: list[ScoredChunk]) -> list[ScoredChunk]:
        best: dict[str, ScoredChunk] = {}
        for item in candidates:
            if self.config.dedup_key == "content_hash":
                key = item.chunk.source_hash
            else:
                key = item.chunk.source_id
            current = best.get(key)
            if current is None or _rank_key(item) < _rank_key(current):
                best[key] = item
        return list(best.values())


def _rank_key(item: ScoredChunk) -> tuple[float, str]:
    return (-item.score, item.chunk.id)


def _normalize(items: list[ScoredChunk]) -> list[ScoredChunk]:
    """Linear rescale to [0, 1] over the batch's own min/max."""
    if not items:
        return []
    high = max(item.score for item in items)
    low = min(item.score for item in items)
    if high == low:
        return [item.model_copy(update={"score": 1.0}) for item in items]
    return [
        item.model_copy(update={"score": (item.score - low) / (high - low)})
        for item in items
    ]


def _row_metadata(chunk: Chunk) -> dict[str, Any]:
    return {
        **chunk.metadata,
        "_source_id": chunk.source_id,
        "_source_hash": chunk.source_hash,
        "_start": chunk.start,
        "_end": chunk.end,
    }


def _to_chunk(hit: StoreHit) -> Chunk:
    meta = hit.metadata
    return Chunk(
        id=hit.id,
        source_id=str(meta.get("_source_id", hit.id)),
        source_hash=str(meta.get("_source_hash", "")),
        text=hit.text,
        start=int(meta.get("_start", 0)),
        end=int(meta.get("_end", len(hit.text.encode()))),
        metadata={key: value for key, value in meta.items() if key not in _RESERVED},
    )
