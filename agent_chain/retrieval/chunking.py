"""Document chunking with stable, offset-derived chunk ids."""

from __future__ import annotations

import hashlib
from typing import Callable

from agent_chain.engine.models import Chunk, Document

# Splits text into (character offset, piece) spans, in source order.
Splitter = Callable[[str], list[tuple[int, str]]]


def make_chunk_id(source_id: str, start: int, end: int) -> str:
    return hashlib.sha256(f"{source_id}:{start}:{end}".encode()).hexdigest()[:32]


def content_hash(text: str) -> str:
    return hashlib.sha256(text.encode()).hexdigest()


def fixed_size_splitter(chunk_size: int = 1000, overlap: int = 200) -> Splitter:
    """Character windows of ``chunk_size`` sharing ``overlap`` characters."""
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    if not 0 <= overlap < chunk_size:
        raise ValueError("overlap must be in [0, chunk_size)")

    def split(text: str) -> list[tuple[int, str]]:
        pieces: list[tuple[int, str]] = []
        step = chunk_size - overlap
        for start in range(0, len(text), step):
            pieces.append((start, text[start:start + chunk_size]))
            if start + chunk_size >= len(text):
                break
        return pieces

    return split


def separator_splitter(separator: str = "\n\n") -> Splitter:
    """Pieces between occurrences of ``separator``, which is dropped."""
    if not separator:
        raise ValueError("separator must be non-empty")

    def split(text: str) -> list[tuple[int, str]]:
        spans: list[tuple[int, str]] = []
        pos = 0
        for piece in text.split(separator):
            spans.append((pos, piece))
            pos += len(piece) + len(separator)
        return spans

    return split


def chunk_document(document: Document, splitter: Splitter) -> list[Chunk]:
    """Split ``document`` and convert each span to UTF-8 byte offsets."""
    text = document.text
    source_hash = content_hash(text)
    chunks: list[Chunk] = []
    for pos, piece in splitter(text):
        if text[pos:pos + len(piece)] != piece:
            raise ValueError(
                f"splitter span at {pos} does not match document {document.id!r}"
            )
        if not piece.strip():
            continue
        start = len(text[:pos].encode())
        end = start + len(piece.encode())
        chunks.append(Chunk(
            id=make_chunk_id(document.id, start, end),
            source_id=document.id,
            source_hash=source_hash,
            text=piece,
            start=start,
            end=end,
            metadata=dict(document.metadata),
        ))
    return chunks
