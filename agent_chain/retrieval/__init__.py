from agent_chain.retrieval.chunking import (
    chunk_document,
    fixed_size_splitter,
    make_chunk_id,
    separator_splitter,
)
from agent_chain.retrieval.in_memory import HashingEmbedder, InMemoryVectorStore
from agent_chain.retrieval.interface import Embedder, MetadataFilter, StoreHit, VectorStore
from agent_chain.retrieval.openai_embedder import OpenAIEmbedder
from agent_chain.retrieval.retriever import Retriever

__all__ = [
    "Embedder",
    "HashingEmbedder",
    "InMemoryVectorStore",
    "MetadataFilter",
    "OpenAIEmbedder",
    "Retriever",
    "StoreHit",
    "VectorStore",
    "chunk_document",
    "fixed_size_splitter",
    "make_chunk_id",
    "separator_splitter",
]
