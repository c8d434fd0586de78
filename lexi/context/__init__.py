"""Semantic context retrieval over stored message embeddings."""

from lexi.context.background import EmbeddingWriteQueue
from lexi.context.service import ContextService
from lexi.context.stores import (
    EmbeddingStore,
    InMemoryEmbeddingStore,
    MongoEmbeddingStore,
)

__all__ = [
    "ContextService",
    "EmbeddingStore",
    "EmbeddingWriteQueue",
    "InMemoryEmbeddingStore",
    "MongoEmbeddingStore",
]
