"""Embedding providers and the fallback-aware EmbeddingGenerator.

Supports:
- OpenAI embeddings (default, native batching, requires OPENAI_API_KEY)
- Google Gemini embeddings (requires GOOGLE_API_KEY)
"""

from lexi.engines.embeddings.base import EmbeddingProvider
from lexi.engines.embeddings.factory import (
    create_embedding_provider,
    create_embedding_providers,
)
from lexi.engines.embeddings.generator import EmbeddingGenerator
from lexi.engines.embeddings.google import GoogleEmbeddingProvider
from lexi.engines.embeddings.openai import OpenAIEmbeddingProvider

__all__ = [
    "EmbeddingGenerator",
    "EmbeddingProvider",
    "GoogleEmbeddingProvider",
    "OpenAIEmbeddingProvider",
    "create_embedding_provider",
    "create_embedding_providers",
]
