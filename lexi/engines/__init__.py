"""Generation gateway and embedding engines."""

from lexi.engines.embeddings import EmbeddingGenerator, EmbeddingProvider
from lexi.engines.gateway import ProviderGateway
from lexi.engines.generation import GenerationProvider

__all__ = [
    "EmbeddingGenerator",
    "EmbeddingProvider",
    "GenerationProvider",
    "ProviderGateway",
]
