"""Lexi - AI generation orchestration and semantic context retrieval.

Lexi generates text through interchangeable providers (Gemini, OpenAI) with
ordered fallback, response caching and per-conversation provider affinity,
and retrieves the prior messages most relevant to a new query from stored
message embeddings.

Basic usage:
    >>> from lexi import GenerationOptions, create_services
    >>> async with create_services() as services:
    ...     matches = await services.context.get_relevant_context(
    ...         "What was the termination notice period?",
    ...         user_id="u1",
    ...         conversation_id="c1",
    ...     )
    ...     result = await services.gateway.generate_for_conversation(
    ...         "c1",
    ...         "What was the termination notice period?",
    ...         GenerationOptions(context=services.context.format_context_messages(matches)),
    ...     )
"""

from lexi.cache import CacheConfig, CacheService, CacheStats
from lexi.context import (
    ContextService,
    EmbeddingStore,
    EmbeddingWriteQueue,
    InMemoryEmbeddingStore,
    MongoEmbeddingStore,
)
from lexi.core import (
    AllProvidersFailedError,
    ConfigurationError,
    ContextMatch,
    EmbeddingError,
    EmbeddingMetadata,
    GenerationError,
    GenerationOptions,
    GenerationResult,
    LexiError,
    MessageEmbedding,
    MessageEntry,
    RetrievalConfig,
    Settings,
    StoreError,
    ValidationError,
    VectorSearchUnavailableError,
    get_settings,
)
from lexi.engines import EmbeddingGenerator, ProviderGateway
from lexi.utils.service_factory import LexiServices, create_services

__version__ = "0.1.0"

__all__ = [
    "AllProvidersFailedError",
    "CacheConfig",
    "CacheService",
    "CacheStats",
    "ConfigurationError",
    "ContextMatch",
    "ContextService",
    "EmbeddingError",
    "EmbeddingGenerator",
    "EmbeddingMetadata",
    "EmbeddingStore",
    "EmbeddingWriteQueue",
    "GenerationError",
    "GenerationOptions",
    "GenerationResult",
    "InMemoryEmbeddingStore",
    "LexiError",
    "LexiServices",
    "MessageEmbedding",
    "MessageEntry",
    "MongoEmbeddingStore",
    "ProviderGateway",
    "RetrievalConfig",
    "Settings",
    "StoreError",
    "ValidationError",
    "VectorSearchUnavailableError",
    "create_services",
    "get_settings",
    "__version__",
]
