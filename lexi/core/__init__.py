"""Core infrastructure for Lexi: configuration, errors, models, lifecycle."""

from lexi.core.config import Settings, get_settings, load_retrieval_config
from lexi.core.exceptions import (
    AllProvidersFailedError,
    ConfigurationError,
    EmbeddingError,
    GenerationError,
    LexiError,
    StoreError,
    ValidationError,
    VectorSearchUnavailableError,
)
from lexi.core.lifecycle import LifecycleManager, ShutdownPhase, ShutdownState
from lexi.core.models import (
    ContextMatch,
    ContextTurn,
    EmbeddingFilter,
    EmbeddingMetadata,
    GenerationOptions,
    GenerationResult,
    MessageEmbedding,
    MessageEntry,
    RetrievalConfig,
)

__all__ = [
    "AllProvidersFailedError",
    "ConfigurationError",
    "ContextMatch",
    "ContextTurn",
    "EmbeddingError",
    "EmbeddingFilter",
    "EmbeddingMetadata",
    "GenerationError",
    "GenerationOptions",
    "GenerationResult",
    "LexiError",
    "LifecycleManager",
    "MessageEmbedding",
    "MessageEntry",
    "RetrievalConfig",
    "Settings",
    "ShutdownPhase",
    "ShutdownState",
    "StoreError",
    "ValidationError",
    "VectorSearchUnavailableError",
    "get_settings",
    "load_retrieval_config",
]
