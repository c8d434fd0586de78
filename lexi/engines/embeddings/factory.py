"""Factory for creating embedding providers in fallback order."""

import logging

from lexi.core.config import Settings, get_settings
from lexi.engines.embeddings.base import EmbeddingProvider
from lexi.engines.embeddings.google import GoogleEmbeddingProvider
from lexi.engines.embeddings.openai import OpenAIEmbeddingProvider

logger = logging.getLogger(__name__)

SUPPORTED_PROVIDERS = ("openai", "google")


def create_embedding_provider(
    provider: str, settings: Settings | None = None
) -> EmbeddingProvider:
    """Create one embedding provider by name.

    Args:
        provider: Provider type ("openai", "google")
        settings: Settings to read keys/models from (defaults to get_settings())

    Returns:
        EmbeddingProvider instance (possibly unconfigured)

    Raises:
        ValueError: If provider type is invalid

    Example:
        >>> provider = create_embedding_provider("openai")
        >>> provider.dimension
        1536
    """
    settings = settings or get_settings()
    provider_lower = provider.lower()

    if provider_lower == "openai":
        return OpenAIEmbeddingProvider(
            model=settings.openai_embedding_model,
            api_key=settings.openai_api_key or None,
            dimensions=settings.embedding_dimension,
            timeout=settings.provider_timeout,
            max_chars=settings.embedding_max_chars,
        )
    elif provider_lower == "google":
        return GoogleEmbeddingProvider(
            model=settings.google_embedding_model,
            api_key=settings.google_api_key or None,
            dimensions=settings.embedding_dimension,
            timeout=settings.provider_timeout,
            max_chars=settings.embedding_max_chars,
        )
    else:
        raise ValueError(
            f"Unknown embedding provider: {provider}. "
            f"Supported: {', '.join(SUPPORTED_PROVIDERS)}"
        )


def create_embedding_providers(
    settings: Settings | None = None,
) -> list[EmbeddingProvider]:
    """Create every embedding provider, preferred one first.

    Priority order:
        1. Settings.embedding_provider (default: openai)
        2. The remaining supported providers
    """
    settings = settings or get_settings()
    order = [settings.embedding_provider] + [
        name for name in SUPPORTED_PROVIDERS if name != settings.embedding_provider
    ]
    providers = [create_embedding_provider(name, settings) for name in order]

    configured = [p.provider_name for p in providers if p.is_configured]
    if not configured:
        logger.warning(
            "No embedding provider is configured. Set OPENAI_API_KEY or GOOGLE_API_KEY."
        )
    else:
        logger.info(f"Embedding providers configured: {configured}")
    return providers
