"""Factory for creating generation providers in priority order."""

import logging

from lexi.core.config import Settings, get_settings
from lexi.engines.generation.base import GenerationProvider
from lexi.engines.generation.google import GoogleGenerationProvider
from lexi.engines.generation.openai import OpenAIGenerationProvider

logger = logging.getLogger(__name__)


def create_generation_provider(
    provider: str, settings: Settings | None = None
) -> GenerationProvider:
    """Create one generation provider by name.

    Args:
        provider: "google" or "openai"
        settings: Settings to read keys/models from (defaults to get_settings())

    Returns:
        GenerationProvider instance (possibly unconfigured)

    Raises:
        ValueError: If provider name is unknown
    """
    settings = settings or get_settings()
    provider_lower = provider.lower()

    if provider_lower == "google":
        return GoogleGenerationProvider(
            models=settings.google_generation_models,
            api_key=settings.google_api_key or None,
            timeout=settings.provider_timeout,
        )
    elif provider_lower == "openai":
        return OpenAIGenerationProvider(
            models=settings.openai_generation_models,
            api_key=settings.openai_api_key or None,
            timeout=settings.provider_timeout,
        )
    else:
        raise ValueError(
            f"Unknown generation provider: {provider}. Supported: google, openai"
        )


def create_generation_providers(
    settings: Settings | None = None,
) -> list[GenerationProvider]:
    """Create all generation providers in Settings.generation_providers order.

    Unconfigured providers are kept in the list: the gateway skips them
    and health checks report them unavailable.

    Example:
        >>> providers = create_generation_providers()
        >>> [p.provider_name for p in providers]
        ['google', 'openai']
    """
    settings = settings or get_settings()
    providers = [
        create_generation_provider(name, settings) for name in settings.generation_providers
    ]

    configured = [p.provider_name for p in providers if p.is_configured]
    if not configured:
        logger.warning(
            "No generation provider is configured. Set GOOGLE_API_KEY or OPENAI_API_KEY."
        )
    else:
        logger.info(f"Generation providers configured: {configured}")
    return providers
