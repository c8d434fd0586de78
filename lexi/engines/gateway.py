"""Provider gateway: prompt -> generated text with fallback, caching and affinity."""

import asyncio
import logging
import time
from collections.abc import Sequence
from typing import Any

from lexi.cache import CacheService
from lexi.core.config import Settings, get_settings
from lexi.core.exceptions import AllProvidersFailedError, ValidationError
from lexi.core.models import GenerationOptions, GenerationResult
from lexi.engines.generation.base import GenerationProvider
from lexi.utils.fallback import AllCandidatesFailed, first_success

logger = logging.getLogger(__name__)


class ProviderGateway:
    """Generate text through interchangeable providers.

    Two entry points:
        generate_content: stateless, response-cached, tries every provider
            in priority order.
        generate_for_conversation: sticky per conversation, not cached,
            tries the remembered provider then exactly one alternate.

    Example:
        >>> gateway = ProviderGateway(providers, cache)
        >>> text = await gateway.generate_content(
        ...     "Draft a mutual NDA clause",
        ...     GenerationOptions(temperature=0.5),
        ... )
    """

    def __init__(
        self,
        providers: Sequence[GenerationProvider],
        cache: CacheService,
        settings: Settings | None = None,
    ) -> None:
        """Initialize gateway.

        Args:
            providers: Generation providers in priority order (first = default)
            cache: Shared cache for responses and conversation affinity
            settings: Defaults for options (defaults to get_settings())
        """
        if not providers:
            raise ValueError("ProviderGateway requires at least one provider")
        self.providers = list(providers)
        self.cache = cache
        self.settings = settings or get_settings()
        self._by_name = {p.provider_name: p for p in self.providers}

    @property
    def provider_names(self) -> list[str]:
        """Provider names in priority order."""
        return [p.provider_name for p in self.providers]

    async def generate_content(
        self,
        prompt: str,
        options: GenerationOptions | None = None,
        **overrides: Any,
    ) -> str:
        """Generate text for a prompt with caching and ordered fallback.

        Args:
            prompt: Prompt text (non-empty)
            options: Generation options
            **overrides: Individual option fields (system_prompt=..., ...)

        Returns:
            Generated text (from cache or the first provider that succeeded)

        Raises:
            ValidationError: If prompt is empty (never retried or cached)
            AllProvidersFailedError: If every provider failed
        """
        self._validate_prompt(prompt)
        options = self._resolve_options(options, overrides)

        cache_key = self.cache.generate_key(prompt)
        cached = await self.cache.get(cache_key)
        if cached is not None:
            logger.info("Using cached AI response")
            return cached

        try:
            outcome = await first_success(
                self.providers,
                lambda provider: self._call(provider, prompt, options),
                name=lambda provider: provider.provider_name,
                label="provider",
            )
        except AllCandidatesFailed as e:
            logger.error(f"All AI providers failed: {e}")
            raise AllProvidersFailedError(str(e), errors=e.errors) from (
                e.errors[-1][1] if e.errors else None
            )

        await self.cache.set(cache_key, outcome.result, options.cache_ttl)
        return outcome.result

    async def generate_for_conversation(
        self,
        conversation_id: str | None,
        prompt: str,
        options: GenerationOptions | None = None,
        **overrides: Any,
    ) -> GenerationResult:
        """Generate a conversational reply, preferring the conversation's provider.

        The provider that last served the conversation is tried first
        (default: the first configured provider). On failure the next
        provider in order is remembered and tried exactly once. Any success
        refreshes the remembered provider's TTL.

        Args:
            conversation_id: Conversation identifier (None = no affinity)
            prompt: User message (non-empty)
            options: Generation options; options.context carries prior turns
            **overrides: Individual option fields

        Returns:
            GenerationResult with text and the provider that produced it

        Raises:
            ValidationError: If prompt is empty
            AllProvidersFailedError: If both attempts failed
        """
        self._validate_prompt(prompt)
        options = self._resolve_options(options, overrides)
        start_time = time.time()

        remembered = None
        if conversation_id:
            remembered = await self.cache.get_provider_for_conversation(conversation_id)
        provider = self._by_name.get(remembered or "") or self.providers[0]

        errors: list[tuple[str, Exception]] = []
        for attempt in range(2):
            try:
                text = await self._call(provider, prompt, options)
            except ValidationError:
                raise
            except Exception as e:
                logger.warning(
                    f"Provider {provider.provider_name} failed for conversation "
                    f"{conversation_id}: {e}"
                )
                errors.append((provider.provider_name, e))
                if attempt == 0:
                    provider = self._alternate(provider)
                    if conversation_id:
                        await self._remember(conversation_id, provider.provider_name)
                continue

            if conversation_id:
                await self._remember(conversation_id, provider.provider_name)
            return GenerationResult(
                text=text,
                provider=provider.provider_name,
                model=provider.last_model,
                was_fallback=bool(errors),
                latency=time.time() - start_time,
                failed_providers=[name for name, _ in errors],
            )

        summary = "; ".join(f"{name}: {error}" for name, error in errors)
        raise AllProvidersFailedError(
            f"Error processing conversation {conversation_id}: {summary}", errors=errors
        ) from errors[-1][1]

    async def health_check(self) -> dict[str, bool]:
        """Probe every provider concurrently.

        Returns:
            Provider name -> availability. Never raises.
        """
        results = await asyncio.gather(
            *(provider.health_check() for provider in self.providers),
            return_exceptions=True,
        )
        return {
            provider.provider_name: result is True
            for provider, result in zip(self.providers, results)
        }

    async def _call(
        self, provider: GenerationProvider, prompt: str, options: GenerationOptions
    ) -> str:
        return await provider.generate(
            prompt,
            system_prompt=options.system_prompt or self.settings.default_system_prompt,
            temperature=options.temperature,
            max_tokens=options.max_tokens,
            model=options.model,
            context=options.context,
        )

    def _alternate(self, provider: GenerationProvider) -> GenerationProvider:
        """Next provider in priority order (cyclic)."""
        index = self.providers.index(provider)
        return self.providers[(index + 1) % len(self.providers)]

    async def _remember(self, conversation_id: str, provider_name: str) -> None:
        await self.cache.set_provider_for_conversation(
            conversation_id, provider_name, ttl=self.settings.provider_affinity_ttl
        )

    def _resolve_options(
        self, options: GenerationOptions | None, overrides: dict[str, Any]
    ) -> GenerationOptions:
        """Fill unset option fields from Settings."""
        base = options or GenerationOptions()
        if overrides:
            given = GenerationOptions(**overrides)
            base = base.model_copy(
                update={name: getattr(given, name) for name in given.model_fields_set}
            )
        return base.model_copy(
            update={
                "temperature": (
                    self.settings.generation_temperature
                    if base.temperature is None
                    else base.temperature
                ),
                "max_tokens": base.max_tokens or self.settings.generation_max_tokens,
                "cache_ttl": base.cache_ttl or self.settings.generation_cache_ttl,
            }
        )

    @staticmethod
    def _validate_prompt(prompt: str) -> None:
        if not isinstance(prompt, str) or not prompt.strip():
            raise ValidationError("Prompt is required and must be a non-empty string")
