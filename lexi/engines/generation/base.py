"""Base generation provider interface."""

import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence

from lexi.core.exceptions import ConfigurationError, GenerationError
from lexi.core.models import ContextTurn

logger = logging.getLogger(__name__)


class GenerationProvider(ABC):
    """Abstract base class for text generation providers.

    A provider owns an ordered list of model variants. generate() tries
    each variant in turn and returns the first non-empty response, so a
    retired or overloaded model only costs one failed call.

    Subclasses implement _generate_with_model() for a single variant.
    """

    def __init__(self, models: Sequence[str]) -> None:
        if not models:
            raise ValueError("At least one model variant is required")
        self.models = list(models)
        self.last_model: str | None = None

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Get provider name for logging/affinity (e.g. "google", "openai")."""
        pass

    @property
    @abstractmethod
    def is_configured(self) -> bool:
        """True if credentials are present and a client could be built."""
        pass

    @abstractmethod
    async def _generate_with_model(
        self,
        model: str,
        prompt: str,
        system_prompt: str,
        temperature: float,
        max_tokens: int,
        context: Sequence[ContextTurn],
    ) -> str:
        """Call the backend once with one model variant.

        Returns:
            Generated text (may be empty; empty counts as a failure)

        Raises:
            GenerationError: If the API call fails
        """
        pass

    async def generate(
        self,
        prompt: str,
        system_prompt: str,
        temperature: float = 0.7,
        max_tokens: int = 4000,
        model: str | None = None,
        context: Sequence[ContextTurn] = (),
    ) -> str:
        """Generate text, trying each model variant in order.

        Args:
            prompt: User prompt
            system_prompt: Instruction prefixed to the generation
            temperature: Sampling randomness
            max_tokens: Output length cap
            model: Single model override (replaces the variant list)
            context: Prior conversational turns

        Returns:
            Generated text from the first variant that produced any

        Raises:
            ConfigurationError: If the provider has no credentials
            GenerationError: If every variant failed
        """
        if not self.is_configured:
            raise ConfigurationError(f"{self.provider_name} provider not configured")

        variants = [model] if model else self.models
        last_error: Exception | None = None

        for variant in variants:
            try:
                text = await self._generate_with_model(
                    variant, prompt, system_prompt, temperature, max_tokens, context
                )
            except ConfigurationError:
                raise
            except Exception as e:
                logger.warning(f"{self.provider_name} model {variant} failed: {e}")
                last_error = e
                continue

            if text and text.strip():
                self.last_model = variant
                return text

            logger.warning(f"{self.provider_name} model {variant} returned empty response")
            last_error = GenerationError(f"Model {variant} returned empty response")

        raise GenerationError(
            f"All {self.provider_name} models failed",
            details={"models": variants, "transient": True},
        ) from last_error

    async def health_check(self) -> bool:
        """Probe the backend with a minimal request.

        A variant that answers without raising counts as healthy even if the
        tiny token budget leaves its text empty.

        Returns:
            True if any model variant answered, False otherwise. Never raises.
        """
        if not self.is_configured:
            return False

        for variant in self.models:
            try:
                await self._generate_with_model(
                    variant, "test", "Reply with OK.", 0.0, 5, ()
                )
                return True
            except Exception as e:
                logger.warning(
                    f"Health check failed for {self.provider_name} model {variant}: {e}"
                )
        return False
