"""Embedding generation with provider fallback.

EmbeddingGenerator turns text into vectors of the deployment dimension,
trying the preferred provider first and falling back to the others.
"""

import asyncio
import logging
from collections.abc import Sequence

from lexi.core.config import Settings, get_settings
from lexi.core.exceptions import EmbeddingError, ValidationError
from lexi.engines.embeddings.base import EmbeddingProvider
from lexi.utils.fallback import AllCandidatesFailed, first_success

logger = logging.getLogger(__name__)


class EmbeddingGenerator:
    """Generate embeddings through interchangeable providers.

    Every returned vector has exactly `dimension` components; a provider
    returning anything else is treated as failed so stored vectors stay
    comparable.

    Example:
        >>> generator = EmbeddingGenerator(create_embedding_providers())
        >>> vector = await generator.generate_embedding("Governing law: Delaware")
        >>> len(vector) == generator.dimension
        True
    """

    def __init__(
        self,
        providers: Sequence[EmbeddingProvider],
        settings: Settings | None = None,
    ) -> None:
        """Initialize generator.

        Args:
            providers: Embedding providers in default priority order
            settings: Provides the deployment dimension (defaults to get_settings())
        """
        if not providers:
            raise ValueError("EmbeddingGenerator requires at least one provider")
        self.providers = list(providers)
        self.settings = settings or get_settings()
        self._dimension = self.settings.embedding_dimension

    @property
    def dimension(self) -> int:
        """Dimension of every vector this generator returns."""
        return self._dimension

    async def generate_embedding(
        self, text: str, preferred_provider: str | None = None
    ) -> list[float]:
        """Generate an embedding for one text.

        Args:
            text: Text to embed (non-empty); truncated to each provider's cap
            preferred_provider: Provider name to try first

        Returns:
            Embedding vector

        Raises:
            ValidationError: If text is empty or not a string
            EmbeddingError: If every provider failed
        """
        self._validate_text(text)

        async def call(provider: EmbeddingProvider) -> list[float]:
            vector = await provider.embed(self._truncate(text, provider))
            self._check_dimension(vector, provider)
            return vector

        try:
            outcome = await first_success(
                self._ordered(preferred_provider),
                call,
                name=lambda provider: provider.provider_name,
                label="embedding provider",
            )
        except AllCandidatesFailed as e:
            logger.error(f"Error generating embedding: {e}")
            raise EmbeddingError(
                f"Failed to generate embedding: {e}",
                details={"providers": [name for name, _ in e.errors]},
            ) from (e.errors[-1][1] if e.errors else None)

        return outcome.result

    async def generate_embeddings_batch(
        self, texts: Sequence[str], provider: str | None = None
    ) -> list[list[float]]:
        """Generate embeddings for several texts, preserving order.

        Uses the first batch-capable provider's multi-input call; if that call
        fails (or no provider batches), embeds each text individually and
        concurrently, with full fallback per text.

        Args:
            texts: Texts to embed (non-empty list of non-empty strings)
            provider: Provider name to try first

        Returns:
            One vector per input text, in input order

        Raises:
            ValidationError: If the list or any member is empty
            EmbeddingError: If a text could not be embedded by any provider
        """
        if not texts:
            raise ValidationError("Texts must be a non-empty list")
        for text in texts:
            self._validate_text(text)

        batch_provider = next(
            (
                p
                for p in self._ordered(provider)
                if p.supports_batch and p.is_configured
            ),
            None,
        )
        if batch_provider is not None:
            try:
                vectors = await batch_provider.embed_batch(
                    [self._truncate(text, batch_provider) for text in texts]
                )
                if len(vectors) != len(texts):
                    raise EmbeddingError(
                        f"{batch_provider.provider_name} returned {len(vectors)} "
                        f"vectors for {len(texts)} texts"
                    )
                for vector in vectors:
                    self._check_dimension(vector, batch_provider)
                return vectors
            except Exception as e:
                logger.warning(
                    f"Batch embedding failed on {batch_provider.provider_name}, "
                    f"falling back to individual requests: {e}"
                )

        return list(
            await asyncio.gather(
                *(self.generate_embedding(text, provider) for text in texts)
            )
        )

    def _ordered(self, preferred: str | None) -> list[EmbeddingProvider]:
        """Providers with the preferred one moved to the front."""
        if not preferred:
            return self.providers
        first = [p for p in self.providers if p.provider_name == preferred]
        if not first:
            logger.debug(f"Unknown preferred embedding provider: {preferred}")
        return first + [p for p in self.providers if p.provider_name != preferred]

    def _check_dimension(self, vector: list[float], provider: EmbeddingProvider) -> None:
        if len(vector) != self._dimension:
            raise EmbeddingError(
                f"{provider.provider_name} returned {len(vector)}-dim vector, "
                f"expected {self._dimension}",
                details={"transient": False},
            )

    @staticmethod
    def _truncate(text: str, provider: EmbeddingProvider) -> str:
        return text[: provider.max_input_chars]

    @staticmethod
    def _validate_text(text: str) -> None:
        if not isinstance(text, str) or not text.strip():
            raise ValidationError("Text must be a non-empty string")
