"""Base embedding provider interface."""

from abc import ABC, abstractmethod


class EmbeddingProvider(ABC):
    """Abstract base class for embedding providers.

    All embedding providers must implement this interface so the
    EmbeddingGenerator can fall back between them transparently.
    """

    @abstractmethod
    async def embed(self, text: str) -> list[float]:
        """Generate embedding for a single text.

        Args:
            text: Input text to embed (already truncated by the caller)

        Returns:
            Embedding vector as list of floats

        Raises:
            ConfigurationError: If the provider has no credentials
            EmbeddingError: If embedding generation fails
        """
        pass

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Generate embeddings for multiple texts.

        Providers without a native multi-input call embed one at a time.

        Args:
            texts: List of texts to embed

        Returns:
            List of embedding vectors, aligned with texts
        """
        return [await self.embed(text) for text in texts]

    @property
    def supports_batch(self) -> bool:
        """True when embed_batch issues a single multi-input request."""
        return False

    @property
    def max_input_chars(self) -> int:
        """Longest input (in characters) sent to the backend."""
        return getattr(self, "_max_input_chars", 8000)

    @property
    @abstractmethod
    def dimension(self) -> int:
        """Get embedding dimension for this provider.

        Returns:
            Number of dimensions in embedding vector
        """
        pass

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Get provider name for logging/debugging.

        Returns:
            Provider identifier (e.g., "openai", "google")
        """
        pass

    @property
    @abstractmethod
    def is_configured(self) -> bool:
        """True when the provider has the credentials it needs."""
        pass
