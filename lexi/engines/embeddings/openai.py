"""OpenAI embedding provider (default)."""

import logging
import os
from typing import Any, Optional

from openai import AsyncOpenAI, AuthenticationError

from lexi.core.exceptions import ConfigurationError, EmbeddingError
from lexi.engines.embeddings.base import EmbeddingProvider

logger = logging.getLogger(__name__)


class OpenAIEmbeddingProvider(EmbeddingProvider):
    """OpenAI embedding provider.

    Supports native batching: one request embeds many inputs.

    Default model: text-embedding-3-small (1536 dims)
    """

    def __init__(
        self,
        model: str = "text-embedding-3-small",
        api_key: Optional[str] = None,
        dimensions: int = 1536,
        timeout: float = 30.0,
        max_chars: int = 8000,
    ):
        """Create the provider; without a key it stays unconfigured.

        Args:
            model: Embedding model name
            api_key: API key; OPENAI_API_KEY when omitted
            dimensions: Output dimension (sent for text-embedding-3-* models)
            timeout: Per-request timeout (seconds)
            max_chars: Inputs longer than this are truncated by the generator

        Example:
            >>> provider = OpenAIEmbeddingProvider(api_key="sk-...")
            >>> embedding = await provider.embed("Termination for convenience")
            >>> len(embedding)
            1536
        """
        self.model = model
        self._dimension = dimensions
        self.timeout = timeout
        self._max_input_chars = max_chars
        self.api_key = api_key or os.getenv("OPENAI_API_KEY") or ""
        self.client: AsyncOpenAI | None = None

        if self.api_key:
            self.client = AsyncOpenAI(api_key=self.api_key, timeout=self.timeout)
        else:
            logger.info("OpenAI embedding provider not configured (no API key)")

    async def embed(self, text: str) -> list[float]:
        """Generate embedding for a single text."""
        embeddings = await self.embed_batch([text])
        return embeddings[0]

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Generate embeddings for multiple texts in one request.

        Raises:
            ConfigurationError: If no API key is configured or it was rejected
            EmbeddingError: If the API request fails
        """
        if not texts:
            return []
        if self.client is None:
            raise ConfigurationError("OpenAI API key required. Set OPENAI_API_KEY.")

        params: dict[str, Any] = {"model": self.model, "input": texts}
        if "text-embedding-3" in self.model:
            params["dimensions"] = self._dimension

        try:
            response = await self.client.embeddings.create(**params)
        except AuthenticationError as e:
            raise ConfigurationError(f"OpenAI rejected credentials: {e}") from e
        except Exception as e:
            logger.error(f"OpenAI embedding API error: {e}")
            raise EmbeddingError(f"OpenAI embedding API failed: {e}") from e

        # Results carry an index; order them to match the inputs
        items = sorted(response.data, key=lambda item: item.index)
        return [list(item.embedding) for item in items]

    @property
    def supports_batch(self) -> bool:
        return True

    @property
    def dimension(self) -> int:
        """Vector length requested from the API."""
        return self._dimension

    @property
    def provider_name(self) -> str:
        return "openai"

    @property
    def is_configured(self) -> bool:
        return self.client is not None
