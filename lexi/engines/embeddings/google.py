"""Google Gemini embedding provider."""

import logging
import os
from typing import Optional

from google import genai
from google.genai import errors, types

from lexi.core.exceptions import ConfigurationError, EmbeddingError
from lexi.engines.embeddings.base import EmbeddingProvider

logger = logging.getLogger(__name__)


class GoogleEmbeddingProvider(EmbeddingProvider):
    """Google embedding provider via the google-genai SDK.

    The output dimensionality is pinned to match the OpenAI default so
    vectors from either backend can share one index.

    Default model: gemini-embedding-001 (1536 dims requested)
    """

    def __init__(
        self,
        model: str = "gemini-embedding-001",
        api_key: Optional[str] = None,
        dimensions: int = 1536,
        timeout: float = 30.0,
        max_chars: int = 8000,
    ):
        """Initialize Google embedding provider.

        Args:
            model: Gemini embedding model
            api_key: Google API key (defaults to GOOGLE_API_KEY env var)
            dimensions: Requested output dimensionality
            timeout: Request timeout in seconds (default: 30s)
            max_chars: Inputs longer than this are truncated by the generator
        """
        self.model = model
        self._dimension = dimensions
        self.timeout = timeout
        self._max_input_chars = max_chars
        self.api_key = api_key or os.getenv("GOOGLE_API_KEY") or ""
        self.client: genai.Client | None = None

        if self.api_key:
            self.client = genai.Client(
                api_key=self.api_key,
                http_options=types.HttpOptions(timeout=int(self.timeout * 1000)),
            )
        else:
            logger.info("Google embedding provider not configured (no API key)")

    async def embed(self, text: str) -> list[float]:
        """Generate embedding for a single text.

        Raises:
            ConfigurationError: If no API key is configured or it was rejected
            EmbeddingError: If the API request fails or returns no vector
        """
        if self.client is None:
            raise ConfigurationError("Google AI not configured. Set GOOGLE_API_KEY.")

        try:
            response = await self.client.aio.models.embed_content(
                model=self.model,
                contents=text,
                config=types.EmbedContentConfig(output_dimensionality=self._dimension),
            )
        except errors.APIError as e:
            if e.code in (401, 403):
                raise ConfigurationError(f"Google AI rejected credentials: {e}") from e
            raise EmbeddingError(f"Google embedding API failed: {e}") from e
        except Exception as e:
            logger.error(f"Google embedding API error: {e}")
            raise EmbeddingError(f"Google embedding API failed: {e}") from e

        if not response.embeddings or not response.embeddings[0].values:
            raise EmbeddingError("Google embedding API returned no vector")
        return list(response.embeddings[0].values)

    @property
    def dimension(self) -> int:
        """Get embedding dimension."""
        return self._dimension

    @property
    def provider_name(self) -> str:
        """Get provider name."""
        return "google"

    @property
    def is_configured(self) -> bool:
        return self.client is not None
