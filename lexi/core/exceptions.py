"""Exception hierarchy for Lexi.

This module defines custom exceptions for the different failure modes
of generation, embedding and context retrieval.
"""

from typing import Any


class LexiError(Exception):
    """Base exception for all Lexi errors."""

    code: str = "LEXI_ERROR"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(LexiError):
    """Input validation failed (empty text, malformed query)."""

    code: str = "VALIDATION_ERROR"


class ConfigurationError(LexiError):
    """Configuration error (missing API key, unconfigured backend)."""

    code: str = "CONFIGURATION_ERROR"


class GenerationError(LexiError):
    """Text generation failed (API call, timeout, quota, empty response)."""

    code: str = "GENERATION_FAILED"


class AllProvidersFailedError(GenerationError):
    """Raised when every generation provider in a fallback chain failed."""

    code: str = "ALL_PROVIDERS_FAILED"

    def __init__(self, message: str, errors: list[tuple[str, Exception]]) -> None:
        """Initialize with message and list of (provider, error) tuples."""
        super().__init__(message, details={"providers": [p for p, _ in errors]})
        self.errors = errors

    @property
    def last_error(self) -> Exception | None:
        """The error raised by the last provider attempted."""
        return self.errors[-1][1] if self.errors else None


class EmbeddingError(LexiError):
    """Embedding generation failed on every available backend."""

    code: str = "EMBEDDING_FAILED"


class StoreError(LexiError):
    """Embedding store operation failed (connection, query, write)."""

    code: str = "STORE_ERROR"


class VectorSearchUnavailableError(StoreError):
    """The store has no usable native vector index."""

    code: str = "VECTOR_SEARCH_UNAVAILABLE"


def is_transient(error: BaseException) -> bool:
    """Check whether an error is worth retrying on another backend later.

    Configuration and validation errors are permanent for the process
    lifetime; everything else (timeouts, rate limits, quota, 5xx) is not.
    """
    if isinstance(error, (ConfigurationError, ValidationError)):
        return False
    if isinstance(error, LexiError):
        return bool(error.details.get("transient", True))
    return True
