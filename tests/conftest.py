"""Pytest configuration and fixtures for Lexi tests.

No test talks to a real API or database: generation and embedding
providers are replaced by the in-process fakes below, and the embedding
store is the in-memory one (or a fake exposing a native index).
"""

from collections.abc import Callable, Sequence
from datetime import datetime, timedelta, timezone

import pytest

from lexi.cache import CacheConfig, CacheService
from lexi.context.stores import EmbeddingStore, InMemoryEmbeddingStore
from lexi.core.config import Settings
from lexi.core.exceptions import ConfigurationError, EmbeddingError, GenerationError
from lexi.core.models import (
    ContextMatch,
    ContextTurn,
    EmbeddingFilter,
    MessageEmbedding,
    MessageEntry,
    RetrievalConfig,
)
from lexi.engines.embeddings.base import EmbeddingProvider
from lexi.engines.embeddings.generator import EmbeddingGenerator
from lexi.engines.generation.base import GenerationProvider

TEST_DIMENSION = 8
BASE_TIME = datetime(2024, 3, 1, 9, 0, 0, tzinfo=timezone.utc)


def basis(index: int, weight: float = 1.0, dimension: int = TEST_DIMENSION) -> list[float]:
    """Unit-ish vector along one axis."""
    vector = [0.0] * dimension
    vector[index] = weight
    return vector


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeGenerationProvider(GenerationProvider):
    """Scripted generation provider.

    outcomes is consumed one item per model call: a string is returned,
    an exception is raised. When exhausted, `default` is returned.
    """

    def __init__(
        self,
        name: str,
        outcomes: Sequence[str | Exception] = (),
        default: str | None = None,
        models: Sequence[str] = ("model-a",),
        configured: bool = True,
    ) -> None:
        super().__init__(models)
        self._name = name
        self._configured = configured
        self.outcomes = list(outcomes)
        self.default = default if default is not None else f"{name} reply"
        self.calls: list[dict] = []

    @property
    def provider_name(self) -> str:
        return self._name

    @property
    def is_configured(self) -> bool:
        return self._configured

    async def _generate_with_model(
        self,
        model: str,
        prompt: str,
        system_prompt: str,
        temperature: float,
        max_tokens: int,
        context: Sequence[ContextTurn],
    ) -> str:
        self.calls.append(
            {
                "model": model,
                "prompt": prompt,
                "system_prompt": system_prompt,
                "temperature": temperature,
                "max_tokens": max_tokens,
                "context": list(context),
            }
        )
        if not self.outcomes:
            return self.default
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class FakeEmbeddingProvider(EmbeddingProvider):
    """Deterministic embedding provider.

    Vectors come from `table` (exact text match), else from `fallback`
    (a function of the text), else a fixed vector on the last axis.
    """

    def __init__(
        self,
        name: str = "fake",
        table: dict[str, list[float]] | None = None,
        fallback: Callable[[str], list[float]] | None = None,
        dimension: int = TEST_DIMENSION,
        batch: bool = False,
        configured: bool = True,
        fail: bool = False,
        max_chars: int = 8000,
    ) -> None:
        self._name = name
        self.table = table or {}
        self.fallback = fallback
        self._dimension = dimension
        self._batch = batch
        self._configured = configured
        self.fail = fail
        self._max_input_chars = max_chars
        self.embed_calls: list[str] = []
        self.batch_calls: list[list[str]] = []

    def vector_for(self, text: str) -> list[float]:
        if text in self.table:
            return list(self.table[text])
        if self.fallback is not None:
            return self.fallback(text)
        return basis(self._dimension - 1, dimension=self._dimension)

    async def embed(self, text: str) -> list[float]:
        self.embed_calls.append(text)
        if not self._configured:
            raise ConfigurationError(f"{self._name} not configured")
        if self.fail:
            raise EmbeddingError(f"{self._name} unavailable", details={"transient": True})
        return self.vector_for(text)

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        self.batch_calls.append(list(texts))
        if self.fail:
            raise EmbeddingError(f"{self._name} batch unavailable")
        return [self.vector_for(text) for text in texts]

    @property
    def supports_batch(self) -> bool:
        return self._batch

    @property
    def dimension(self) -> int:
        return self._dimension

    @property
    def provider_name(self) -> str:
        return self._name

    @property
    def is_configured(self) -> bool:
        return self._configured


class IndexedEmbeddingStore(InMemoryEmbeddingStore):
    """In-memory store that also answers vector_search with scripted hits."""

    def __init__(self, hits: list[tuple[MessageEmbedding, float]] | None = None) -> None:
        super().__init__()
        self.hits = hits or []
        self.search_calls: list[dict] = []
        self.search_error: Exception | None = None

    async def vector_search(
        self,
        vector: list[float],
        filter: EmbeddingFilter,
        limit: int,
        num_candidates: int,
        threshold: float | None = None,
    ) -> list[ContextMatch]:
        self.search_calls.append(
            {
                "vector": vector,
                "filter": filter,
                "limit": limit,
                "num_candidates": num_candidates,
                "threshold": threshold,
            }
        )
        if self.search_error is not None:
            raise self.search_error
        return [
            ContextMatch.from_record(record, similarity) for record, similarity in self.hits
        ]


def make_record(
    message_id: str,
    content: str,
    embedding: list[float],
    minutes: int = 0,
    user_id: str = "user-1",
    conversation_id: str = "conv-1",
    role: str = "user",
    **metadata,
) -> MessageEmbedding:
    """Build a stored record, timestamped `minutes` after BASE_TIME."""
    return MessageEmbedding(
        user_id=user_id,
        conversation_id=conversation_id,
        message_id=message_id,
        role=role,
        content=content,
        embedding=embedding,
        metadata=metadata,
        timestamp=BASE_TIME + timedelta(minutes=minutes),
    )


def make_entry(
    message_id: str,
    content: str,
    minutes: int = 0,
    user_id: str = "user-1",
    conversation_id: str = "conv-1",
    role: str = "user",
) -> MessageEntry:
    """Build a MessageEntry, timestamped `minutes` after BASE_TIME."""
    return MessageEntry(
        user_id=user_id,
        conversation_id=conversation_id,
        message_id=message_id,
        role=role,
        content=content,
        timestamp=BASE_TIME + timedelta(minutes=minutes),
    )


@pytest.fixture
def settings() -> Settings:
    """Settings isolated from the environment and any .env file."""
    return Settings(
        _env_file=None,
        openai_api_key="",
        google_api_key="",
        mongodb_uri="",
        generation_providers=["google", "openai"],
        embedding_dimension=TEST_DIMENSION,
        generation_cache_ttl=3600,
        provider_affinity_ttl=86400,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock) -> CacheService:
    return CacheService(CacheConfig(max_entries=100), clock=clock)


@pytest.fixture
def google() -> FakeGenerationProvider:
    return FakeGenerationProvider("google")


@pytest.fixture
def openai_provider() -> FakeGenerationProvider:
    return FakeGenerationProvider("openai")


@pytest.fixture
def embedding_provider() -> FakeEmbeddingProvider:
    return FakeEmbeddingProvider("openai", batch=True)


@pytest.fixture
def generator(embedding_provider, settings) -> EmbeddingGenerator:
    return EmbeddingGenerator([embedding_provider], settings)


@pytest.fixture
def retrieval_config() -> RetrievalConfig:
    return RetrievalConfig()


@pytest.fixture
def memory_store() -> EmbeddingStore:
    return InMemoryEmbeddingStore()


@pytest.fixture
def failing_generation_error() -> GenerationError:
    return GenerationError("upstream 503", details={"transient": True})
