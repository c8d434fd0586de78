"""Unit tests for ContextService (storage, similarity search, merged context)."""

from unittest.mock import AsyncMock

import pytest
from conftest import (
    FakeEmbeddingProvider,
    IndexedEmbeddingStore,
    basis,
    make_entry,
    make_record,
)

from lexi.context.service import ContextService
from lexi.context.stores import InMemoryEmbeddingStore
from lexi.core.exceptions import StoreError, ValidationError, VectorSearchUnavailableError
from lexi.core.models import EmbeddingMetadata, RetrievalConfig
from lexi.engines.embeddings.generator import EmbeddingGenerator

QUERY_A = "Explain the indemnification clause"

# Topic A (indemnification), B (termination), C (payment)
TOPIC_VECTORS = {
    "Indemnification is capped at twelve months of fees.": [1.0, 0, 0, 0, 0, 0, 0, 0],
    "Who indemnifies for third-party IP claims?": [0.9, 0.1, 0, 0, 0, 0, 0, 0],
    "Either party may terminate on 30 days notice.": [0, 1.0, 0, 0, 0, 0, 0, 0],
    "Termination for cause requires a cure period.": [0.1, 0.9, 0, 0, 0, 0, 0, 0],
    "Invoices are payable within 45 days.": [0, 0, 1.0, 0, 0, 0, 0, 0],
    QUERY_A: [1.0, 0, 0, 0, 0, 0, 0, 0],
}


@pytest.fixture
def topic_provider() -> FakeEmbeddingProvider:
    return FakeEmbeddingProvider("openai", table=TOPIC_VECTORS)


@pytest.fixture
def topic_generator(topic_provider, settings) -> EmbeddingGenerator:
    return EmbeddingGenerator([topic_provider], settings)


@pytest.fixture
def service(memory_store, topic_generator, retrieval_config) -> ContextService:
    return ContextService(memory_store, topic_generator, retrieval_config)


async def store_topics(service: ContextService) -> None:
    for minutes, (message_id, content) in enumerate(
        [
            ("a1", "Indemnification is capped at twelve months of fees."),
            ("a2", "Who indemnifies for third-party IP claims?"),
            ("b1", "Either party may terminate on 30 days notice."),
            ("b2", "Termination for cause requires a cure period."),
            ("c1", "Invoices are payable within 45 days."),
        ]
    ):
        await service.store_message_embedding(make_entry(message_id, content, minutes=minutes))


class TestStoreMessageEmbedding:
    """Tests for embedding persistence."""

    async def test_stores_record(self, service, memory_store):
        """Test a user message is embedded and persisted."""
        record = await service.store_message_embedding(
            make_entry("m1", "Invoices are payable within 45 days.")
        )

        assert record is not None
        assert record.embedding == TOPIC_VECTORS["Invoices are payable within 45 days."]
        assert await memory_store.count() == 1

    async def test_system_message_skipped(self, service, memory_store, topic_provider):
        """Test system messages are never embedded or stored."""
        result = await service.store_message_embedding(
            make_entry("s1", "You are a legal assistant.", role="system")
        )

        assert result is None
        assert topic_provider.embed_calls == []
        assert await memory_store.count() == 0

    async def test_embedding_failure_returns_none(self, memory_store, settings, retrieval_config):
        """Test an embedding failure is logged and swallowed."""
        generator = EmbeddingGenerator([FakeEmbeddingProvider(fail=True)], settings)
        service = ContextService(memory_store, generator, retrieval_config)

        assert await service.store_message_embedding(make_entry("m1", "text")) is None
        assert await memory_store.count() == 0

    async def test_store_failure_returns_none(self, topic_generator, retrieval_config):
        """Test a store write failure is logged and swallowed."""
        store = InMemoryEmbeddingStore()
        store.insert = AsyncMock(side_effect=StoreError("write failed"))
        service = ContextService(store, topic_generator, retrieval_config)

        assert await service.store_message_embedding(make_entry("m1", "text")) is None

    async def test_metadata_preserved(self, service):
        """Test metadata tags are carried onto the stored record."""
        entry = make_entry("m1", "Summarize the NDA", role="assistant")
        entry.metadata = EmbeddingMetadata(type="summarize", document_type="nda", provider="google")

        record = await service.store_message_embedding(entry)

        assert record.metadata.type == "summarize"
        assert record.metadata.document_type == "nda"

    async def test_batch_tolerates_failures(self, memory_store, settings, retrieval_config):
        """Test batch storage returns only the records that were stored."""
        provider = FakeEmbeddingProvider(table={"ok one": basis(0), "ok two": basis(1)})
        generator = EmbeddingGenerator([provider], settings)
        service = ContextService(memory_store, generator, retrieval_config)
        original_embed = provider.embed

        async def flaky_embed(text):
            if text == "bad":
                raise RuntimeError("provider hiccup")
            return await original_embed(text)

        provider.embed = flaky_embed

        stored = await service.store_message_embeddings_batch(
            [
                make_entry("m1", "ok one"),
                make_entry("m2", "bad"),
                make_entry("m3", "ok two"),
                make_entry("m4", "system note", role="system"),
            ]
        )

        assert [r.message_id for r in stored] == ["m1", "m3"]
        assert await memory_store.count() == 2


class TestFindSimilarContext:
    """Tests for semantic search on both retrieval paths."""

    async def test_topic_scenario_fallback_path(self, service):
        """Test A,A,B,B,C corpus: a topic-A query returns exactly the A messages."""
        await store_topics(service)

        matches = await service.find_similar_context(
            QUERY_A, user_id="user-1", limit=2, threshold=0.7
        )

        assert [m.message_id for m in matches] == ["a1", "a2"]
        assert matches[0].similarity == pytest.approx(1.0)
        assert matches[0].similarity >= matches[1].similarity >= 0.7

    async def test_threshold_filters(self, service):
        """Test nothing below the threshold is returned."""
        await store_topics(service)

        matches = await service.find_similar_context(
            QUERY_A, user_id="user-1", limit=5, threshold=0.999
        )

        assert [m.message_id for m in matches] == ["a1"]

    async def test_defaults_from_retrieval_config(self, memory_store, topic_generator):
        """Test omitted limit and threshold come from RetrievalConfig."""
        service = ContextService(
            memory_store,
            topic_generator,
            RetrievalConfig(similarity_threshold=0.1, semantic_limit=3),
        )
        await store_topics(service)

        matches = await service.find_similar_context(QUERY_A, user_id="user-1")

        # b2 scores ~0.11: above the configured 0.1, below the built-in 0.7
        assert [m.message_id for m in matches] == ["a1", "a2", "b2"]

    async def test_configured_limit_caps_results(self, memory_store, topic_generator):
        """Test the configured semantic_limit caps results when limit is omitted."""
        service = ContextService(
            memory_store,
            topic_generator,
            RetrievalConfig(similarity_threshold=0.99, semantic_limit=1),
        )
        await store_topics(service)

        matches = await service.find_similar_context(QUERY_A, user_id="user-1")

        assert [m.message_id for m in matches] == ["a1"]

    async def test_scoped_to_user(self, service, memory_store):
        """Test another user's messages are never returned."""
        await store_topics(service)
        await memory_store.insert(make_record("x1", QUERY_A, basis(0), user_id="user-2"))

        matches = await service.find_similar_context(QUERY_A, user_id="user-1", limit=5)

        assert "x1" not in [m.message_id for m in matches]

    async def test_scoped_to_conversation(self, service, memory_store):
        """Test conversation_id restricts the candidates."""
        await store_topics(service)
        await memory_store.insert(make_record("other", "x", basis(0), conversation_id="conv-2"))

        matches = await service.find_similar_context(
            QUERY_A, user_id="user-1", conversation_id="conv-2", limit=5
        )

        assert [m.message_id for m in matches] == ["other"]

    async def test_excludes_and_metadata_filter(self, service, memory_store):
        """Test excluded ids and metadata equality filters apply."""
        await memory_store.insert(make_record("k1", "a", basis(0), type="analyze"))
        await memory_store.insert(make_record("k2", "b", basis(0), type="chat"))
        await memory_store.insert(make_record("k3", "c", basis(0), type="analyze"))

        matches = await service.find_similar_context(
            QUERY_A,
            user_id="user-1",
            exclude_message_ids=["k3"],
            metadata_filter={"type": "analyze"},
        )

        assert [m.message_id for m in matches] == ["k1"]

    async def test_fallback_oversamples_newest(self, memory_store, topic_generator):
        """Test the scan only considers limit * factor newest candidates."""
        config = RetrievalConfig(fallback_oversample_factor=1)
        service = ContextService(memory_store, topic_generator, config)
        await memory_store.insert(make_record("old", "old", basis(0), minutes=0))
        await memory_store.insert(make_record("new", "new", basis(1), minutes=5))

        matches = await service.find_similar_context(QUERY_A, user_id="user-1", limit=1)

        # Only the newest candidate was scanned and it is off-topic
        assert matches == []

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"query_text": QUERY_A, "user_id": ""},
            {"query_text": "", "user_id": "user-1"},
            {"query_text": QUERY_A, "user_id": "user-1", "limit": 0},
        ],
    )
    async def test_validation(self, service, kwargs):
        """Test invalid arguments raise ValidationError."""
        with pytest.raises(ValidationError):
            await service.find_similar_context(**kwargs)

    async def test_native_path(self, topic_generator, retrieval_config):
        """Test native search is used, oversampled, thresholded and sorted."""
        store = IndexedEmbeddingStore(
            hits=[
                (make_record("low", "low", basis(0)), 0.5),
                (make_record("mid", "mid", basis(0)), 0.8),
                (make_record("top", "top", basis(0)), 0.95),
                (make_record("also", "also", basis(0)), 0.75),
            ]
        )
        service = ContextService(store, topic_generator, retrieval_config)

        matches = await service.find_similar_context(
            QUERY_A, user_id="user-1", conversation_id="conv-1", limit=2, threshold=0.7
        )

        assert [m.message_id for m in matches] == ["top", "mid"]
        call = store.search_calls[0]
        assert call["limit"] == 4
        assert call["num_candidates"] == 20
        assert call["threshold"] == 0.7
        assert call["filter"].conversation_id == "conv-1"

    async def test_native_unavailable_degrades(self, topic_generator, retrieval_config):
        """Test VectorSearchUnavailableError falls back to the scan."""
        store = IndexedEmbeddingStore()
        store.search_error = VectorSearchUnavailableError("no index")
        service = ContextService(store, topic_generator, retrieval_config)
        await store_topics(service)

        matches = await service.find_similar_context(QUERY_A, user_id="user-1", limit=2)

        assert [m.message_id for m in matches] == ["a1", "a2"]

    async def test_native_error_degrades(self, topic_generator, retrieval_config):
        """Test any native search error falls back to the scan."""
        store = IndexedEmbeddingStore()
        store.search_error = StoreError("cluster unreachable")
        service = ContextService(store, topic_generator, retrieval_config)
        await store_topics(service)

        matches = await service.find_similar_context(QUERY_A, user_id="user-1", limit=1)

        assert [m.message_id for m in matches] == ["a1"]

    async def test_native_disabled(self, topic_generator):
        """Test native_search_enabled=False never calls vector_search."""
        store = IndexedEmbeddingStore()
        service = ContextService(
            store, topic_generator, RetrievalConfig(native_search_enabled=False)
        )
        await store_topics(service)

        await service.find_similar_context(QUERY_A, user_id="user-1")

        assert store.search_calls == []


class TestGetRelevantContext:
    """Tests for merged recent + semantic context."""

    async def test_merges_dedupes_and_orders_oldest_first(self, service):
        """Test recent and semantic sets merge without duplicates, oldest first."""
        await store_topics(service)

        context = await service.get_relevant_context(
            QUERY_A, user_id="user-1", conversation_id="conv-1", recent_limit=2, semantic_limit=2
        )

        # Recent: b2, c1; semantic: a1, a2
        assert [m.message_id for m in context] == ["a1", "a2", "b2", "c1"]
        assert context[0].similarity is not None
        assert context[-1].similarity is None

    async def test_limits_from_retrieval_config(self, memory_store, topic_generator):
        """Test omitted recent and semantic limits come from RetrievalConfig."""
        service = ContextService(
            memory_store, topic_generator, RetrievalConfig(recent_limit=1, semantic_limit=1)
        )
        await store_topics(service)

        context = await service.get_relevant_context(
            QUERY_A, user_id="user-1", conversation_id="conv-1"
        )

        assert [m.message_id for m in context] == ["a1", "c1"]

    async def test_semantic_replaces_recent_duplicate(self, service):
        """Test a message in both sets appears once, as the semantic entry."""
        await store_topics(service)
        await service.store_message_embedding(
            make_entry("a3", "Indemnification is capped at twelve months of fees.", minutes=10)
        )

        context = await service.get_relevant_context(
            QUERY_A, user_id="user-1", conversation_id="conv-1", recent_limit=1, semantic_limit=5
        )

        contents = [m.content for m in context]
        assert len(contents) == len(set(c[:100] for c in contents))
        duplicate = [m for m in context if m.content.startswith("Indemnification is capped")]
        assert len(duplicate) == 1
        assert duplicate[0].similarity is not None

    async def test_caller_supplied_recent_messages(self, service):
        """Test supplied history is used, system messages dropped, newest kept."""
        await store_topics(service)
        history = [
            make_entry("h1", "First question", minutes=20),
            make_entry("h2", "System prompt", minutes=21, role="system"),
            make_entry("h3", "Second question", minutes=22),
            make_entry("h4", "Assistant answer", minutes=23, role="assistant"),
        ]

        context = await service.get_relevant_context(
            QUERY_A,
            user_id="user-1",
            conversation_id="conv-1",
            recent_limit=2,
            semantic_limit=1,
            recent_messages=history,
        )

        assert [m.message_id for m in context] == ["a1", "h3", "h4"]

    async def test_semantic_failure_degrades_to_recent(self, memory_store, settings, retrieval_config):
        """Test a failing embedding backend still yields recent messages."""
        generator = EmbeddingGenerator([FakeEmbeddingProvider(fail=True)], settings)
        service = ContextService(memory_store, generator, retrieval_config)
        await memory_store.insert(make_record("r1", "older", basis(0), minutes=1))
        await memory_store.insert(make_record("r2", "newer", basis(0), minutes=2))

        context = await service.get_relevant_context(
            QUERY_A, user_id="user-1", conversation_id="conv-1", recent_limit=5
        )

        assert [m.message_id for m in context] == ["r1", "r2"]

    async def test_total_failure_returns_empty(self, settings, retrieval_config):
        """Test failure of both halves returns an empty list."""
        store = InMemoryEmbeddingStore()
        store.find = AsyncMock(side_effect=StoreError("down"))
        generator = EmbeddingGenerator([FakeEmbeddingProvider(fail=True)], settings)
        service = ContextService(store, generator, retrieval_config)

        context = await service.get_relevant_context(
            QUERY_A, user_id="user-1", conversation_id="conv-1"
        )

        assert context == []

    async def test_validation_error_propagates(self, service):
        """Test an empty query is a caller error, not a degraded result."""
        with pytest.raises(ValidationError):
            await service.get_relevant_context("", user_id="user-1", conversation_id="conv-1")

    def test_format_context_messages(self, service):
        """Test matches convert to role/content turns."""
        from lexi.core.models import ContextMatch

        matches = [
            ContextMatch.from_record(make_record("m1", "Q", basis(0), role="user")),
            ContextMatch.from_record(make_record("m2", "A", basis(0), role="assistant")),
        ]

        assert service.format_context_messages(matches) == [
            {"role": "user", "content": "Q"},
            {"role": "assistant", "content": "A"},
        ]


class TestDeletion:
    """Tests for cascade deletion helpers."""

    async def test_delete_conversation(self, service, memory_store):
        """Test all embeddings of one conversation are removed."""
        await store_topics(service)
        await memory_store.insert(make_record("x", "x", basis(0), conversation_id="conv-2"))

        assert await service.delete_conversation_embeddings("conv-1") == 5
        assert await memory_store.count() == 1

    async def test_delete_message(self, service):
        """Test deleting one message reports whether it existed."""
        await store_topics(service)

        assert await service.delete_message_embedding("a1") is True
        assert await service.delete_message_embedding("a1") is False

    async def test_delete_user(self, service, memory_store):
        """Test all embeddings of a user are removed."""
        await store_topics(service)
        await memory_store.insert(make_record("x", "x", basis(0), user_id="user-2"))

        assert await service.delete_user_embeddings("user-1") == 5
        assert await memory_store.count() == 1

    async def test_delete_errors_swallowed(self, topic_generator, retrieval_config):
        """Test store failures during deletion return neutral values."""
        store = InMemoryEmbeddingStore()
        store.delete_by_conversation = AsyncMock(side_effect=StoreError("down"))
        store.delete_by_message = AsyncMock(side_effect=StoreError("down"))
        store.delete_by_user = AsyncMock(side_effect=StoreError("down"))
        service = ContextService(store, topic_generator, retrieval_config)

        assert await service.delete_conversation_embeddings("c") == 0
        assert await service.delete_message_embedding("m") is False
        assert await service.delete_user_embeddings("u") == 0
