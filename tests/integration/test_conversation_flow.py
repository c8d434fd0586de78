"""End-to-end conversation flow over in-process fakes.

Exercises the wiring a chat backend relies on: retrieve context, generate
with provider affinity, store both turns in the background, and retrieve
them again on a later turn.
"""

import pytest
from conftest import FakeEmbeddingProvider, FakeGenerationProvider, basis, make_entry

from lexi.core.exceptions import GenerationError
from lexi.core.lifecycle import ShutdownPhase
from lexi.core.models import GenerationOptions
from lexi.utils.service_factory import create_services

pytestmark = pytest.mark.integration


def topic_vector(text: str) -> list[float]:
    return basis(0) if "notice" in text.lower() else basis(1)


@pytest.fixture
def providers():
    google = FakeGenerationProvider(
        "google", outcomes=[GenerationError("quota exceeded")], default="google answer"
    )
    openai = FakeGenerationProvider("openai", default="Thirty days written notice.")
    return google, openai


@pytest.fixture
def services(settings, cache, retrieval_config, providers):
    return create_services(
        settings=settings,
        cache=cache,
        retrieval_config=retrieval_config,
        generation_providers=list(providers),
        embedding_providers=[FakeEmbeddingProvider("openai", fallback=topic_vector)],
    )


class TestConversationFlow:
    """Tests for a multi-turn conversation through LexiServices."""

    async def test_turns_are_remembered_and_retrieved(self, services, providers):
        """Test a later turn sees earlier relevant turns and keeps its provider."""
        google, openai = providers

        async with services:
            question = "What is the notice period for termination?"
            context = await services.context.get_relevant_context(
                question, user_id="user-1", conversation_id="c1"
            )
            assert context == []

            result = await services.gateway.generate_for_conversation(
                "c1",
                question,
                GenerationOptions(context=services.context.format_context_messages(context)),
            )
            assert result.provider == "openai"
            assert result.was_fallback is True

            services.write_queue.submit_many(
                [
                    make_entry("m1", question, minutes=0, conversation_id="c1"),
                    make_entry("m2", result.text, minutes=1, conversation_id="c1", role="assistant"),
                    make_entry("m3", "Which governing law applies?", minutes=2, conversation_id="c1"),
                ]
            )
            assert await services.write_queue.drain(timeout=1.0) is True
            assert await services.store.count() == 3

            follow_up = "How much notice must be given?"
            context = await services.context.get_relevant_context(
                follow_up,
                user_id="user-1",
                conversation_id="c1",
                recent_limit=1,
                semantic_limit=2,
            )
            assert [m.message_id for m in context] == ["m1", "m2", "m3"]
            assert context[-1].similarity is None

            second = await services.gateway.generate_for_conversation(
                "c1",
                follow_up,
                GenerationOptions(context=services.context.format_context_messages(context)),
            )
            assert second.provider == "openai"
            assert second.was_fallback is False
            assert [turn.role for turn in openai.calls[-1]["context"]] == [
                "user",
                "assistant",
                "user",
            ]
            assert len(google.calls) == 1

        assert services.lifecycle.state.phase == ShutdownPhase.COMPLETE

    async def test_stateless_generation_is_cached(self, services, providers):
        """Test repeated stateless prompts are answered from cache."""
        google, openai = providers

        async with services:
            first = await services.gateway.generate_content("Draft a mutual NDA")
            second = await services.gateway.generate_content("draft a mutual nda")
            third = await services.gateway.generate_content("Draft  a mutual NDA ")

        # google failed once, so the first answer came from openai
        assert first == third == "Thirty days written notice."
        # case differs: separate key, and google has recovered
        assert second == "google answer"
        assert len(openai.calls) == 1
        assert len(google.calls) == 2

    async def test_conversation_deletion_cascades(self, services):
        """Test deleting a conversation removes its embeddings."""
        async with services:
            services.write_queue.submit(make_entry("m1", "notice clause", conversation_id="c9"))
            await services.write_queue.drain(timeout=1.0)

            assert await services.context.delete_conversation_embeddings("c9") == 1
            assert await services.store.count() == 0
