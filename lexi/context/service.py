"""Semantic context retrieval over stored message embeddings.

ContextService stores one embedding per conversational message and finds
the prior messages most relevant to a new query. Search uses the store's
native vector index when it has one and degrades to an in-process cosine
scan over recent candidates otherwise. The scan is O(candidates x dimension)
per query, so it is bounded by fallback_oversample_factor.
"""

import asyncio
import logging
from collections.abc import Sequence
from typing import Any

from lexi.context.stores import EmbeddingStore
from lexi.core.exceptions import ValidationError, VectorSearchUnavailableError
from lexi.core.models import (
    ContextMatch,
    EmbeddingFilter,
    MessageEmbedding,
    MessageEntry,
    RetrievalConfig,
)
from lexi.engines.embeddings.generator import EmbeddingGenerator
from lexi.utils.vectors import cosine_similarities

logger = logging.getLogger(__name__)

RecentMessage = MessageEntry | MessageEmbedding | ContextMatch


class ContextService:
    """Store message embeddings and retrieve relevant prior context.

    Example:
        >>> service = ContextService(InMemoryEmbeddingStore(), generator)
        >>> await service.store_message_embedding(entry)
        >>> matches = await service.find_similar_context(
        ...     "indemnification cap", user_id="u1", limit=2
        ... )
    """

    def __init__(
        self,
        store: EmbeddingStore,
        embeddings: EmbeddingGenerator,
        config: RetrievalConfig | None = None,
    ) -> None:
        """Initialize context service.

        Args:
            store: Embedding store
            embeddings: Generator used for both stored messages and queries
            config: Retrieval tuning (defaults to RetrievalConfig.load())
        """
        self.store = store
        self.embeddings = embeddings
        self.config = config or RetrievalConfig.load()

    async def store_message_embedding(
        self, entry: MessageEntry
    ) -> MessageEmbedding | None:
        """Embed and persist one message.

        System messages are skipped. Failures are logged, never raised:
        a missing embedding only degrades future retrieval.

        Returns:
            The stored record, or None if skipped or failed
        """
        if entry.role == "system":
            return None

        try:
            vector = await self.embeddings.generate_embedding(entry.content)
            record = MessageEmbedding(
                user_id=entry.user_id,
                conversation_id=entry.conversation_id,
                message_id=entry.message_id,
                role=entry.role,
                content=entry.content,
                embedding=vector,
                metadata=entry.metadata,
                timestamp=entry.timestamp,
            )
            await self.store.insert(record)
        except Exception as e:
            logger.error(f"Error storing message embedding {entry.message_id}: {e}")
            return None

        logger.debug(f"Stored embedding for message {entry.message_id}")
        return record

    async def store_message_embeddings_batch(
        self, entries: Sequence[MessageEntry]
    ) -> list[MessageEmbedding]:
        """Store several messages concurrently.

        Individual failures do not affect the others.

        Returns:
            Records actually stored, in input order
        """
        results = await asyncio.gather(
            *(self.store_message_embedding(entry) for entry in entries),
            return_exceptions=True,
        )
        stored = [r for r in results if isinstance(r, MessageEmbedding)]
        logger.info(f"Stored {len(stored)}/{len(entries)} message embeddings")
        return stored

    async def find_similar_context(
        self,
        query_text: str,
        user_id: str,
        conversation_id: str | None = None,
        limit: int | None = None,
        threshold: float | None = None,
        exclude_message_ids: Sequence[str] = (),
        metadata_filter: dict[str, Any] | None = None,
    ) -> list[ContextMatch]:
        """Find the stored messages most similar to a query.

        Args:
            query_text: Query text (non-empty)
            user_id: Owner whose messages are searched (required)
            conversation_id: Restrict to one conversation
            limit: Maximum matches returned (>= 1); config.semantic_limit when None
            threshold: Minimum cosine similarity; config.similarity_threshold when None
            exclude_message_ids: Messages to leave out
            metadata_filter: Equality filters on metadata keys

        Returns:
            Matches with similarity >= threshold, most similar first

        Raises:
            ValidationError: On missing user_id, empty query or limit < 1
            EmbeddingError: If the query could not be embedded
        """
        if limit is None:
            limit = self.config.semantic_limit
        if threshold is None:
            threshold = self.config.similarity_threshold
        if not user_id:
            raise ValidationError("user_id is required for context search")
        if limit < 1:
            raise ValidationError(f"limit must be >= 1, got {limit}")
        if not isinstance(query_text, str) or not query_text.strip():
            raise ValidationError("Query text must be a non-empty string")

        query_vector = await self.embeddings.generate_embedding(query_text)
        search_filter = EmbeddingFilter(
            user_id=user_id,
            conversation_id=conversation_id,
            exclude_message_ids=list(exclude_message_ids),
            metadata=metadata_filter or {},
        )

        if self.config.native_search_enabled:
            try:
                return await self._native_search(
                    query_vector, search_filter, limit, threshold
                )
            except VectorSearchUnavailableError as e:
                logger.debug(f"Vector search not available, using fallback: {e}")
            except Exception as e:
                logger.warning(f"Vector search failed, using fallback: {e}")

        return await self._fallback_search(query_vector, search_filter, limit, threshold)

    async def get_relevant_context(
        self,
        query_text: str,
        user_id: str,
        conversation_id: str | None = None,
        recent_limit: int | None = None,
        semantic_limit: int | None = None,
        threshold: float | None = None,
        recent_messages: Sequence[RecentMessage] | None = None,
    ) -> list[ContextMatch]:
        """Merge recent messages with semantically relevant ones.

        Recent messages keep continuity; semantic matches add relevance.
        Entries sharing a content prefix are de-duplicated, with the semantic
        entry replacing the recent one.

        Args:
            query_text: The new user message
            user_id: Owner whose messages are searched
            conversation_id: Conversation being continued
            recent_limit: Number of most recent messages to include
            semantic_limit: Number of semantic matches to include
            threshold: Minimum similarity for semantic matches
            (unset limits and threshold come from RetrievalConfig)
            recent_messages: Caller-supplied recent history (any order);
                read from the store when omitted

        Returns:
            Merged context, oldest first

        Raises:
            ValidationError: On invalid arguments
        """
        if not user_id:
            raise ValidationError("user_id is required for context search")
        if recent_limit is None:
            recent_limit = self.config.recent_limit

        try:
            recent = await self._recent(user_id, conversation_id, recent_limit, recent_messages)
        except Exception as e:
            logger.warning(f"Could not load recent messages: {e}")
            recent = None

        try:
            similar = await self.find_similar_context(
                query_text,
                user_id=user_id,
                conversation_id=conversation_id,
                limit=semantic_limit,
                threshold=threshold,
            )
        except ValidationError:
            raise
        except Exception as e:
            logger.warning(f"Semantic search failed, using recent messages: {e}")
            similar = None

        if recent is None and similar is None:
            logger.error("Error getting relevant context: no source available")
            return []

        prefix = self.config.dedupe_prefix_chars
        merged: dict[str, ContextMatch] = {}
        for match in (recent or []) + (similar or []):
            merged[match.content[:prefix]] = match

        return sorted(merged.values(), key=lambda m: m.timestamp)

    @staticmethod
    def format_context_messages(matches: Sequence[ContextMatch]) -> list[dict[str, str]]:
        """Convert matches to {role, content} turns for a generation call."""
        return [{"role": m.role, "content": m.content} for m in matches]

    async def delete_conversation_embeddings(self, conversation_id: str) -> int:
        """Delete every embedding of a conversation (best effort)."""
        try:
            deleted = await self.store.delete_by_conversation(conversation_id)
        except Exception as e:
            logger.error(f"Error deleting embeddings for conversation {conversation_id}: {e}")
            return 0
        logger.info(f"Deleted {deleted} embeddings for conversation {conversation_id}")
        return deleted

    async def delete_message_embedding(self, message_id: str) -> bool:
        """Delete the embedding of one message (best effort)."""
        try:
            return await self.store.delete_by_message(message_id)
        except Exception as e:
            logger.error(f"Error deleting embedding for message {message_id}: {e}")
            return False

    async def delete_user_embeddings(self, user_id: str) -> int:
        """Delete every embedding owned by a user (best effort)."""
        try:
            deleted = await self.store.delete_by_user(user_id)
        except Exception as e:
            logger.error(f"Error deleting embeddings for user {user_id}: {e}")
            return 0
        logger.info(f"Deleted {deleted} embeddings for user {user_id}")
        return deleted

    async def _native_search(
        self,
        query_vector: list[float],
        search_filter: EmbeddingFilter,
        limit: int,
        threshold: float,
    ) -> list[ContextMatch]:
        hits = await self.store.vector_search(
            query_vector,
            search_filter,
            limit=limit * self.config.native_result_factor,
            num_candidates=limit * self.config.native_candidates_factor,
            threshold=threshold,
        )
        matches = [
            hit
            for hit in hits
            if hit.similarity is not None and hit.similarity >= threshold
        ]
        matches.sort(key=lambda m: m.similarity, reverse=True)
        return matches[:limit]

    async def _fallback_search(
        self,
        query_vector: list[float],
        search_filter: EmbeddingFilter,
        limit: int,
        threshold: float,
    ) -> list[ContextMatch]:
        """Brute-force scan of the newest matching records.

        O(candidates x dimension) per query: fine for small per-user
        histories, a scaling risk as they grow.
        """
        candidates = await self.store.find(
            search_filter, limit=limit * self.config.fallback_oversample_factor
        )
        if not candidates:
            return []

        scores = cosine_similarities(query_vector, [c.embedding for c in candidates])
        matches = [
            ContextMatch.from_record(record, float(score))
            for record, score in zip(candidates, scores)
            if score >= threshold
        ]
        matches.sort(key=lambda m: m.similarity, reverse=True)
        return matches[:limit]

    async def _recent(
        self,
        user_id: str,
        conversation_id: str | None,
        recent_limit: int,
        recent_messages: Sequence[RecentMessage] | None,
    ) -> list[ContextMatch]:
        """The newest recent_limit non-system messages as matches."""
        if recent_limit <= 0:
            return []

        if recent_messages is None:
            if not conversation_id:
                return []
            records = await self.store.find(
                EmbeddingFilter(user_id=user_id, conversation_id=conversation_id),
                limit=recent_limit,
            )
            return [ContextMatch.from_record(r) for r in records]

        eligible = [m for m in recent_messages if m.role != "system"]
        eligible.sort(key=lambda m: m.timestamp, reverse=True)
        return [self._as_match(m) for m in eligible[:recent_limit]]

    @staticmethod
    def _as_match(message: RecentMessage) -> ContextMatch:
        if isinstance(message, ContextMatch):
            return message
        return ContextMatch(
            message_id=message.message_id,
            conversation_id=message.conversation_id,
            role=message.role,
            content=message.content,
            metadata=message.metadata,
            timestamp=message.timestamp,
        )
