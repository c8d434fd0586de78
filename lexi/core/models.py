"""Core data models for Lexi.

This module defines Pydantic models for generation requests and results,
message embeddings, retrieval filters and retrieval results.
"""

from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from lexi.core.config import load_retrieval_config

MessageRole = Literal["user", "assistant", "system"]
MetadataType = Literal[
    "system", "chat", "summarize", "explain", "analyze", "suggest", "adjust"
]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ContextTurn(BaseModel):
    """One prior conversational turn forwarded to a generation backend."""

    role: Literal["user", "assistant"]
    content: str


class GenerationOptions(BaseModel):
    """Per-call generation options.

    Unset fields fall back to Settings defaults inside the gateway.

    Example:
        >>> options = GenerationOptions(system_prompt="Be concise.", temperature=0.2)
    """

    system_prompt: str | None = Field(None, description="Instruction prefixed to the generation")
    temperature: float | None = Field(None, description="Sampling randomness", ge=0.0, le=2.0)
    max_tokens: int | None = Field(None, description="Output length cap", ge=1)
    cache_ttl: int | None = Field(None, description="Seconds to retain the response", ge=1)
    model: str | None = Field(None, description="Backend-specific model override")
    context: list[ContextTurn] = Field(
        default_factory=list, description="Prior turns (conversation-scoped calls)"
    )


class GenerationResult(BaseModel):
    """Outcome of a conversation-scoped generation call.

    Attributes:
        text: Generated text
        provider: Provider that produced the text
        model: Model variant that produced the text (if reported)
        was_fallback: True if the remembered provider failed first
        latency: Wall-clock seconds spent across attempts
        failed_providers: Providers that failed before success
    """

    text: str
    provider: str
    model: str | None = None
    was_fallback: bool = False
    latency: float = 0.0
    failed_providers: list[str] = Field(default_factory=list)


class EmbeddingMetadata(BaseModel):
    """Free-form tags stored alongside a message embedding."""

    model_config = ConfigDict(extra="allow")

    type: MetadataType = Field(default="chat", description="Interaction type")
    document_type: str | None = None
    tone: str | None = None
    references: list[str] = Field(default_factory=list)
    suggestions: list[str] = Field(default_factory=list)
    provider: str | None = None


class MessageEntry(BaseModel):
    """A conversational message whose embedding should be stored."""

    user_id: str = Field(..., min_length=1)
    conversation_id: str = Field(..., min_length=1)
    message_id: str = Field(..., min_length=1)
    role: MessageRole
    content: str
    metadata: EmbeddingMetadata = Field(default_factory=EmbeddingMetadata)
    timestamp: datetime = Field(default_factory=_utcnow)


class MessageEmbedding(BaseModel):
    """Persisted embedding for one non-system conversational message.

    Records are write-once: created when a message is appended, deleted in
    cascade with their message or conversation, never updated in place.
    """

    user_id: str
    conversation_id: str
    message_id: str
    role: Literal["user", "assistant"]
    content: str
    embedding: list[float]
    metadata: EmbeddingMetadata = Field(default_factory=EmbeddingMetadata)
    timestamp: datetime = Field(default_factory=_utcnow)

    @field_validator("embedding")
    @classmethod
    def embedding_not_empty(cls, v: list[float]) -> list[float]:
        """Validate the vector has at least one component."""
        if not v:
            raise ValueError("Embedding vector cannot be empty")
        return v


class EmbeddingFilter(BaseModel):
    """Filter predicates shared by native and fallback searches."""

    user_id: str = Field(..., min_length=1)
    conversation_id: str | None = None
    exclude_message_ids: list[str] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)

    def matches(self, record: MessageEmbedding) -> bool:
        """Check a record against this filter (used by in-process stores)."""
        if record.user_id != self.user_id:
            return False
        if self.conversation_id and record.conversation_id != self.conversation_id:
            return False
        if record.message_id in self.exclude_message_ids:
            return False
        record_metadata = record.metadata.model_dump()
        for key, expected in self.metadata.items():
            if record_metadata.get(key) != expected:
                return False
        return True


class ContextMatch(BaseModel):
    """A retrieved message, from either retrieval path.

    similarity is None for recency-only entries in merged context.
    """

    message_id: str
    conversation_id: str
    role: Literal["user", "assistant"]
    content: str
    metadata: EmbeddingMetadata = Field(default_factory=EmbeddingMetadata)
    timestamp: datetime
    similarity: float | None = None

    @classmethod
    def from_record(
        cls, record: MessageEmbedding, similarity: float | None = None
    ) -> "ContextMatch":
        """Build a match from a stored record."""
        return cls(
            message_id=record.message_id,
            conversation_id=record.conversation_id,
            role=record.role,
            content=record.content,
            metadata=record.metadata,
            timestamp=record.timestamp,
            similarity=similarity,
        )


class RetrievalConfig(BaseModel):
    """Tuning constants for context retrieval.

    Attributes:
        similarity_threshold: Default minimum cosine similarity
        semantic_limit: Default number of semantic matches
        recent_limit: Default number of recent messages in merged context
        native_candidates_factor: numCandidates = limit * factor (native index)
        native_result_factor: Native results requested = limit * factor
        fallback_oversample_factor: Candidates scanned = limit * factor (fallback)
        dedupe_prefix_chars: Content prefix length used for de-duplication
        native_search_enabled: Try the native vector index first
    """

    similarity_threshold: float = Field(default=0.7, ge=-1.0, le=1.0)
    semantic_limit: int = Field(default=5, ge=1)
    recent_limit: int = Field(default=3, ge=0)
    native_candidates_factor: int = Field(default=10, ge=1)
    native_result_factor: int = Field(default=2, ge=1)
    fallback_oversample_factor: int = Field(default=3, ge=1)
    dedupe_prefix_chars: int = Field(default=100, ge=1)
    native_search_enabled: bool = True

    @classmethod
    def load(cls) -> "RetrievalConfig":
        """Build from lexi.yaml / environment / defaults."""
        return cls(**load_retrieval_config())
