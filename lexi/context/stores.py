"""Embedding stores for message embeddings.

Storage Options:
- InMemoryEmbeddingStore: Dict-based storage for testing/development
  (no native vector index; search degrades to the in-process scan)
- MongoEmbeddingStore: MongoDB via motor, with Atlas Vector Search

Design Notes:
- Records are write-once; there is no update operation
- vector_search raises VectorSearchUnavailableError when the backend has no
  usable index; ContextService then falls back to find() + cosine scan

Usage:
    >>> from lexi.context.stores import InMemoryEmbeddingStore
    >>>
    >>> store = InMemoryEmbeddingStore()
    >>> await store.insert(record)
    >>> records = await store.find(EmbeddingFilter(user_id="u1"), limit=15)
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any

import motor.motor_asyncio
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import OperationFailure, PyMongoError

from lexi.core.exceptions import StoreError, VectorSearchUnavailableError
from lexi.core.models import ContextMatch, EmbeddingFilter, MessageEmbedding

logger = logging.getLogger(__name__)


class EmbeddingStore(ABC):
    """Abstract base class for message embedding storage.

    Implementations must provide async methods for inserting, searching,
    listing and deleting MessageEmbedding records.
    """

    @abstractmethod
    async def insert(self, record: MessageEmbedding) -> None:
        """Persist one embedding record.

        Args:
            record: MessageEmbedding to store

        Raises:
            StoreError: If the write fails
        """
        pass

    @abstractmethod
    async def vector_search(
        self,
        vector: list[float],
        filter: EmbeddingFilter,
        limit: int,
        num_candidates: int,
        threshold: float | None = None,
    ) -> list[ContextMatch]:
        """Approximate nearest-neighbour search using a native index.

        Args:
            vector: Query embedding
            filter: Predicates applied inside the search
            limit: Maximum results returned
            num_candidates: Candidates considered by the index
            threshold: Optional minimum cosine similarity applied by the backend

        Returns:
            Matches with cosine similarity in [-1, 1], most similar first.
            Stored vectors are not returned.

        Raises:
            VectorSearchUnavailableError: If no native index is available
            StoreError: If the query fails
        """
        pass

    @abstractmethod
    async def find(
        self, filter: EmbeddingFilter, limit: int
    ) -> list[MessageEmbedding]:
        """List records matching a filter, newest first.

        Args:
            filter: Predicates to apply
            limit: Maximum records returned

        Returns:
            Matching records ordered by timestamp descending
        """
        pass

    @abstractmethod
    async def delete_by_conversation(self, conversation_id: str) -> int:
        """Delete every record of a conversation; returns count deleted."""
        pass

    @abstractmethod
    async def delete_by_message(self, message_id: str) -> bool:
        """Delete the record for one message; returns whether one existed."""
        pass

    @abstractmethod
    async def delete_by_user(self, user_id: str) -> int:
        """Delete every record owned by a user; returns count deleted."""
        pass

    @abstractmethod
    async def count(self, filter: EmbeddingFilter | None = None) -> int:
        """Count records, optionally matching a filter."""
        pass

    async def close(self) -> None:
        """Release connections held by the store."""
        return None


class InMemoryEmbeddingStore(EmbeddingStore):
    """In-memory embedding store for development and testing.

    Not suitable for production (not persistent, single-process only).

    Thread Safety:
        Uses asyncio.Lock around every read and write.
    """

    def __init__(self) -> None:
        self._records: dict[str, MessageEmbedding] = {}
        self._lock = asyncio.Lock()

    async def insert(self, record: MessageEmbedding) -> None:
        """Save record to memory (keyed by message_id)."""
        async with self._lock:
            self._records[record.message_id] = record
        logger.debug(f"Stored embedding for message: {record.message_id}")

    async def vector_search(
        self,
        vector: list[float],
        filter: EmbeddingFilter,
        limit: int,
        num_candidates: int,
        threshold: float | None = None,
    ) -> list[ContextMatch]:
        """In-memory store has no vector index."""
        raise VectorSearchUnavailableError("In-memory store has no vector index")

    async def find(
        self, filter: EmbeddingFilter, limit: int
    ) -> list[MessageEmbedding]:
        """Matching records, newest first."""
        async with self._lock:
            matches = [r for r in self._records.values() if filter.matches(r)]
        matches.sort(key=lambda r: r.timestamp, reverse=True)
        return matches[:limit]

    async def delete_by_conversation(self, conversation_id: str) -> int:
        async with self._lock:
            doomed = [
                mid
                for mid, r in self._records.items()
                if r.conversation_id == conversation_id
            ]
            for mid in doomed:
                del self._records[mid]
        return len(doomed)

    async def delete_by_message(self, message_id: str) -> bool:
        async with self._lock:
            return self._records.pop(message_id, None) is not None

    async def delete_by_user(self, user_id: str) -> int:
        async with self._lock:
            doomed = [mid for mid, r in self._records.items() if r.user_id == user_id]
            for mid in doomed:
                del self._records[mid]
        return len(doomed)

    async def count(self, filter: EmbeddingFilter | None = None) -> int:
        async with self._lock:
            if filter is None:
                return len(self._records)
            return sum(1 for r in self._records.values() if filter.matches(r))


class MongoEmbeddingStore(EmbeddingStore):
    """MongoDB embedding store backed by motor.

    Native search uses the Atlas Vector Search `$vectorSearch` stage on the
    configured index over the `embedding` path. Deployments without Atlas
    (or without the index) make vector_search raise
    VectorSearchUnavailableError.

    Example:
        >>> store = MongoEmbeddingStore("mongodb://localhost:27017")
        >>> await store.ensure_indexes()
    """

    def __init__(
        self,
        uri: str | None = None,
        database: str = "lexi",
        collection: str = "message_embeddings",
        index_name: str = "vector_index",
        client: motor.motor_asyncio.AsyncIOMotorClient | None = None,
    ):
        """Initialize MongoDB store.

        Args:
            uri: MongoDB connection string (ignored when client is given)
            database: Database name
            collection: Collection holding embedding documents
            index_name: Atlas Vector Search index name
            client: Existing motor client (the store will not close it)
        """
        if client is None and not uri:
            raise ValueError("MongoEmbeddingStore requires a uri or a client")
        self._owns_client = client is None
        self._client = client or motor.motor_asyncio.AsyncIOMotorClient(uri, tz_aware=True)
        self._collection = self._client[database][collection]
        self.index_name = index_name

    async def ensure_indexes(self) -> None:
        """Create the compound indexes used by find() and deletes."""
        try:
            await self._collection.create_index(
                [("user_id", ASCENDING), ("conversation_id", ASCENDING), ("timestamp", DESCENDING)]
            )
            await self._collection.create_index(
                [("user_id", ASCENDING), ("metadata.type", ASCENDING), ("timestamp", DESCENDING)]
            )
            await self._collection.create_index(
                [("conversation_id", ASCENDING), ("timestamp", DESCENDING)]
            )
            await self._collection.create_index([("message_id", ASCENDING)])
        except PyMongoError as e:
            raise StoreError(f"Failed to create embedding indexes: {e}") from e
        logger.info("Embedding collection indexes ensured")

    async def insert(self, record: MessageEmbedding) -> None:
        try:
            await self._collection.insert_one(record.model_dump())
        except PyMongoError as e:
            raise StoreError(f"Failed to insert embedding: {e}") from e

    async def vector_search(
        self,
        vector: list[float],
        filter: EmbeddingFilter,
        limit: int,
        num_candidates: int,
        threshold: float | None = None,
    ) -> list[ContextMatch]:
        """Run $vectorSearch against the Atlas index.

        Atlas reports (1 + cosine) / 2 for cosine indexes; the pipeline maps
        it back to cosine so thresholds mean the same as in the fallback scan.
        """
        pipeline: list[dict[str, Any]] = [
            {
                "$vectorSearch": {
                    "index": self.index_name,
                    "path": "embedding",
                    "queryVector": vector,
                    "numCandidates": num_candidates,
                    "limit": limit,
                    "filter": self._vector_filter(filter),
                }
            },
            {
                "$addFields": {
                    "similarity": {
                        "$subtract": [{"$multiply": [2, {"$meta": "vectorSearchScore"}]}, 1]
                    }
                }
            },
        ]
        post_filter: dict[str, Any] = {}
        if threshold is not None:
            post_filter["similarity"] = {"$gte": threshold}
        if filter.exclude_message_ids:
            # $vectorSearch filters only support indexed fields
            post_filter["message_id"] = {"$nin": filter.exclude_message_ids}
        if post_filter:
            pipeline.append({"$match": post_filter})
        pipeline.extend(
            [
                {"$sort": {"similarity": -1}},
                {"$limit": limit},
                {"$project": {"_id": 0, "embedding": 0}},
            ]
        )

        try:
            cursor = self._collection.aggregate(pipeline)
            documents = await cursor.to_list(length=limit)
        except OperationFailure as e:
            raise VectorSearchUnavailableError(f"Vector search unavailable: {e}") from e
        except PyMongoError as e:
            raise StoreError(f"Vector search failed: {e}") from e

        return [ContextMatch(**doc) for doc in documents]

    async def find(
        self, filter: EmbeddingFilter, limit: int
    ) -> list[MessageEmbedding]:
        try:
            cursor = (
                self._collection.find(self._find_query(filter), {"_id": 0})
                .sort("timestamp", DESCENDING)
                .limit(limit)
            )
            documents = await cursor.to_list(length=limit)
        except PyMongoError as e:
            raise StoreError(f"Embedding query failed: {e}") from e
        return [MessageEmbedding(**doc) for doc in documents]

    async def delete_by_conversation(self, conversation_id: str) -> int:
        try:
            result = await self._collection.delete_many({"conversation_id": conversation_id})
        except PyMongoError as e:
            raise StoreError(f"Failed to delete conversation embeddings: {e}") from e
        return result.deleted_count

    async def delete_by_message(self, message_id: str) -> bool:
        try:
            result = await self._collection.delete_one({"message_id": message_id})
        except PyMongoError as e:
            raise StoreError(f"Failed to delete message embedding: {e}") from e
        return result.deleted_count > 0

    async def delete_by_user(self, user_id: str) -> int:
        try:
            result = await self._collection.delete_many({"user_id": user_id})
        except PyMongoError as e:
            raise StoreError(f"Failed to delete user embeddings: {e}") from e
        return result.deleted_count

    async def count(self, filter: EmbeddingFilter | None = None) -> int:
        query = self._find_query(filter) if filter else {}
        try:
            return await self._collection.count_documents(query)
        except PyMongoError as e:
            raise StoreError(f"Embedding count failed: {e}") from e

    async def close(self) -> None:
        if self._owns_client:
            self._client.close()

    @staticmethod
    def _vector_filter(filter: EmbeddingFilter) -> dict[str, Any]:
        """Pre-filter for $vectorSearch (indexed equality fields only)."""
        query: dict[str, Any] = {"user_id": filter.user_id}
        if filter.conversation_id:
            query["conversation_id"] = filter.conversation_id
        for key, value in filter.metadata.items():
            query[f"metadata.{key}"] = value
        return query

    @classmethod
    def _find_query(cls, filter: EmbeddingFilter) -> dict[str, Any]:
        query = cls._vector_filter(filter)
        if filter.exclude_message_ids:
            query["message_id"] = {"$nin": filter.exclude_message_ids}
        return query
