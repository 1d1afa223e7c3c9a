"""Shared memory store backed by a Qdrant collection.

Each point holds one memory: the embedding of its content as the vector
and the memory fields as payload. Every read is filtered on the
``user_id`` payload key, so one user's memories never surface in another
user's search or listing.
"""

import logging
import uuid
from datetime import UTC, datetime
from typing import Any

from pydantic import ValidationError
from qdrant_client import AsyncQdrantClient, models

from src.config import settings
from src.llm.client import embed_text
from src.memory.dedup import find_duplicate_ids
from src.memory.models import Memory, MemoryType

logger = logging.getLogger(__name__)

_SCROLL_PAGE_SIZE = 256


def _user_filter(user_id: str) -> models.Filter:
    return models.Filter(
        must=[models.FieldCondition(key="user_id", match=models.MatchValue(value=user_id))]
    )


class MemoryStore:
    """Singleton memory store.

    Get the shared instance via ``MemoryStore.get()``.
    """

    _instance: "MemoryStore | None" = None

    def __init__(self) -> None:
        kwargs: dict[str, Any] = {"url": settings.qdrant_url}
        if settings.qdrant_api_key:
            kwargs["api_key"] = settings.qdrant_api_key
        self._client = AsyncQdrantClient(**kwargs)
        self._collection = settings.memory_collection
        logger.info("Memory store: Qdrant at %s (collection=%s)", settings.qdrant_url, self._collection)

    @classmethod
    def get(cls) -> "MemoryStore":
        """Return the shared MemoryStore instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def _reset(cls) -> None:
        """Reset the singleton (for testing)."""
        cls._instance = None

    # -- Schema --------------------------------------------------------------

    async def init_schema(self) -> None:
        """Make sure the collection and its payload indexes exist.

        With ``MEMORY_RESET_ON_START`` an existing collection is dropped
        first. Failures are logged; the server keeps running without a
        verified schema.
        """
        try:
            exists = await self._client.collection_exists(self._collection)
            if exists and settings.memory_reset_on_start:
                logger.info("Dropping existing collection %s", self._collection)
                await self._client.delete_collection(self._collection)
                exists = False

            if not exists:
                await self._client.create_collection(
                    collection_name=self._collection,
                    vectors_config=models.VectorParams(
                        size=settings.embedding_dimensions,
                        distance=models.Distance.COSINE,
                    ),
                )
                for field_name in ("user_id", "conversation_id"):
                    await self._client.create_payload_index(
                        collection_name=self._collection,
                        field_name=field_name,
                        field_schema=models.PayloadSchemaType.KEYWORD,
                    )
                logger.info("Created memory collection %s", self._collection)
        except Exception:
            logger.exception("Schema init failed, continuing without schema validation")

    # -- Write ---------------------------------------------------------------

    async def add(
        self,
        content: str,
        user_id: str,
        conversation_id: str,
        memory_type: MemoryType = "context",
        importance: float = 0.5,
    ) -> str:
        """Embed and store a memory.

        Returns:
            The id assigned to the new memory.

        Raises:
            Whatever the embedding or vector store call raised.
        """
        memory = Memory(
            id=str(uuid.uuid4()),
            content=content,
            timestamp=datetime.now(UTC).isoformat(),
            user_id=user_id,
            conversation_id=conversation_id,
            memory_type=memory_type,
            importance=importance,
        )
        vector = await embed_text(content)
        await self._client.upsert(
            collection_name=self._collection,
            points=[models.PointStruct(id=memory.id, vector=vector, payload=memory.to_payload())],
            wait=True,
        )
        logger.debug("Stored memory [%s/%s]: %s", user_id, memory_type, content[:80])
        return memory.id

    # -- Read ----------------------------------------------------------------

    async def search(self, query: str, user_id: str, limit: int = 5) -> list[Memory]:
        """Nearest-neighbour search over one user's memories.

        Each result carries ``distance`` (``1 - cosine similarity``), so
        smaller is closer. Returns an empty list on failure.
        """
        try:
            vector = await embed_text(query)
            response = await self._client.query_points(
                collection_name=self._collection,
                query=vector,
                query_filter=_user_filter(user_id),
                limit=limit,
                with_payload=True,
            )
        except Exception:
            logger.exception("Memory search failed")
            return []

        return self._to_memories(response.points, scored=True)

    async def get_all(self, user_id: str, limit: int | None = None) -> list[Memory]:
        """All memories for a user, newest first.

        Scroll order is point-id order, so every page is read and sorted
        before ``limit`` is applied. Returns an empty list on failure.
        """
        try:
            points: list[Any] = []
            offset = None
            while True:
                batch, offset = await self._client.scroll(
                    collection_name=self._collection,
                    scroll_filter=_user_filter(user_id),
                    limit=_SCROLL_PAGE_SIZE,
                    offset=offset,
                    with_payload=True,
                    with_vectors=False,
                )
                points.extend(batch)
                if offset is None or not batch:
                    break
        except Exception:
            logger.exception("Failed to fetch memories for %s", user_id)
            return []

        memories = self._to_memories(points)
        memories.sort(key=lambda m: m.timestamp, reverse=True)
        return memories if limit is None else memories[:limit]

    # -- Delete --------------------------------------------------------------

    async def delete(self, memory_id: str) -> bool:
        """Delete a memory by ID.

        Returns True if successful.
        """
        try:
            await self._client.delete(
                collection_name=self._collection,
                points_selector=models.PointIdsList(points=[memory_id]),
                wait=True,
            )
            logger.info("Deleted memory: %s", memory_id)
            return True
        except Exception:
            logger.exception("Failed to delete memory %s", memory_id)
            return False

    async def cleanup_duplicates(self, user_id: str) -> int:
        """Remove repeated memories for a user, keeping the newest copy.

        Returns the number of memories deleted.
        """
        memories = await self.get_all(user_id)
        removed = 0
        for memory_id in find_duplicate_ids(memories):
            if await self.delete(memory_id):
                removed += 1

        if removed:
            logger.info("Cleaned up %d duplicate memories for %s", removed, user_id)
        return removed

    # -- Helpers -------------------------------------------------------------

    @staticmethod
    def _to_memory(point: Any, distance: float | None = None) -> Memory:
        """Convert a Qdrant point (record or scored point) into a Memory."""
        payload = point.payload or {}
        return Memory(
            id=str(point.id),
            content=payload.get("content", ""),
            timestamp=payload.get("timestamp", ""),
            user_id=payload.get("user_id", ""),
            conversation_id=payload.get("conversation_id", ""),
            memory_type=payload.get("memory_type", "context"),
            importance=payload.get("importance", 0.5),
            distance=distance,
        )

    def _to_memories(self, points: list[Any], scored: bool = False) -> list[Memory]:
        """Convert points, skipping any whose payload is not a valid memory."""
        memories = []
        for point in points:
            try:
                distance = 1.0 - point.score if scored else None
                memories.append(self._to_memory(point, distance=distance))
            except ValidationError as exc:
                logger.warning("Skipping malformed memory %s: %s", point.id, exc.errors()[:1])
        return memories
