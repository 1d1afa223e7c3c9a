"""Data models for stored memories."""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

MemoryType = Literal["fact", "preference", "context"]


class Memory(BaseModel):
    """A memory record as stored in, or returned from, the vector store.

    Serialized with camelCase keys (``userId``, ``memoryType``...) for the
    web client; Python code uses the snake_case attribute names.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str = ""
    content: str
    timestamp: str = ""
    user_id: str = ""
    conversation_id: str = ""
    memory_type: MemoryType = "context"
    importance: float = Field(default=0.5, ge=0.0, le=1.0)
    distance: float | None = None

    def to_payload(self) -> dict:
        """Payload stored alongside the vector (everything but id/distance)."""
        return {
            "content": self.content,
            "timestamp": self.timestamp,
            "user_id": self.user_id,
            "conversation_id": self.conversation_id,
            "memory_type": self.memory_type,
            "importance": self.importance,
        }
