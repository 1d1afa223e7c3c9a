"""Request and response bodies for the HTTP API (camelCase on the wire)."""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from src.memory.models import Memory, MemoryType


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def dump(self) -> dict:
        return self.model_dump(by_alias=True)


class ChatRequest(ApiModel):
    message: str = ""
    user_id: str = ""
    conversation_id: str | None = None
    selected_memories: list[Memory] = Field(default_factory=list)


class ChatResponse(ApiModel):
    response: str
    used_memories: list[Memory]


class MemoryRequest(ApiModel):
    content: str = ""
    user_id: str = ""
    conversation_id: str | None = None
    memory_type: MemoryType = "context"
    importance: float = Field(default=0.5, ge=0.0, le=1.0)


class SearchRequest(ApiModel):
    query: str = ""
    user_id: str = ""
    limit: int = Field(default=10, ge=1, le=100)


class RealtimeSessionRequest(ApiModel):
    user_id: str = ""
    selected_memories: list[Memory] = Field(default_factory=list)


class RealtimeMessageRequest(ApiModel):
    session_id: str = ""
    message: str = ""
    attached_memories: list[Memory] = Field(default_factory=list)


class UpdateMemoriesRequest(ApiModel):
    session_id: str = ""
    selected_memories: list[Memory] = Field(default_factory=list)
