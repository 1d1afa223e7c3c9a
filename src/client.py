"""HTTP client for the memory chat API, plus client-side chat history."""

from __future__ import annotations

import logging
import uuid
from datetime import UTC, datetime
from typing import Any, Literal

import httpx
from pydantic import BaseModel, Field

from src.memory.models import Memory

logger = logging.getLogger(__name__)


class ChatMessage(BaseModel):
    """One message in a client's conversation. Never sent to the store."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    role: Literal["user", "assistant"]
    content: str
    timestamp: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())
    used_memories: list[Memory] = Field(default_factory=list)
    attached_memories: list[Memory] = Field(default_factory=list)


class ApiError(Exception):
    """The server answered with a non-2xx status."""

    def __init__(self, status: int, message: str) -> None:
        super().__init__(f"{status}: {message}")
        self.status = status


class MemoryChatClient:
    """Synchronous client for one user's conversation.

    Keeps the conversation history locally; the server only ever sees
    the current message and any attached memories.
    """

    def __init__(
        self,
        base_url: str,
        user_id: str,
        conversation_id: str | None = None,
        http: httpx.Client | None = None,
    ) -> None:
        self.user_id = user_id
        self.conversation_id = conversation_id or str(uuid.uuid4())
        self.history: list[ChatMessage] = []
        self._http = http or httpx.Client(base_url=base_url, timeout=60)

    def close(self) -> None:
        self._http.close()

    def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        resp = self._http.request(method, path, **kwargs)
        if resp.status_code >= 400:
            try:
                message = resp.json().get("error", resp.text)
            except ValueError:
                message = resp.text
            raise ApiError(resp.status_code, message)
        return resp.json()

    # -- Memories ------------------------------------------------------------

    def list_memories(self) -> list[Memory]:
        data = self._request("GET", f"/api/memories/{self.user_id}")
        return [Memory.model_validate(m) for m in data]

    def search_memories(self, query: str, limit: int = 10) -> list[Memory]:
        data = self._request(
            "POST",
            "/api/memories/search",
            json={"query": query, "userId": self.user_id, "limit": limit},
        )
        return [Memory.model_validate(m) for m in data]

    def add_memory(self, content: str, memory_type: str = "context", importance: float = 0.5) -> str:
        data = self._request(
            "POST",
            "/api/memories",
            json={
                "content": content,
                "userId": self.user_id,
                "conversationId": self.conversation_id,
                "memoryType": memory_type,
                "importance": importance,
            },
        )
        return data["memoryId"]

    def cleanup(self) -> int:
        data = self._request("POST", f"/api/memories/cleanup/{self.user_id}")
        return data.get("removed", 0)

    # -- Chat ----------------------------------------------------------------

    def send(self, message: str, attached: list[Memory] | None = None) -> ChatMessage:
        """Send a message and append both sides of the exchange to history."""
        attached = attached or []
        self.history.append(ChatMessage(role="user", content=message, attached_memories=attached))

        data = self._request(
            "POST",
            "/api/chat",
            json={
                "message": message,
                "userId": self.user_id,
                "conversationId": self.conversation_id,
                "selectedMemories": [m.model_dump(by_alias=True) for m in attached],
            },
        )
        reply = ChatMessage(
            role="assistant",
            content=data["response"],
            used_memories=[Memory.model_validate(m) for m in data.get("usedMemories", [])],
        )
        self.history.append(reply)
        return reply
