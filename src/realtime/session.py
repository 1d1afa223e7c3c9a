"""A single realtime interaction and its upstream connection."""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

import aiohttp

logger = logging.getLogger(__name__)

# Downstream callback: async (event: dict) -> None
EventSink = Callable[[dict[str, Any]], Awaitable[None]]

# Upstream events held for a session nobody has joined yet
MAX_PENDING_EVENTS = 100


class SessionNotFoundError(LookupError):
    """Raised when a realtime session id is not (or no longer) registered."""

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session not found: {session_id}")
        self.session_id = session_id


@dataclass
class RealtimeSession:
    """Pairs a user and conversation with one upstream realtime socket."""

    id: str
    user_id: str
    conversation_id: str
    ws: aiohttp.ClientWebSocketResponse
    http: aiohttp.ClientSession | None = None
    last_user_message: str | None = None
    sink: EventSink | None = None
    relay: asyncio.Task | None = None
    pending: deque[str] = field(default_factory=lambda: deque(maxlen=MAX_PENDING_EVENTS))
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    async def send_event(self, event: dict[str, Any]) -> None:
        """Send one client event upstream."""
        await self.ws.send_json(event)

    async def close(self) -> None:
        """Stop relaying and close the upstream connection."""
        if self.relay is not None and not self.relay.done() and self.relay is not asyncio.current_task():
            self.relay.cancel()
        if not self.ws.closed:
            await self.ws.close()
        if self.http is not None and not self.http.closed:
            await self.http.close()
