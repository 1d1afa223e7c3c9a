"""Realtime session manager.

Keeps one upstream WebSocket per active session to the hosted realtime
completion API and relays its events to the browser socket that joined
the session. Events are translated into the small vocabulary the web
client understands (``session_ready``, ``text_delta``,
``response_complete``, ``error``); anything else is forwarded verbatim.
Completed responses are run through conceptual memory extraction.
"""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from collections.abc import Sequence
from typing import Any

import aiohttp

from src.config import settings
from src.llm.prompt import build_realtime_instructions, build_realtime_update
from src.memory.extraction import extract_and_save
from src.memory.models import Memory
from src.realtime.session import EventSink, RealtimeSession, SessionNotFoundError

logger = logging.getLogger(__name__)

TEXT_DELTA_EVENTS = frozenset({"response.text.delta", "response.output_text.delta"})
TEXT_CONTENT_TYPES = frozenset({"text", "output_text"})


def response_text(response: dict[str, Any]) -> str | None:
    """Text of the first output item of a completed response, if any."""
    output = response.get("output") or []
    if not output:
        return None
    for part in output[0].get("content") or []:
        if part.get("type") in TEXT_CONTENT_TYPES:
            return part.get("text")
    return None


class RealtimeManager:
    """Singleton registry of live realtime sessions.

    Get the shared instance via ``RealtimeManager.get()``.
    """

    _instance: RealtimeManager | None = None

    def __init__(self) -> None:
        self._sessions: dict[str, RealtimeSession] = {}

    @classmethod
    def get(cls) -> RealtimeManager:
        """Return the shared RealtimeManager instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def _reset(cls) -> None:
        """Reset the singleton (for testing)."""
        cls._instance = None

    @property
    def session_ids(self) -> list[str]:
        return list(self._sessions)

    # -- Lifecycle -----------------------------------------------------------

    async def _connect(self) -> tuple[aiohttp.ClientSession, aiohttp.ClientWebSocketResponse]:
        """Open the upstream realtime socket."""
        http = aiohttp.ClientSession()
        try:
            ws = await http.ws_connect(
                settings.get_realtime_endpoint(),
                headers={
                    "Authorization": f"Bearer {settings.openai_api_key}",
                    "OpenAI-Beta": "realtime=v1",
                },
                heartbeat=30,
            )
        except Exception:
            await http.close()
            raise
        return http, ws

    async def create_session(self, user_id: str, selected_memories: Sequence[Memory] = ()) -> str:
        """Connect upstream, configure text-only mode, register the session.

        Returns:
            The new session id.

        Raises:
            Whatever the upstream connection raised.
        """
        http, ws = await self._connect()
        session = RealtimeSession(
            id=str(uuid.uuid4()),
            user_id=user_id,
            conversation_id=str(uuid.uuid4()),
            ws=ws,
            http=http,
        )
        try:
            await session.send_event({
                "type": "session.update",
                "session": {
                    "model": settings.realtime_model,
                    "modalities": ["text"],
                    "instructions": build_realtime_instructions(selected_memories),
                    "tools": [],
                    "tool_choice": "auto",
                    "temperature": 0.7,
                    "max_response_output_tokens": "inf",
                },
            })
        except Exception:
            await session.close()
            raise

        self._sessions[session.id] = session
        session.relay = asyncio.create_task(self._relay(session))
        logger.info(
            "Realtime session %s opened for %s (%d memories)",
            session.id,
            user_id,
            len(selected_memories),
        )
        return session.id

    def get_session(self, session_id: str) -> RealtimeSession:
        """Look up a live session or raise SessionNotFoundError."""
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    async def close_session(self, session_id: str) -> None:
        """Close the upstream socket and forget the session. Idempotent."""
        session = self._sessions.pop(session_id, None)
        if session is None:
            return
        await session.close()
        logger.info("Closed realtime session: %s", session_id)

    async def close_all(self) -> None:
        """Close every live session (server shutdown)."""
        for session_id in list(self._sessions):
            await self.close_session(session_id)

    # -- Client -> upstream --------------------------------------------------

    async def send_message(
        self,
        session_id: str,
        message: str,
        attached_memories: Sequence[Memory] = (),
    ) -> None:
        """Send a user message and ask for a text response."""
        session = self.get_session(session_id)
        session.last_user_message = message

        if attached_memories:
            await self.update_session_memories(session_id, attached_memories)

        await session.send_event({
            "type": "conversation.item.create",
            "item": {
                "type": "message",
                "role": "user",
                "content": [{"type": "input_text", "text": message}],
            },
        })
        await session.send_event({
            "type": "response.create",
            "response": {"modalities": ["text"]},
        })

    async def update_session_memories(self, session_id: str, memories: Sequence[Memory]) -> None:
        """Replace the session instructions with a new memory context."""
        session = self.get_session(session_id)
        await session.send_event({
            "type": "session.update",
            "session": {"instructions": build_realtime_update(memories)},
        })
        logger.debug("Session %s memories updated (%d)", session_id, len(memories))

    # -- Upstream -> client --------------------------------------------------

    async def attach(self, session_id: str, send: EventSink) -> None:
        """Route the session's upstream events to ``send``.

        Events that arrived before anyone joined are delivered first.
        Joining again replaces the previous downstream; one relay task
        reads the upstream socket per session.
        """
        session = self.get_session(session_id)
        async with session.lock:
            session.sink = send
            while session.pending:
                await self._dispatch(session, session.pending.popleft(), send)
        if session.relay is None or session.relay.done():
            session.relay = asyncio.create_task(self._relay(session))

    async def detach(self, session_id: str, send: EventSink) -> None:
        """Downstream went away: discard the session if it was still routed there."""
        session = self._sessions.get(session_id)
        if session is not None and session.sink == send:
            await self.close_session(session_id)

    async def _relay(self, session: RealtimeSession) -> None:
        try:
            async for msg in session.ws:
                if msg.type == aiohttp.WSMsgType.TEXT:
                    await self.handle_event(session, msg.data)
                elif msg.type == aiohttp.WSMsgType.ERROR:
                    logger.error("Realtime upstream error on %s: %s", session.id, session.ws.exception())
                    break
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Realtime relay failed: session=%s", session.id)
        finally:
            if self._sessions.get(session.id) is session:
                logger.info("Realtime upstream closed for session %s", session.id)
                await self.close_session(session.id)

    async def handle_event(self, session: RealtimeSession, raw: str) -> None:
        """Translate one upstream event and pass it downstream.

        Until a downstream attaches, raw events are held (oldest dropped
        first) so ``session.created`` still reaches the browser on join.
        """
        async with session.lock:
            if session.sink is None:
                session.pending.append(raw)
                return
            await self._dispatch(session, raw, session.sink)

    async def _dispatch(self, session: RealtimeSession, raw: str, send: EventSink) -> None:
        try:
            event: dict[str, Any] = json.loads(raw)
            event_type = event.get("type")

            if event_type == "session.created":
                logger.info("Realtime session created upstream: %s", session.id)
                await send({"type": "session_ready"})

            elif event_type in TEXT_DELTA_EVENTS:
                await send({"type": "text_delta", "delta": event.get("delta", "")})

            elif event_type == "response.done":
                response = event.get("response") or {}
                text = response_text(response)
                if text and session.last_user_message:
                    await extract_and_save(
                        session.last_user_message,
                        text,
                        session.user_id,
                        session.conversation_id,
                    )
                await send({"type": "response_complete", "response": response})

            elif event_type == "error":
                logger.error("Realtime API error: %s", event)
                await send({"type": "error", "error": event.get("error")})

            else:
                await send(event)

        except Exception:
            logger.exception("Error processing realtime event")
            await send({"type": "error", "error": "Failed to process event"})
