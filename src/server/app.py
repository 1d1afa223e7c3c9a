"""Async HTTP + WebSocket server for the memory chat API.

Uses aiohttp's AppRunner/TCPSite for non-blocking start/stop. REST
routes live under ``/api``; the realtime relay socket is ``/realtime``.
"""

from __future__ import annotations

import json
import logging
import uuid
from datetime import UTC, datetime
from typing import Any, TypeVar

import aiohttp
from aiohttp import web
from pydantic import ValidationError

from src.chat.agent import generate_response
from src.config import settings
from src.memory.store import MemoryStore
from src.realtime import RealtimeManager, SessionNotFoundError
from src.server.models import (
    ApiModel,
    ChatRequest,
    ChatResponse,
    MemoryRequest,
    RealtimeMessageRequest,
    RealtimeSessionRequest,
    SearchRequest,
    UpdateMemoriesRequest,
)

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=ApiModel)


# -- Helpers -----------------------------------------------------------------


def _bad_request(message: str) -> web.Response:
    return web.json_response({"error": message}, status=400)


async def _parse(request: web.Request, model: type[T]) -> T | web.Response:
    """Parse and validate a JSON body; a 400 response is returned on failure."""
    try:
        payload: Any = await request.json()
    except Exception:
        return _bad_request("invalid JSON")
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        logger.warning("Rejected %s body: %s", request.path, exc.errors()[:3])
        return _bad_request("invalid request body")


def _cors_headers() -> dict[str, str]:
    return {
        "Access-Control-Allow-Origin": settings.cors_origin,
        "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
        "Access-Control-Allow-Headers": "Content-Type",
    }


@web.middleware
async def _cors_middleware(request: web.Request, handler) -> web.StreamResponse:
    """Permissive CORS for the browser client, including preflights."""
    if request.method == "OPTIONS":
        response: web.StreamResponse = web.Response(status=204)
    else:
        try:
            response = await handler(request)
        except web.HTTPException as exc:
            exc.headers.update(_cors_headers())
            raise
    if not response.prepared:
        response.headers.update(_cors_headers())
    return response


# -- Health ------------------------------------------------------------------


async def _health(request: web.Request) -> web.Response:
    """GET /health: basic liveness check."""
    return web.json_response({"status": "ok", "timestamp": datetime.now(UTC).isoformat()})


# -- Memories ----------------------------------------------------------------


async def _list_memories(request: web.Request) -> web.Response:
    """GET /api/memories/{user_id}: a user's memories, newest first."""
    user_id = request.match_info["user_id"]
    try:
        memories = await MemoryStore.get().get_all(user_id, limit=settings.memory_list_limit)
    except Exception:
        logger.exception("Get memories failed: user=%s", user_id)
        return web.json_response({"error": "Failed to fetch memories"}, status=500)
    return web.json_response([m.model_dump(by_alias=True) for m in memories])


async def _store_memory(request: web.Request) -> web.Response:
    """POST /api/memories: store a memory directly."""
    body = await _parse(request, MemoryRequest)
    if isinstance(body, web.Response):
        return body
    if not body.content or not body.user_id:
        return _bad_request("Content and userId required")

    try:
        memory_id = await MemoryStore.get().add(
            content=body.content,
            user_id=body.user_id,
            conversation_id=body.conversation_id or str(uuid.uuid4()),
            memory_type=body.memory_type,
            importance=body.importance,
        )
    except Exception:
        logger.exception("Store memory failed: user=%s", body.user_id)
        return web.json_response({"error": "Failed to store memory"}, status=500)
    return web.json_response({"memoryId": memory_id, "success": True})


async def _search_memories(request: web.Request) -> web.Response:
    """POST /api/memories/search: semantic search within one user's memories."""
    body = await _parse(request, SearchRequest)
    if isinstance(body, web.Response):
        return body
    if not body.query or not body.user_id:
        return _bad_request("Query and userId required")

    try:
        memories = await MemoryStore.get().search(body.query, body.user_id, limit=body.limit)
    except Exception:
        logger.exception("Search failed: user=%s", body.user_id)
        return web.json_response({"error": "Search failed"}, status=500)
    return web.json_response([m.model_dump(by_alias=True) for m in memories])


async def _cleanup_memories(request: web.Request) -> web.Response:
    """POST /api/memories/cleanup/{user_id}: remove duplicate memories."""
    user_id = request.match_info["user_id"]
    try:
        removed = await MemoryStore.get().cleanup_duplicates(user_id)
    except Exception:
        logger.exception("Cleanup failed: user=%s", user_id)
        return web.json_response({"error": "Cleanup failed"}, status=500)
    return web.json_response({
        "success": True,
        "message": "Duplicates cleaned up",
        "removed": removed,
    })


# -- Chat --------------------------------------------------------------------


async def _chat(request: web.Request) -> web.Response:
    """POST /api/chat: one memory-grounded chat turn."""
    body = await _parse(request, ChatRequest)
    if isinstance(body, web.Response):
        return body
    if not body.message or not body.user_id:
        return _bad_request("Message and userId required")

    try:
        result = await generate_response(
            body.message,
            body.user_id,
            body.conversation_id or str(uuid.uuid4()),
            body.selected_memories,
        )
    except Exception:
        logger.exception("Chat failed: user=%s", body.user_id)
        return web.json_response({"error": "Chat failed"}, status=500)

    response = ChatResponse(response=result.response, used_memories=result.used_memories)
    return web.json_response(response.dump())


# -- Realtime ----------------------------------------------------------------


async def _create_realtime_session(request: web.Request) -> web.Response:
    """POST /api/realtime/session: open an upstream realtime session."""
    body = await _parse(request, RealtimeSessionRequest)
    if isinstance(body, web.Response):
        return body
    if not body.user_id:
        return _bad_request("userId required")

    try:
        session_id = await RealtimeManager.get().create_session(body.user_id, body.selected_memories)
    except Exception:
        logger.exception("Create realtime session failed: user=%s", body.user_id)
        return web.json_response({"error": "Failed to create realtime session"}, status=500)
    return web.json_response({"sessionId": session_id})


async def _send_realtime_message(request: web.Request) -> web.Response:
    """POST /api/realtime/message: send a user message into a session."""
    body = await _parse(request, RealtimeMessageRequest)
    if isinstance(body, web.Response):
        return body
    if not body.session_id or not body.message:
        return _bad_request("sessionId and message required")

    try:
        await RealtimeManager.get().send_message(body.session_id, body.message, body.attached_memories)
    except SessionNotFoundError:
        return web.json_response({"error": "Session not found"}, status=404)
    except Exception:
        logger.exception("Send realtime message failed: session=%s", body.session_id)
        return web.json_response({"error": "Failed to send message"}, status=500)
    return web.json_response({"success": True})


async def _update_realtime_memories(request: web.Request) -> web.Response:
    """POST /api/realtime/update-memories: swap a session's memory context."""
    body = await _parse(request, UpdateMemoriesRequest)
    if isinstance(body, web.Response):
        return body
    if not body.session_id:
        return _bad_request("sessionId required")

    try:
        await RealtimeManager.get().update_session_memories(body.session_id, body.selected_memories)
    except SessionNotFoundError:
        return web.json_response({"error": "Session not found"}, status=404)
    except Exception:
        logger.exception("Update realtime memories failed: session=%s", body.session_id)
        return web.json_response({"error": "Failed to update memories"}, status=500)
    return web.json_response({"success": True})


async def _realtime_socket(request: web.Request) -> web.WebSocketResponse:
    """GET /realtime: browser socket that joins realtime sessions."""
    ws = web.WebSocketResponse()
    await ws.prepare(request)
    logger.info("New WebSocket connection")

    manager = RealtimeManager.get()
    joined: list[str] = []
    try:
        async for msg in ws:
            if msg.type != aiohttp.WSMsgType.TEXT:
                continue
            try:
                data = json.loads(msg.data)
            except ValueError:
                await ws.send_json({"type": "error", "error": "Invalid message format"})
                continue

            if not isinstance(data, dict) or data.get("type") != "join_session":
                continue
            session_id = data.get("sessionId")
            if not session_id:
                continue

            try:
                manager.get_session(session_id)
            except SessionNotFoundError:
                await ws.send_json({"type": "error", "error": "Session not found"})
                continue

            await ws.send_json({"type": "joined", "sessionId": session_id})
            await manager.attach(session_id, ws.send_json)
            joined.append(session_id)
    finally:
        for session_id in joined:
            await manager.detach(session_id, ws.send_json)
        logger.info("WebSocket connection closed")

    return ws


# -- Application -------------------------------------------------------------


async def _on_shutdown(app: web.Application) -> None:
    await RealtimeManager.get().close_all()


def _create_web_app() -> web.Application:
    """Build the aiohttp Application with routes."""
    app = web.Application(middlewares=[_cors_middleware])
    app.router.add_get("/health", _health)
    app.router.add_get("/api/memories/{user_id}", _list_memories)
    app.router.add_post("/api/memories", _store_memory)
    app.router.add_post("/api/memories/search", _search_memories)
    app.router.add_post("/api/memories/cleanup/{user_id}", _cleanup_memories)
    app.router.add_post("/api/chat", _chat)
    app.router.add_post("/api/realtime/session", _create_realtime_session)
    app.router.add_post("/api/realtime/message", _send_realtime_message)
    app.router.add_post("/api/realtime/update-memories", _update_realtime_memories)
    app.router.add_get("/realtime", _realtime_socket)
    app.on_shutdown.append(_on_shutdown)
    return app


class ChatServer:
    """Manages the aiohttp server lifecycle."""

    def __init__(self, host: str | None = None, port: int | None = None) -> None:
        self.host = host or settings.server_host
        self.port = port if port is not None else settings.port
        self._runner: web.AppRunner | None = None

    async def start(self) -> None:
        """Initialize the memory schema and start listening."""
        await MemoryStore.get().init_schema()

        app = _create_web_app()
        self._runner = web.AppRunner(app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.host, self.port)
        await site.start()
        logger.info("Server running on http://%s:%d", self.host, self.port)
        logger.info("Realtime WebSocket: ws://%s:%d/realtime", self.host, self.port)

    async def stop(self) -> None:
        """Shut down the server gracefully."""
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
            logger.info("Server stopped")
