"""Realtime (streaming) chat sessions relayed from the hosted realtime API."""

from src.realtime.manager import RealtimeManager
from src.realtime.session import EventSink, RealtimeSession, SessionNotFoundError

__all__ = [
    "EventSink",
    "RealtimeManager",
    "RealtimeSession",
    "SessionNotFoundError",
]
