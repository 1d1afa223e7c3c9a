"""Shared test fixtures."""

from unittest.mock import AsyncMock

import pytest

from src.memory.store import MemoryStore
from src.realtime import RealtimeManager


@pytest.fixture(autouse=True)
def _reset_singletons():
    """Never leak a store or session manager between tests."""
    MemoryStore._reset()
    RealtimeManager._reset()
    yield
    MemoryStore._reset()
    RealtimeManager._reset()


@pytest.fixture
def store() -> MemoryStore:
    """A MemoryStore with a mocked Qdrant client."""
    s = MemoryStore.__new__(MemoryStore)
    s._client = AsyncMock()
    s._collection = "test_memories"
    return s
