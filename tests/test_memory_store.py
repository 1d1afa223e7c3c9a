"""Tests for the Qdrant-backed memory store."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from qdrant_client import models

from src.memory.models import Memory
from src.memory.store import MemoryStore


def _point(point_id: str, content: str, timestamp: str = "", score: float | None = None, **payload):
    body = {
        "content": content,
        "timestamp": timestamp,
        "user_id": "user_1",
        "conversation_id": "conv_1",
        "memory_type": "fact",
        "importance": 0.7,
        **payload,
    }
    return SimpleNamespace(id=point_id, payload=body, score=score)


@pytest.fixture(autouse=True)
def _fake_embeddings():
    with patch("src.memory.store.embed_text", new_callable=AsyncMock, return_value=[0.1, 0.2, 0.3]):
        yield


def _user_of(flt: models.Filter) -> str:
    return flt.must[0].match.value


# -- init_schema -------------------------------------------------------------


async def test_init_schema_creates_missing_collection(store: MemoryStore) -> None:
    store._client.collection_exists.return_value = False

    await store.init_schema()

    store._client.create_collection.assert_awaited_once()
    kwargs = store._client.create_collection.call_args.kwargs
    assert kwargs["collection_name"] == "test_memories"
    assert kwargs["vectors_config"].distance == models.Distance.COSINE
    indexed = [c.kwargs["field_name"] for c in store._client.create_payload_index.call_args_list]
    assert indexed == ["user_id", "conversation_id"]


async def test_init_schema_keeps_existing_collection(store: MemoryStore) -> None:
    store._client.collection_exists.return_value = True

    await store.init_schema()

    store._client.delete_collection.assert_not_called()
    store._client.create_collection.assert_not_called()


async def test_init_schema_resets_when_configured(store: MemoryStore) -> None:
    store._client.collection_exists.return_value = True

    with patch("src.memory.store.settings") as mock_settings:
        mock_settings.memory_reset_on_start = True
        mock_settings.embedding_dimensions = 1536
        await store.init_schema()

    store._client.delete_collection.assert_awaited_once_with("test_memories")
    store._client.create_collection.assert_awaited_once()


async def test_init_schema_failure_is_not_fatal(store: MemoryStore) -> None:
    store._client.collection_exists.side_effect = ConnectionError("qdrant down")
    await store.init_schema()


# -- add ---------------------------------------------------------------------


async def test_add_upserts_point_with_payload(store: MemoryStore) -> None:
    memory_id = await store.add("likes bagels", "user_1", "conv_1", "preference", 0.6)

    store._client.upsert.assert_awaited_once()
    kwargs = store._client.upsert.call_args.kwargs
    point = kwargs["points"][0]
    assert point.id == memory_id
    assert point.vector == [0.1, 0.2, 0.3]
    assert point.payload["content"] == "likes bagels"
    assert point.payload["user_id"] == "user_1"
    assert point.payload["conversation_id"] == "conv_1"
    assert point.payload["memory_type"] == "preference"
    assert point.payload["importance"] == 0.6
    assert point.payload["timestamp"]


async def test_add_defaults(store: MemoryStore) -> None:
    await store.add("something", "user_1", "conv_1")
    payload = store._client.upsert.call_args.kwargs["points"][0].payload
    assert payload["memory_type"] == "context"
    assert payload["importance"] == 0.5


async def test_add_propagates_errors(store: MemoryStore) -> None:
    store._client.upsert.side_effect = RuntimeError("boom")
    with pytest.raises(RuntimeError):
        await store.add("x", "user_1", "conv_1")


# -- search ------------------------------------------------------------------


async def test_search_filters_by_user_and_reports_distance(store: MemoryStore) -> None:
    store._client.query_points.return_value = SimpleNamespace(
        points=[_point("a", "london", score=0.9), _point("b", "bagels", score=0.6)]
    )

    results = await store.search("where to eat", "user_1", limit=2)

    kwargs = store._client.query_points.call_args.kwargs
    assert _user_of(kwargs["query_filter"]) == "user_1"
    assert kwargs["limit"] == 2
    assert kwargs["query"] == [0.1, 0.2, 0.3]
    assert [m.content for m in results] == ["london", "bagels"]
    assert results[0].distance == pytest.approx(0.1)
    assert results[1].distance == pytest.approx(0.4)
    assert isinstance(results[0], Memory)
    assert results[0].id == "a"


async def test_search_failure_returns_empty(store: MemoryStore) -> None:
    store._client.query_points.side_effect = RuntimeError("boom")
    assert await store.search("anything", "user_1") == []


# -- get_all -----------------------------------------------------------------


async def test_get_all_sorts_newest_first(store: MemoryStore) -> None:
    store._client.scroll.return_value = (
        [
            _point("a", "old", timestamp="2024-01-01T00:00:00+00:00"),
            _point("b", "new", timestamp="2024-03-01T00:00:00+00:00"),
            _point("c", "mid", timestamp="2024-02-01T00:00:00+00:00"),
        ],
        None,
    )

    memories = await store.get_all("user_1")

    assert [m.content for m in memories] == ["new", "mid", "old"]
    assert all(m.distance is None for m in memories)
    assert _user_of(store._client.scroll.call_args.kwargs["scroll_filter"]) == "user_1"


async def test_get_all_pages_until_exhausted(store: MemoryStore) -> None:
    store._client.scroll.side_effect = [
        ([_point("a", "one")], "next"),
        ([_point("b", "two")], None),
    ]

    memories = await store.get_all("user_1")

    assert len(memories) == 2
    assert store._client.scroll.call_args_list[1].kwargs["offset"] == "next"


async def test_get_all_limit_keeps_newest(store: MemoryStore) -> None:
    # Scroll order follows point ids, not timestamps
    store._client.scroll.side_effect = [
        (
            [
                _point("a", "newest", timestamp="2024-05-01T00:00:00+00:00"),
                _point("b", "oldest", timestamp="2024-01-01T00:00:00+00:00"),
            ],
            "next",
        ),
        (
            [
                _point("c", "older", timestamp="2024-02-01T00:00:00+00:00"),
                _point("d", "newer", timestamp="2024-04-01T00:00:00+00:00"),
            ],
            None,
        ),
    ]

    memories = await store.get_all("user_1", limit=2)

    assert [m.content for m in memories] == ["newest", "newer"]
    assert store._client.scroll.await_count == 2


async def test_get_all_skips_malformed_payloads(store: MemoryStore) -> None:
    store._client.scroll.return_value = (
        [
            _point("a", "fine", timestamp="2024-01-01T00:00:00+00:00"),
            _point("b", "bad importance", importance=7),
            _point("c", "bad type", memory_type="gossip"),
        ],
        None,
    )

    memories = await store.get_all("user_1")

    assert [m.id for m in memories] == ["a"]


async def test_search_skips_malformed_payloads(store: MemoryStore) -> None:
    store._client.query_points.return_value = SimpleNamespace(
        points=[_point("a", "london", score=0.9), _point("b", "bad", score=0.8, importance=-1)]
    )

    results = await store.search("travel", "user_1")

    assert [m.id for m in results] == ["a"]


async def test_get_all_failure_returns_empty(store: MemoryStore) -> None:
    store._client.scroll.side_effect = RuntimeError("boom")
    assert await store.get_all("user_1") == []


# -- delete / cleanup --------------------------------------------------------


async def test_delete_calls_client(store: MemoryStore) -> None:
    assert await store.delete("mem_1") is True
    selector = store._client.delete.call_args.kwargs["points_selector"]
    assert selector.points == ["mem_1"]


async def test_delete_failure_returns_false(store: MemoryStore) -> None:
    store._client.delete.side_effect = RuntimeError("boom")
    assert await store.delete("mem_1") is False


async def test_cleanup_removes_exact_repeats(store: MemoryStore) -> None:
    store._client.scroll.return_value = (
        [
            _point("new", "London", timestamp="2024-03-01"),
            _point("old", "london", timestamp="2024-01-01"),
            _point("other", "NFL", timestamp="2024-02-01"),
        ],
        None,
    )

    removed = await store.cleanup_duplicates("user_1")

    assert removed == 1
    selector = store._client.delete.call_args.kwargs["points_selector"]
    assert selector.points == ["old"]


async def test_cleanup_counts_only_successful_deletes(store: MemoryStore) -> None:
    store._client.scroll.return_value = (
        [_point("a", "x", timestamp="3"), _point("b", "x", timestamp="2"), _point("c", "x", timestamp="1")],
        None,
    )
    store._client.delete.side_effect = [RuntimeError("boom"), None]

    assert await store.cleanup_duplicates("user_1") == 1


# -- singleton ---------------------------------------------------------------


def test_get_returns_shared_instance() -> None:
    with patch("src.memory.store.AsyncQdrantClient", MagicMock()):
        assert MemoryStore.get() is MemoryStore.get()
