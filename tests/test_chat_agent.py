"""Tests for the memory-grounded chat turn."""

from unittest.mock import AsyncMock, patch

import pytest

from src.chat.agent import ChatResult, generate_response
from src.memory.models import Memory


def _mem(content: str) -> Memory:
    return Memory(id=f"id-{content}", content=content, user_id="user_1", conversation_id="c0")


async def test_searches_memories_when_none_selected() -> None:
    store = AsyncMock()
    store.search.return_value = [_mem("lives in NYC")]
    mock_complete = AsyncMock(return_value="Try Russ & Daughters.")
    mock_extract = AsyncMock(return_value=1)

    with (
        patch("src.chat.agent.MemoryStore.get", return_value=store),
        patch("src.llm.client.complete_text", mock_complete),
        patch("src.chat.agent.extract_and_save", mock_extract),
    ):
        result = await generate_response("Where should I get bagels?", "user_1", "conv_1")

    assert isinstance(result, ChatResult)
    assert result.response == "Try Russ & Daughters."
    assert [m.content for m in result.used_memories] == ["lives in NYC"]
    store.search.assert_awaited_once_with("Where should I get bagels?", "user_1", limit=3)

    kwargs = mock_complete.call_args.kwargs
    assert "Memory: lives in NYC" in kwargs["system"]
    assert kwargs["temperature"] == 0.7
    assert kwargs["max_tokens"] == 500
    assert mock_complete.call_args.args[0] == [
        {"role": "user", "content": "Where should I get bagels?"}
    ]
    mock_extract.assert_awaited_once_with(
        "Where should I get bagels?", "Try Russ & Daughters.", "user_1", "conv_1"
    )


async def test_selected_memories_skip_search() -> None:
    store = AsyncMock()
    selected = [_mem("Ja'Marr Chase")]
    mock_complete = AsyncMock(return_value="He had a great season.")

    with (
        patch("src.chat.agent.MemoryStore.get", return_value=store),
        patch("src.llm.client.complete_text", mock_complete),
        patch("src.chat.agent.extract_and_save", AsyncMock(return_value=0)),
    ):
        result = await generate_response("What's his record?", "user_1", "conv_1", selected)

    store.search.assert_not_called()
    assert result.used_memories == selected
    assert "Memory: Ja'Marr Chase" in mock_complete.call_args.kwargs["system"]


async def test_no_memories_uses_plain_prompt() -> None:
    store = AsyncMock()
    store.search.return_value = []
    mock_complete = AsyncMock(return_value="Hi!")

    with (
        patch("src.chat.agent.MemoryStore.get", return_value=store),
        patch("src.llm.client.complete_text", mock_complete),
        patch("src.chat.agent.extract_and_save", AsyncMock(return_value=0)),
    ):
        result = await generate_response("hello", "user_1", "conv_1")

    assert result.used_memories == []
    assert "Relevant memories" not in mock_complete.call_args.kwargs["system"]


async def test_completion_error_propagates() -> None:
    store = AsyncMock()
    store.search.return_value = []
    mock_extract = AsyncMock()

    with (
        patch("src.chat.agent.MemoryStore.get", return_value=store),
        patch("src.llm.client.complete_text", AsyncMock(side_effect=RuntimeError("api down"))),
        patch("src.chat.agent.extract_and_save", mock_extract),
    ):
        with pytest.raises(RuntimeError):
            await generate_response("hello", "user_1", "conv_1")

    mock_extract.assert_not_called()
