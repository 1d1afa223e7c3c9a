"""Async OpenAI client for chat completions and embeddings."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from src.config import settings

if TYPE_CHECKING:
    from openai import AsyncOpenAI

logger = logging.getLogger(__name__)

_client: AsyncOpenAI | None = None


def _get_client() -> AsyncOpenAI:
    """Lazily initialize the OpenAI client."""
    global _client  # noqa: PLW0603
    if _client is None:
        from openai import AsyncOpenAI

        _client = AsyncOpenAI(api_key=settings.openai_api_key)
    return _client


async def complete_text(
    messages: list[dict[str, Any]],
    *,
    system: str | None = None,
    model: str | None = None,
    temperature: float = 0.7,
    max_tokens: int = 500,
) -> str:
    """Single-shot chat completion, no streaming.

    ``system`` is prepended as a system message when given. Returns the
    first choice's text, or an empty string if the model sent none.
    """
    client = _get_client()
    if system is not None:
        messages = [{"role": "system", "content": system}, *messages]

    response = await client.chat.completions.create(
        model=model or settings.chat_model,
        messages=messages,
        temperature=temperature,
        max_tokens=max_tokens,
    )
    return response.choices[0].message.content or ""


async def embed_text(text: str) -> list[float]:
    """Embed a single piece of text with the configured embedding model."""
    client = _get_client()
    response = await client.embeddings.create(
        model=settings.embedding_model,
        input=text,
    )
    return response.data[0].embedding
