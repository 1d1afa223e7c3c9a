"""Memory-grounded chat turn: recall, respond, remember."""

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

from src.config import settings
from src.llm import client as llm
from src.llm.prompt import build_chat_prompt
from src.memory.extraction import extract_and_save
from src.memory.models import Memory
from src.memory.store import MemoryStore

logger = logging.getLogger(__name__)


@dataclass
class ChatResult:
    """The assistant reply and the memories it was grounded on."""

    response: str
    used_memories: list[Memory] = field(default_factory=list)


async def resolve_memories(message: str, user_id: str, selected: Sequence[Memory]) -> list[Memory]:
    """Pick the memories for this turn.

    Memories the user attached win outright; otherwise the nearest
    stored memories for the user are looked up.
    """
    if selected:
        return list(selected)
    return await MemoryStore.get().search(message, user_id, limit=settings.chat_memory_limit)


async def generate_response(
    message: str,
    user_id: str,
    conversation_id: str,
    selected_memories: Sequence[Memory] = (),
) -> ChatResult:
    """Run one chat turn and extract memories from the exchange.

    Raises whatever the completion call raises; extraction failures are
    logged and ignored.
    """
    memories = await resolve_memories(message, user_id, selected_memories)
    system_prompt = build_chat_prompt(memories)

    reply = await llm.complete_text(
        [{"role": "user", "content": message}],
        system=system_prompt,
        model=settings.chat_model,
        temperature=0.7,
        max_tokens=500,
    )
    logger.info(
        "Chat turn for %s: %d memories (%s), %d chars reply",
        user_id,
        len(memories),
        "attached" if selected_memories else "searched",
        len(reply),
    )

    await extract_and_save(message, reply, user_id, conversation_id)

    return ChatResult(response=reply, used_memories=memories)
