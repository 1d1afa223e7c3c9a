"""System prompt assembly from recalled memories."""

from collections.abc import Sequence

from src.memory.models import Memory

CHAT_PREAMBLE = "You are a helpful AI assistant."

REALTIME_CLOSING = (
    "Respond naturally and helpfully, using the provided context to resolve ambiguous "
    "references and provide personalized information. Keep responses concise and engaging."
)


def _format_memories(memories: Sequence[Memory], prefix: str) -> str:
    return "\n".join(f"{prefix}{m.content}" for m in memories)


def build_chat_prompt(memories: Sequence[Memory]) -> str:
    """System prompt for a single chat completion."""
    if not memories:
        return CHAT_PREAMBLE
    context = _format_memories(memories, "Memory: ")
    return f"{CHAT_PREAMBLE} \n\nRelevant memories:\n{context}"


def build_realtime_instructions(selected: Sequence[Memory]) -> str:
    """Instructions sent when a realtime session is first configured.

    User-selected memories are presented as the context for resolving
    pronouns and other ambiguous references.
    """
    context = ""
    if selected:
        context = (
            "IMPORTANT CONTEXT - The user has specifically selected these memories "
            f"as relevant to their questions:\n{_format_memories(selected, '- ')}\n\n"
            'Use this context to understand references like "he", "his", "they", "it", etc. '
            'If the user asks about "his record" and the context mentions a specific person, '
            'then "his" refers to that person.'
        )

    return (
        "You are a helpful AI assistant with access to the user's conversation history "
        f"and memories.\n\n{context}\n\n{REALTIME_CLOSING}"
    )


def build_realtime_update(selected: Sequence[Memory]) -> str:
    """Instructions sent when a live session's memories change."""
    context = ""
    if selected:
        context = f"Relevant memories:\n{_format_memories(selected, 'Memory: ')}\n"

    return (
        "You are a helpful AI assistant with access to the user's conversation history "
        "and memories. Use the provided memories to personalize your responses.\n\n"
        f"{context}\n"
        "Respond naturally and helpfully, incorporating relevant information from the "
        "memories when appropriate. Keep responses concise and engaging."
    )
