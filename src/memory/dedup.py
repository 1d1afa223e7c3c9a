"""Duplicate detection for stored memories."""

from collections.abc import Iterable

from src.memory.models import Memory


def _normalize(text: str) -> str:
    return text.strip().lower()


def is_duplicate(concept: str, existing_contents: Iterable[str]) -> bool:
    """True if ``concept`` overlaps any existing memory content.

    Overlap is case-insensitive equality or substring containment in
    either direction, so "bagels" duplicates "bagels in london" and the
    other way round.
    """
    needle = _normalize(concept)
    if not needle:
        return False

    for content in existing_contents:
        existing = _normalize(content)
        if not existing:
            continue
        if needle == existing or needle in existing or existing in needle:
            return True
    return False


def find_duplicate_ids(memories: Iterable[Memory]) -> list[str]:
    """Ids of memories whose content repeats an earlier one exactly.

    The first occurrence is kept; comparison ignores case and surrounding
    whitespace.
    """
    seen: set[str] = set()
    duplicates: list[str] = []
    for memory in memories:
        key = _normalize(memory.content)
        if key in seen:
            duplicates.append(memory.id)
        else:
            seen.add(key)
    return duplicates
