"""Automatic conceptual memory extraction.

After each user/assistant exchange the extraction model is asked to boil
the exchange down to a handful of tagged concepts. New concepts are
stored as memories for the user; ones that overlap an existing memory
are skipped.
"""

import json
import logging
import re
from dataclasses import dataclass

from src.config import settings
from src.llm import client as llm
from src.memory.dedup import is_duplicate
from src.memory.models import MemoryType
from src.memory.store import MemoryStore

logger = logging.getLogger(__name__)

MAX_CONCEPTS = 5
FALLBACK_CONCEPTS = 3
DEFAULT_IMPORTANCE = 0.5

_FENCE_RE = re.compile(r"```(?:json)?\s*")
_ARRAY_RE = re.compile(r"\[[\s\S]*\]")

_TYPE_MAPPING: dict[str, MemoryType] = {
    "preference": "preference",
    "interest": "preference",
    "fact": "fact",
    "location": "fact",
    "person": "fact",
    "entity": "fact",
    "topic": "context",
    "concept": "context",
}


# -- Data structures ---------------------------------------------------------


@dataclass
class Concept:
    concept: str
    type: str = "context"
    importance: float = DEFAULT_IMPORTANCE


# -- Prompt building ---------------------------------------------------------


def build_extraction_prompt(user_message: str, assistant_response: str) -> str:
    """Build the prompt sent to the extraction model."""
    return f"""Analyze this conversation and extract abstract concepts, entities, topics, and key information that would be useful for future conversations. Focus on extracting conceptual knowledge rather than the literal conversation.

User: "{user_message}"
Assistant: "{assistant_response}"

Extract and return a JSON array of conceptual memories. Each memory should be:
1. Abstract concepts (like "london", "bagel", "food", "travel")
2. Entities (like "SF 49ers", "NFL", "American football")
3. Topics of interest (like "sports", "restaurants", "technology")
4. Factual information (like "user likes Italian food", "user lives in NYC")
5. Preferences (like "prefers morning workouts", "interested in AI")

CRITICAL: Return ONLY a valid JSON array, no explanations, no markdown, no extra text. Just the JSON array:

[
  {{"concept": "london", "type": "location", "importance": 0.8}},
  {{"concept": "bagels", "type": "food", "importance": 0.7}},
  {{"concept": "restaurant recommendations", "type": "preference", "importance": 0.6}}
]

Max {MAX_CONCEPTS} concepts. Return only the JSON array."""


# -- Parsing -----------------------------------------------------------------


def determine_memory_type(concept_type: str) -> MemoryType:
    """Map the model's free-form concept type onto a stored memory type."""
    return _TYPE_MAPPING.get((concept_type or "").strip().lower(), "context")


def fallback_concepts(user_message: str) -> list[Concept]:
    """Naive keyword extraction used when the model's JSON is unusable."""
    words = [w for w in user_message.lower().split(" ") if len(w) > 3]
    return [Concept(concept=w) for w in words[:FALLBACK_CONCEPTS]]


def _coerce_importance(value: object) -> float:
    if isinstance(value, bool) or not isinstance(value, int | float) or not value:
        return DEFAULT_IMPORTANCE
    return min(max(float(value), 0.0), 1.0)


def parse_concepts(text: str, user_message: str) -> list[Concept]:
    """Parse the extraction model's output into concepts.

    Markdown fences are stripped and the outermost ``[...]`` span is
    parsed. Unparseable output falls back to keywords from
    ``user_message``; valid JSON that is not an array yields nothing.
    """
    cleaned = _FENCE_RE.sub("", text)
    match = _ARRAY_RE.search(cleaned)
    if match:
        cleaned = match.group(0)

    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError:
        logger.warning("Failed to parse concept extraction, using keyword fallback: %r", text[:200])
        return fallback_concepts(user_message)

    if not isinstance(data, list):
        logger.error("Extracted concepts is not an array")
        return []

    concepts = []
    for item in data:
        if not isinstance(item, dict):
            continue
        name = item.get("concept")
        if not isinstance(name, str) or not name.strip():
            continue
        concepts.append(
            Concept(
                concept=name.strip(),
                type=str(item.get("type") or "context"),
                importance=_coerce_importance(item.get("importance")),
            )
        )
    return concepts[:MAX_CONCEPTS]


# -- Main pipeline -----------------------------------------------------------


async def extract_and_save(
    user_message: str,
    assistant_response: str,
    user_id: str,
    conversation_id: str,
) -> int:
    """Extract concepts from an exchange and store the new ones.

    Never raises; extraction is best effort.

    Returns:
        The number of memories stored.
    """
    if not settings.memory_extraction_enabled:
        return 0

    try:
        text = await llm.complete_text(
            [{"role": "user", "content": build_extraction_prompt(user_message, assistant_response)}],
            model=settings.extraction_model,
            temperature=0.3,
            max_tokens=500,
        )
        text = text.strip()
        if not text:
            return 0

        concepts = parse_concepts(text, user_message)

        store = MemoryStore.get()
        existing = [m.content for m in await store.get_all(user_id)]

        saved = 0
        for concept in concepts:
            if is_duplicate(concept.concept, existing):
                logger.info("Skipped duplicate memory: %r", concept.concept)
                continue

            await store.add(
                content=concept.concept,
                user_id=user_id,
                conversation_id=conversation_id,
                memory_type=determine_memory_type(concept.type),
                importance=concept.importance,
            )
            existing.append(concept.concept)
            saved += 1
            logger.info("Stored new conceptual memory: %r", concept.concept)

        return saved

    except Exception:
        logger.exception("Concept extraction failed (non-fatal)")
        return 0
