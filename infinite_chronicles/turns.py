"""Turn payload schema and validation.

STORY_SCHEMA is sent with every structured generation request. The model's
reply is only accepted as a turn after parse_turn_payload() returns a
ValidTurn; anything else is an InvalidPayload carrying a readable reason,
never a partial turn.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError

from infinite_chronicles.models import StorySegment

logger = logging.getLogger(__name__)

_STATS = ["STR", "DEX", "INT", "CHA", "LCK"]

_OPENING_FENCE_RE = re.compile(r"^```(?:json)?\s*", re.IGNORECASE)
_CLOSING_FENCE_RE = re.compile(r"\s*```$")

NOTEBOOK_ENTRY_SCHEMA: dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        "id": {"type": "STRING"},
        "name": {"type": "STRING"},
        "category": {
            "type": "STRING",
            "enum": ["character", "enemy", "creature", "item", "location", "faction"],
        },
        "description": {"type": "STRING"},
        "affinity": {"type": "INTEGER"},
        "relationship": {"type": "STRING"},
        "keyMemories": {"type": "ARRAY", "items": {"type": "STRING"}},
        "goals": {"type": "STRING"},
        "lastUpdatedChapter": {"type": "STRING"},
        "currentLocation": {"type": "STRING"},
        "status": {
            "type": "STRING",
            "enum": ["active", "dead", "missing", "unknown", "companion"],
        },
        "tags": {"type": "ARRAY", "items": {"type": "STRING"}},
        "isCore": {"type": "BOOLEAN"},
    },
    "required": [
        "id", "name", "category", "description",
        "affinity", "relationship", "keyMemories", "goals",
    ],
}

QUEST_SCHEMA: dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        "id": {"type": "STRING"},
        "name": {"type": "STRING"},
        "type": {"type": "STRING", "enum": ["main", "side"]},
        "description": {"type": "STRING"},
        "status": {"type": "STRING", "enum": ["new", "active", "completed", "failed"]},
        "progress": {"type": "STRING"},
    },
    "required": ["id", "name", "type", "description", "status", "progress"],
}

STORY_SCHEMA: dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        "title": {"type": "STRING"},
        "content": {"type": "STRING"},
        "currentLocation": {"type": "STRING"},
        "choices": {
            "type": "ARRAY",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "id": {"type": "STRING"},
                    "text": {"type": "STRING"},
                    "tone": {
                        "type": "STRING",
                        "enum": ["aggressive", "diplomatic", "stealthy", "neutral"],
                    },
                    "skillCheck": {
                        "type": "OBJECT",
                        "properties": {
                            "stat": {"type": "STRING", "enum": _STATS},
                            "difficulty": {"type": "INTEGER"},
                        },
                        "required": ["stat", "difficulty"],
                    },
                },
                "required": ["id", "text"],
            },
        },
        "inventory": {"type": "ARRAY", "items": {"type": "STRING"}},
        "status": {"type": "STRING"},
        "isGameOver": {"type": "BOOLEAN"},
        "notebookUpdates": {"type": "ARRAY", "items": NOTEBOOK_ENTRY_SCHEMA},
        "questUpdates": {"type": "ARRAY", "items": QUEST_SCHEMA},
        "statsUpdate": {
            "type": "OBJECT",
            "properties": {stat: {"type": "INTEGER"} for stat in _STATS},
        },
        "statusChanges": {
            "type": "OBJECT",
            "description": "HP/sanity deltas this turn, e.g. -15 or +10. 0 if unchanged.",
            "properties": {
                "hp": {"type": "INTEGER"},
                "sanity": {"type": "INTEGER"},
            },
        },
    },
    "required": [
        "title", "content", "currentLocation", "choices",
        "inventory", "status", "isGameOver",
    ],
}

REQUIRED_FIELDS: list[str] = STORY_SCHEMA["required"]


@dataclass(frozen=True)
class ValidTurn:
    segment: StorySegment


@dataclass(frozen=True)
class InvalidPayload:
    reason: str


TurnResult = ValidTurn | InvalidPayload


def strip_code_fences(text: str) -> str:
    """Remove a surrounding markdown code fence, if the model added one."""
    cleaned = _OPENING_FENCE_RE.sub("", text.strip())
    return _CLOSING_FENCE_RE.sub("", cleaned).strip()


def parse_turn_payload(text: str | None) -> TurnResult:
    """Validate a raw model reply as a story segment."""
    cleaned = strip_code_fences(text or "")
    if not cleaned:
        return InvalidPayload("The model returned no data")

    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        logger.warning("Turn payload is not valid JSON: %s", e)
        return InvalidPayload(f"Response is not valid JSON: {e}")
    if not isinstance(data, dict):
        return InvalidPayload(
            f"Response must be a JSON object, got {type(data).__name__}"
        )

    missing = [name for name in REQUIRED_FIELDS if name not in data]
    if missing:
        return InvalidPayload(f"Response is missing fields: {', '.join(missing)}")

    try:
        segment = StorySegment.model_validate(data)
    except ValidationError as e:
        logger.warning("Turn payload failed validation: %s", e)
        return InvalidPayload(f"Response does not match the turn shape: {e.error_count()} error(s)")
    return ValidTurn(segment)
