"""JSON file storage for saved games.

A flat key-value blob store: each key is one JSON file under a configurable
base directory. There is no database; reads and writes go through plain
helper methods that load and dump JSON.

Directory layout:

    {base}/
      saves/
        slot_1.json     ← numbered save slots (1..SLOT_COUNT)
        slot_2.json
        {key}.json      ← any other key, e.g. an autosave

Blobs are whole serialised GameState dicts in the camelCase wire format.
Exported files use the same format and can be imported again.

Every failure (OS error, corrupt JSON, wrong shape) is raised as
PersistenceError so callers can report it without touching game state.
"""

from __future__ import annotations

import json
import logging
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from infinite_chronicles.models import GameState

logger = logging.getLogger(__name__)

SLOT_COUNT = 3
SUMMARY_PREVIEW_CHARS = 60
IMPORT_REQUIRED_KEYS = ("history", "characterProfile")

# Never written to disk; the running session keeps its own.
_TRANSIENT_FIELDS = {"is_loading", "error", "user_api_key"}

_KEY_RE = re.compile(r"^[A-Za-z0-9_-]+$")


class PersistenceError(RuntimeError):
    """Raised when a save cannot be written, read or parsed."""


def slot_key(slot: int) -> str:
    if not 1 <= slot <= SLOT_COUNT:
        raise PersistenceError(f"Slot {slot} does not exist")
    return f"slot_{slot}"


def serialize_state(state: GameState) -> dict[str, Any]:
    blob = state.model_dump(mode="json", by_alias=True, exclude=_TRANSIENT_FIELDS)
    blob["savedAt"] = datetime.now(timezone.utc).isoformat()
    return blob


def deserialize_state(blob: Any) -> GameState:
    """Validate a save blob. Requires at least a history and a character profile."""
    if not isinstance(blob, dict):
        raise PersistenceError("Save data must be a JSON object")
    missing = [k for k in IMPORT_REQUIRED_KEYS if k not in blob]
    if missing:
        raise PersistenceError(f"Save data is missing {', '.join(missing)}")
    fields = {k: v for k, v in blob.items() if k != "savedAt"}
    try:
        state = GameState.model_validate(fields)
    except ValidationError as e:
        raise PersistenceError(f"Save data is invalid: {e.error_count()} error(s)") from e
    return state.model_copy(update={"is_loading": False, "error": None})


def _slot_preview(blob: dict[str, Any]) -> dict[str, Any]:
    history = blob.get("history") or []
    summary = blob.get("summary") or ""
    profile = blob.get("characterProfile") or {}
    if not isinstance(history, list) or not isinstance(summary, str):
        raise TypeError("history must be a list and summary a string")
    return {
        "isEmpty": False,
        "charName": profile.get("name") or "Nameless",
        "chapterTitle": history[-1].get("title", "") if history else "The Beginning",
        "summary": summary[:SUMMARY_PREVIEW_CHARS] + "..." if summary else "No summary yet",
        "savedAt": blob.get("savedAt", ""),
    }


class SaveStore:
    def __init__(self, base_path: Path) -> None:
        self._base = base_path
        self._saves = base_path / "saves"
        self._saves.mkdir(parents=True, exist_ok=True)

    # ------------------------------------------------------------------
    # Internal path helpers
    # ------------------------------------------------------------------

    def _path(self, key: str) -> Path:
        if not _KEY_RE.match(key):
            raise PersistenceError(f"Invalid save key {key!r}")
        return self._saves / f"{key}.json"

    def _read_json(self, path: Path) -> Any:
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except OSError as e:
            raise PersistenceError(f"Cannot read {path.name}: {e}") from e
        except json.JSONDecodeError as e:
            raise PersistenceError(f"{path.name} is not valid JSON") from e

    def _write_json(self, path: Path, data: Any) -> None:
        try:
            path.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")
        except OSError as e:
            raise PersistenceError(f"Cannot write {path.name}: {e}") from e

    # ------------------------------------------------------------------
    # Key-value blobs
    # ------------------------------------------------------------------

    def save(self, key: str, blob: dict[str, Any]) -> None:
        self._write_json(self._path(key), blob)
        logger.info("Saved game to %s", key)

    def load(self, key: str) -> dict[str, Any] | None:
        path = self._path(key)
        if not path.is_file():
            return None
        return self._read_json(path)

    def delete(self, key: str) -> bool:
        path = self._path(key)
        if not path.is_file():
            return False
        try:
            path.unlink()
        except OSError as e:
            raise PersistenceError(f"Cannot delete {path.name}: {e}") from e
        logger.info("Deleted save %s", key)
        return True

    # ------------------------------------------------------------------
    # Slots
    # ------------------------------------------------------------------

    def list_slots(self) -> list[dict[str, Any]]:
        """Describe each slot without loading full game state.

        Corrupt slots are reported as empty.
        """
        slots = []
        for slot in range(1, SLOT_COUNT + 1):
            info: dict[str, Any] = {
                "id": slot, "isEmpty": True, "charName": "",
                "chapterTitle": "", "summary": "", "savedAt": "",
            }
            try:
                blob = self.load(slot_key(slot))
            except PersistenceError as e:
                logger.warning("Slot %d is unreadable: %s", slot, e)
                blob = None
            if isinstance(blob, dict):
                try:
                    info.update(_slot_preview(blob))
                except (AttributeError, TypeError) as e:
                    logger.warning("Slot %d has a malformed save: %s", slot, e)
            slots.append(info)
        return slots

    def save_state(self, key: str, state: GameState) -> None:
        self.save(key, serialize_state(state))

    def load_state(self, key: str) -> GameState | None:
        blob = self.load(key)
        if blob is None:
            return None
        return deserialize_state(blob)

    # ------------------------------------------------------------------
    # File export / import
    # ------------------------------------------------------------------

    @staticmethod
    def export_file_name(state: GameState) -> str:
        name = state.character_profile.name or "hero"
        safe = re.sub(r"[^A-Za-z0-9]+", "_", name).strip("_") or "hero"
        return f"chronicles_{safe}_turn{len(state.history)}.json"

    def export_state(self, state: GameState, path: Path) -> Path:
        self._write_json(path, serialize_state(state))
        logger.info("Exported game to %s", path)
        return path

    def import_state(self, path: Path) -> GameState:
        return deserialize_state(self._read_json(path))
