"""Notebook filtering for generation requests.

The full notebook stays in the game state; select_relevant() only decides
which entries are worth spending prompt space on this turn. An entry is kept
if any of these hold:

  - it is core (is_core) or a companion (always kept)
  - its current location matches the player's (case-insensitive)
  - its name appears in the recent narration (case-insensitive substring)
  - an active quest's description mentions its name or one of its tags

Activation is substring based, like lorebook keyword matching.
"""

from __future__ import annotations

from infinite_chronicles.models import NotebookEntry, Quest, StorySegment

ACTIVE_QUEST_STATUSES = ("new", "active")


def active_quests(quests: list[Quest]) -> list[Quest]:
    """Quests still in play. Completed and failed quests are kept in state only."""
    return [q for q in quests if q.status in ACTIVE_QUEST_STATUSES]


def recent_text(history: list[StorySegment], count: int = 2) -> str:
    """Content of the last ``count`` segments, used for name matching."""
    if count <= 0:
        return ""
    return " ".join(s.content for s in history[-count:])


def _related_to_quest(entry: NotebookEntry, descriptions: list[str]) -> bool:
    name = entry.name.lower()
    tags = [t.lower() for t in entry.tags or [] if t]
    for desc in descriptions:
        if name and name in desc:
            return True
        if any(tag in desc for tag in tags):
            return True
    return False


def select_relevant(
    entries: list[NotebookEntry],
    player_location: str,
    quests: list[Quest],
    recent_narrative: str,
) -> list[NotebookEntry]:
    """Return the subsequence of ``entries`` relevant to the next turn."""
    if not entries:
        return []

    location = (player_location or "").lower()
    text = (recent_narrative or "").lower()
    descriptions = [q.description.lower() for q in active_quests(quests)]

    selected: list[NotebookEntry] = []
    for entry in entries:
        if entry.is_core or entry.status == "companion":
            selected.append(entry)
        elif location and entry.current_location and entry.current_location.lower() == location:
            selected.append(entry)
        elif entry.name and entry.name.lower() in text:
            selected.append(entry)
        elif _related_to_quest(entry, descriptions):
            selected.append(entry)
    return selected
