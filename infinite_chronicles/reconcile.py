"""Merging per-turn updates into the notebook and quest log.

Both collections are upserted by ``id``:

  notebook: fields the update provides win, except key_memories, which is
             the deduplicated union of old and new (it only ever grows).
  quests:   the update replaces the stored quest wholesale.

Entries without a match are appended. Existing order is preserved, so the
result is deterministic for a given input.
"""

from __future__ import annotations

from infinite_chronicles.models import NotebookEntry, Quest


def _union(existing: list[str], new: list[str]) -> list[str]:
    return list(dict.fromkeys([*existing, *new]))


def merge_notebook(
    existing: list[NotebookEntry], updates: list[NotebookEntry] | None = None
) -> list[NotebookEntry]:
    """Upsert notebook entries by id. Inputs are not mutated."""
    if not updates:
        return existing

    merged = list(existing)
    index = {entry.id: i for i, entry in enumerate(merged)}
    for update in updates:
        i = index.get(update.id)
        if i is None:
            index[update.id] = len(merged)
            merged.append(update)
            continue
        current = merged[i]
        fields = update.model_dump(exclude_unset=True)
        fields["key_memories"] = _union(current.key_memories, update.key_memories)
        merged[i] = current.model_copy(update=fields)
    return merged


def merge_quests(
    existing: list[Quest], updates: list[Quest] | None = None
) -> list[Quest]:
    """Upsert quests by id; a matching update replaces the old record."""
    if not updates:
        return existing

    merged = list(existing)
    index = {quest.id: i for i, quest in enumerate(merged)}
    for update in updates:
        i = index.get(update.id)
        if i is None:
            index[update.id] = len(merged)
            merged.append(update)
        else:
            merged[i] = update
    return merged
