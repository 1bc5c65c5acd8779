"""Turn history and single-step undo.

History is append-only; the last segment is the current turn.

undo_turn() is deliberately approximate: it drops the last segment, restores
the location from the new last segment and subtracts the removed segment's
hp/sanity deltas. Notebook, quest and stat changes made by the removed turn
are not rewound, and the reversed status is neither clamped nor re-checked
for terminal conditions. Full fidelity would need a state snapshot per turn.
"""

from __future__ import annotations

import logging

from infinite_chronicles.models import GameState, StorySegment

logger = logging.getLogger(__name__)


def append_segment(
    history: list[StorySegment], segment: StorySegment
) -> list[StorySegment]:
    return [*history, segment]


def undo_turn(state: GameState) -> GameState:
    """Step back one turn. A no-op at the first turn."""
    if len(state.history) <= 1:
        logger.debug("undo ignored: history length %d", len(state.history))
        return state

    removed = state.history[-1]
    history = state.history[:-1]
    location = history[-1].current_location or state.current_location

    status = state.player_status
    if removed.status_changes is not None:
        status = status.model_copy(update={
            "hp": status.hp - (removed.status_changes.hp or 0),
            "sanity": status.sanity - (removed.status_changes.sanity or 0),
        })

    return state.model_copy(update={
        "history": history,
        "current_location": location,
        "player_status": status,
        "error": None,
    })
