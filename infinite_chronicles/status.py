"""Survival meters and ability scores.

Status deltas are applied in two phases:

  1. apply_status_delta() adds the delta and clamps to the maximum only.
     A result at or below zero is the signal check_terminal() looks for.
  2. floor_status() clamps to zero for display, after the terminal check.

Clamping to zero first would hide every death/insanity.
"""

from __future__ import annotations

from typing import Literal

from infinite_chronicles.models import (
    CharacterStats,
    PlayerStatus,
    StatsUpdate,
    StatusChange,
)

Terminal = Literal["dead", "insane"]

TERMINAL_MESSAGES: dict[Terminal, str] = {
    "dead": "Your wounds were too grave. You have died.",
    "insane": "Your mind has shattered. You have lost your sanity.",
}


def apply_status_delta(
    current: PlayerStatus, delta: StatusChange | None = None
) -> PlayerStatus:
    """Add a turn's hp/sanity deltas, clamping to max but not to zero."""
    if delta is None:
        return current
    hp = min(current.hp + (delta.hp or 0), current.max_hp)
    sanity = min(current.sanity + (delta.sanity or 0), current.max_sanity)
    return current.model_copy(update={"hp": hp, "sanity": sanity})


def check_terminal(status: PlayerStatus) -> Terminal | None:
    """Return the terminal condition a status has reached, if any."""
    if status.hp <= 0:
        return "dead"
    if status.sanity <= 0:
        return "insane"
    return None


def floor_status(status: PlayerStatus) -> PlayerStatus:
    return status.model_copy(
        update={"hp": max(0, status.hp), "sanity": max(0, status.sanity)}
    )


def apply_stats_update(
    current: CharacterStats, partial: StatsUpdate | None = None
) -> CharacterStats:
    """Overwrite only the stats present in ``partial``. Values are not range-checked."""
    if partial is None:
        return current
    return current.model_copy(update=partial.model_dump(exclude_none=True))
