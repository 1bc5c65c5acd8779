"""Client-side skill checks.

A choice carrying a skill check is rolled here, before the request: d20 plus
the current value of the checked stat, against the choice's DC. The outcome
is written into the action text so the model only narrates it.
"""

from __future__ import annotations

import random
from dataclasses import dataclass

from infinite_chronicles.models import CharacterStats, StatName, StoryChoice


@dataclass(frozen=True)
class SkillCheckResult:
    choice_text: str
    stat: StatName
    difficulty: int
    roll: int
    modifier: int
    total: int
    success: bool

    def action_text(self) -> str:
        outcome = "[SUCCESS]" if self.success else "[FAILURE]"
        return (
            f'Player chose: "{self.choice_text}".\n'
            f"CHECK: {self.stat} (DC {self.difficulty}).\n"
            f"ROLL: D20({self.roll}) + {self.modifier} = {self.total}.\n"
            f"RESULT: {outcome}."
        )


def roll_d20(rng: random.Random | None = None) -> int:
    return (rng or random).randint(1, 20)


def resolve_skill_check(
    choice: StoryChoice,
    stats: CharacterStats,
    roll: int | None = None,
    rng: random.Random | None = None,
) -> SkillCheckResult:
    """Roll a choice's skill check. Success is inclusive: total >= DC."""
    check = choice.skill_check
    if check is None:
        raise ValueError(f"Choice {choice.id!r} has no skill check")
    if roll is None:
        roll = roll_d20(rng)
    modifier = getattr(stats, check.stat)
    total = roll + modifier
    return SkillCheckResult(
        choice_text=choice.text,
        stat=check.stat,
        difficulty=check.difficulty,
        roll=roll,
        modifier=modifier,
        total=total,
        success=total >= check.difficulty,
    )
