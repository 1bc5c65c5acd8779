"""Core domain models.

Every engine module and the save format operate on these types.
Pydantic is used for validation and serialisation at every data boundary.

Python attributes are snake_case; the wire names (LLM payloads, save files,
API bodies) are camelCase. Always dump with ``by_alias=True`` when the result
leaves the process.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

StatName = Literal["STR", "DEX", "INT", "CHA", "LCK"]

Tone = Literal["aggressive", "diplomatic", "stealthy", "neutral"]

NotebookCategory = Literal[
    "character",
    "enemy",
    "creature",
    "item",
    "location",
    "faction",
]

EntityStatus = Literal["active", "dead", "missing", "unknown", "companion"]

QuestType = Literal["main", "side"]

QuestStatus = Literal["new", "active", "completed", "failed"]

DEFAULT_LOCATION = "The Beginning"


class WireModel(BaseModel):
    """Base for models exchanged with the LLM and written to save files."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CharacterStats(BaseModel):
    """The five ability scores. No upper bound is enforced."""

    STR: int = 5
    DEX: int = 5
    INT: int = 5
    CHA: int = 5
    LCK: int = 5


class StatsUpdate(BaseModel):
    """Partial stats as reported by a turn; absent keys keep prior values."""

    STR: int | None = None
    DEX: int | None = None
    INT: int | None = None
    CHA: int | None = None
    LCK: int | None = None


class PlayerStatus(WireModel):
    hp: int = 100
    max_hp: int = 100
    sanity: int = 100
    max_sanity: int = 100


class StatusChange(WireModel):
    """HP/sanity deltas for one turn (e.g. -10, +5)."""

    hp: int | None = None
    sanity: int | None = None


class SkillCheck(WireModel):
    stat: StatName
    difficulty: int  # DC: 10 easy, 15 medium, 20 hard, 25 near impossible


class StoryChoice(WireModel):
    id: str
    text: str
    tone: Tone | None = None
    skill_check: SkillCheck | None = None


class NotebookEntry(WireModel):
    """A named world entity the player has learned about. Never deleted."""

    id: str  # stable key, e.g. "char_alice"
    name: str
    category: NotebookCategory
    description: str = ""
    affinity: int = 50  # 0–100
    relationship: str = ""
    key_memories: list[str] = Field(default_factory=list)
    goals: str = ""
    last_updated_chapter: str = ""
    current_location: str | None = None
    status: EntityStatus | None = None
    tags: list[str] | None = None
    is_core: bool | None = None


class Quest(WireModel):
    id: str
    name: str
    type: QuestType
    description: str
    status: QuestStatus
    progress: str  # narrative progress, e.g. "Found 1/3 clues"


class StorySegment(WireModel):
    """One turn of the story plus the state deltas it carries."""

    title: str
    content: str
    current_location: str
    choices: list[StoryChoice]
    inventory: list[str]
    status: str
    is_game_over: bool
    notebook_updates: list[NotebookEntry] | None = None
    quest_updates: list[Quest] | None = None
    stats_update: StatsUpdate | None = None
    status_changes: StatusChange | None = None


class CharacterProfile(WireModel):
    """Core memory: set once at game start and injected into every prompt."""

    name: str = ""
    personality: str = ""
    appearance: str = ""
    companion: str = ""
    genre: str = ""
    custom_setting: str = ""


class GameState(WireModel):
    """The aggregate root. Replaced wholesale on save/load/restart."""

    history: list[StorySegment] = Field(default_factory=list)
    character_profile: CharacterProfile = Field(default_factory=CharacterProfile)
    summary: str = ""
    notebook: list[NotebookEntry] = Field(default_factory=list)
    quests: list[Quest] = Field(default_factory=list)
    stats: CharacterStats = Field(default_factory=CharacterStats)
    player_status: PlayerStatus = Field(default_factory=PlayerStatus)
    current_location: str = DEFAULT_LOCATION
    is_cheat_mode: bool = False
    is_loading: bool = False
    error: str | None = None
    user_api_key: str | None = None

    @property
    def is_game_over(self) -> bool:
        return bool(self.history) and self.history[-1].is_game_over
