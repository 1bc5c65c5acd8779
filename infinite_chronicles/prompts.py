"""Handlebars prompt rendering for generation requests.

Three prompts are built from game state:

  opening: first chapter, from the character profile alone
  turn:    next chapter, from profile, stats, status, location, active
            quests, the filtered notebook, summary and the player's action
  summary: rolling summary (last few chapters) or grand summary (all)

Templates are compiled once and cached. Free text is rendered with
triple-stash ({{{ }}}) so quotes and ampersands reach the model unescaped.
"""

from collections.abc import Callable
from typing import Any

import pybars

from infinite_chronicles.context import active_quests
from infinite_chronicles.models import (
    CharacterProfile,
    CharacterStats,
    NotebookEntry,
    PlayerStatus,
    Quest,
    StorySegment,
)

_compiler = pybars.Compiler()
_cache: dict[str, Callable] = {}

LOW_METER_THRESHOLD = 30
PREVIOUS_CHAPTER_CHARS = 500


class PromptError(Exception):
    """Raised when a Handlebars template fails to compile or render."""


# ── Custom Handlebars helpers ────────────────────────────


def _helper_last(this, options, items, count):
    """{{#last array N}}...{{/last}}: iterate over the last N items."""
    result = []
    n = int(count)
    if n <= 0:
        return result
    for item in list(items)[-n:]:
        result.extend(options["fn"](item))
    return result


_HELPERS: dict[str, Callable] = {
    "last": _helper_last,
}


def render_prompt(template_str: str, context: dict[str, Any]) -> str:
    """Compile and render a Handlebars template with the given context."""
    try:
        compiled = _cache.get(template_str)
        if compiled is None:
            compiled = _compiler.compile(template_str)
            _cache[template_str] = compiled
        return str(compiled(context, helpers=_HELPERS))
    except Exception as e:
        raise PromptError(f"Template error: {e}") from e


# ── Templates ────────────────────────────────────────────

CORE_MEMORY_TEMPLATE = """CORE MEMORY:
- Genre: {{{profile.genre}}}
- Setting: {{#if profile.custom_setting}}{{{profile.custom_setting}}}{{else}}Free to invent{{/if}}
{{#if profile.name}}- Character name: {{{profile.name}}}
{{/if}}{{#if profile.personality}}- Personality: {{{profile.personality}}}
{{/if}}{{#if profile.appearance}}- Appearance: {{{profile.appearance}}}
{{/if}}{{#if profile.companion}}- Companion: {{{profile.companion}}}
{{/if}}"""

OPENING_TEMPLATE = """{{{core_memory}}}
GAME SETUP:
1. Write CHAPTER 1 (the opening), about 400-600 words. Make it gripping and action-focused.
2. Set 'currentLocation'.
3. Create the RPG stats (statsUpdate) and the main quest.
4. HP/Sanity start at 100/100.
5. Language: {{{language}}}.
"""

TURN_TEMPLATE = """{{{core_memory}}}
STATS: STR:{{stats.STR}}, DEX:{{stats.DEX}}, INT:{{stats.INT}}, CHA:{{stats.CHA}}, LCK:{{stats.LCK}}
STATUS: HP {{status.hp}}/{{status.max_hp}}, Sanity {{status.sanity}}/{{status.max_sanity}}.
{{#if low_hp}}WARNING: The character is badly wounded; the prose should convey their pain.
{{/if}}{{#if low_sanity}}WARNING: The character is panicking and losing their grip on reality.
{{/if}}LOCATION: {{#if location}}{{{location}}}{{else}}Unknown{{/if}}
{{#if quests}}QUESTS:
{{#each quests}}- {{{name}}}: {{{progress}}}
{{/each}}{{/if}}{{#if notebook}}NOTEBOOK (FILTERED):
{{#each notebook}}- {{{name}}} ({{category}}) @ {{{location}}}: {{{relationship}}}. {{{description}}}
{{/each}}{{/if}}SUMMARY: {{{summary}}}
PREVIOUS CHAPTER: {{{previous_chapter}}}...

{{#if is_cheat}}CHEAT: "{{{action}}}".{{else}}ACTION: "{{{action}}}".{{/if}}

REQUIREMENTS:
1. Continue the story (about 300-500 words).
2. Update 'statusChanges' (hp/sanity) when needed.
3. Update the location and the notebook.
4. Language: {{{language}}}.
"""

SUMMARY_TEMPLATE = """{{#if grand}}Rewrite the summary of the whole story so far, based on: "{{{summary}}}" and the chapters:
{{else}}Update the short summary based on: "{{{summary}}}" and the new events:
{{/if}}{{#last segments count}}Chapter: {{{title}}}
{{{content}}}

{{/last}}"""


# ── Context builders ─────────────────────────────────────


def build_core_memory(profile: CharacterProfile) -> str:
    return render_prompt(CORE_MEMORY_TEMPLATE, {"profile": profile.model_dump()})


def build_opening_prompt(profile: CharacterProfile, language: str = "English") -> str:
    return render_prompt(OPENING_TEMPLATE, {
        "core_memory": build_core_memory(profile),
        "language": language,
    })


def _notebook_lines(entries: list[NotebookEntry]) -> list[dict[str, Any]]:
    return [
        {
            "name": e.name,
            "category": e.category,
            "location": e.current_location or "Unknown",
            "relationship": e.relationship,
            "description": e.description,
        }
        for e in entries
    ]


def build_turn_prompt(
    *,
    profile: CharacterProfile,
    stats: CharacterStats,
    status: PlayerStatus,
    location: str,
    quests: list[Quest],
    notebook: list[NotebookEntry],
    summary: str,
    previous: StorySegment | None,
    action: str,
    is_cheat: bool = False,
    language: str = "English",
    previous_chars: int = PREVIOUS_CHAPTER_CHARS,
) -> str:
    """Render the next-turn prompt. ``notebook`` should already be filtered."""
    previous_chapter = previous.content[:previous_chars] if previous else ""
    ctx: dict[str, Any] = {
        "core_memory": build_core_memory(profile),
        "stats": stats.model_dump(),
        "status": status.model_dump(),
        "low_hp": status.hp <= LOW_METER_THRESHOLD,
        "low_sanity": status.sanity <= LOW_METER_THRESHOLD,
        "location": location,
        "quests": [q.model_dump() for q in active_quests(quests)],
        "notebook": _notebook_lines(notebook),
        "summary": summary,
        "previous_chapter": previous_chapter,
        "action": action,
        "is_cheat": is_cheat,
        "language": language,
    }
    return render_prompt(TURN_TEMPLATE, ctx)


def build_summary_prompt(
    summary: str, segments: list[StorySegment], grand: bool = False
) -> str:
    return render_prompt(SUMMARY_TEMPLATE, {
        "summary": summary,
        "segments": [{"title": s.title, "content": s.content} for s in segments],
        "count": len(segments),
        "grand": grand,
    })
