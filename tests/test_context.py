"""Tests for notebook context selection."""

from infinite_chronicles.context import active_quests, recent_text, select_relevant
from infinite_chronicles.models import NotebookEntry, Quest, StorySegment


def _entry(**fields) -> NotebookEntry:
    data = {"id": "x", "name": "Mira", "category": "character"}
    data.update(fields)
    return NotebookEntry.model_validate(data)


def _quest(description: str, status: str = "active") -> Quest:
    return Quest(id="q", name="Q", type="main", description=description, status=status, progress="")


def test_core_entry_always_included():
    entry = _entry(isCore=True, currentLocation="Far Away")
    assert select_relevant([entry], "Tavern", [], "") == [entry]


def test_companion_always_included():
    entry = _entry(status="companion")
    assert select_relevant([entry], "", [], "") == [entry]


def test_unrelated_entry_excluded():
    entry = _entry(currentLocation="Castle", isCore=False, tags=["sword"])
    assert select_relevant([entry], "Tavern", [_quest("Find the map")], "Rain falls.") == []


def test_location_match_case_insensitive():
    entry = _entry(currentLocation="The Rusty Tavern")
    assert select_relevant([entry], "the rusty tavern", [], "") == [entry]


def test_empty_location_does_not_match():
    entry = _entry(currentLocation="")
    assert select_relevant([entry], "", [], "") == []


def test_name_in_recent_text():
    entry = _entry(name="Mira")
    assert select_relevant([entry], "", [], "You see MIRA waving.") == [entry]


def test_name_in_active_quest():
    entry = _entry(name="Mira")
    assert select_relevant([entry], "", [_quest("Rescue mira from the tower")], "") == [entry]


def test_tag_in_active_quest():
    entry = _entry(name="Obsidian Blade", category="item", tags=["Blade", "relic"])
    assert select_relevant([entry], "", [_quest("Recover the lost RELIC")], "") == [entry]


def test_completed_quest_ignored():
    entry = _entry(name="Mira")
    assert select_relevant([entry], "", [_quest("Rescue Mira", status="completed")], "") == []


def test_new_quest_counts_as_active():
    entry = _entry(name="Mira")
    assert select_relevant([entry], "", [_quest("Rescue Mira", status="new")], "") == [entry]


def test_result_is_ordered_subsequence():
    a = _entry(id="a", name="Anna", isCore=True)
    b = _entry(id="b", name="Boris")
    c = _entry(id="c", name="Cato", currentLocation="Dock")
    assert select_relevant([a, b, c], "dock", [], "") == [a, c]


def test_empty_notebook():
    assert select_relevant([], "Tavern", [], "text") == []


def test_active_quests_filter():
    quests = [_quest("a", "new"), _quest("b", "active"), _quest("c", "completed"), _quest("d", "failed")]
    assert [q.description for q in active_quests(quests)] == ["a", "b"]


def test_recent_text_uses_last_segments(make_payload):
    history = [
        StorySegment.model_validate(make_payload(content=text))
        for text in ("one", "two", "three")
    ]
    assert recent_text(history) == "two three"
    assert recent_text(history, 1) == "three"
    assert recent_text([], 2) == ""


def test_blank_name_and_tags_never_match():
    entry = _entry(name="", tags=[""])
    assert select_relevant([entry], "", [_quest("Find the map")], "Rain falls.") == []
