"""
Unit tests for the application state reducer and store.
"""

import pytest

from records import new_note, new_subtask
from state import (
    AppStore,
    add_task,
    create_mind_map,
    default_state,
    delete_mind_map,
    delete_note,
    delete_task,
    filter_by_text,
    reduce,
    save_note,
    set_state,
    sort_mind_maps,
    sort_notes,
    split_tasks,
    update_mind_map,
    update_settings,
    update_task,
)


def _ids(items):
    return [item["id"] for item in items]


class TestNotes:
    """Tests for upsert and delete of notes."""

    def test_save_appends_new_note(self):
        """Should append a note whose id is not present."""
        state = reduce(default_state(), save_note(new_note("A", "", now=1)))
        assert _ids(state["notes"]) == ["note_1"]

    def test_save_replaces_in_place(self):
        """Should replace an existing note without changing order."""
        state = default_state()
        for stamp in (1, 2, 3):
            state = reduce(state, save_note(new_note(f"N{stamp}", "", now=stamp)))
        edited = new_note("Edited", "<b>x</b>", existing=state["notes"][1], now=10)
        state = reduce(state, save_note(edited))
        assert _ids(state["notes"]) == ["note_1", "note_2", "note_3"]
        assert state["notes"][1]["title"] == "Edited"
        assert state["notes"][1]["createdAt"] == 2
        assert state["notes"][1]["modifiedAt"] == 10

    def test_delete_removes_note(self, populated_state):
        """Should filter the note out."""
        state = reduce(populated_state, delete_note("note_1000"))
        assert state["notes"] == []

    def test_delete_unknown_is_noop(self, populated_state):
        """Should not fail for a missing id."""
        state = reduce(populated_state, delete_note("note_missing"))
        assert state["notes"] == populated_state["notes"]

    def test_reducer_does_not_mutate_input(self, populated_state):
        """Should leave the previous snapshot untouched."""
        before = [dict(n) for n in populated_state["notes"]]
        reduce(populated_state, save_note(new_note("B", "", now=5)))
        assert populated_state["notes"] == before


class TestTasks:
    """Tests for task actions."""

    def test_add_task_scenario(self):
        """Should create a pending task with no subtasks and no reminder."""
        state = reduce(default_state(), add_task("Buy milk", now=42))
        task = state["tasks"][0]
        assert task["text"] == "Buy milk"
        assert task["completed"] is False
        assert task["subtasks"] == []
        assert task["reminder"] is None
        assert task["highPriorityReminder"] is False
        assert task["createdAt"] == task["modifiedAt"] == 42
        assert task["id"] == "task_42"

    def test_add_task_ids_are_unique_without_explicit_time(self):
        """Should issue distinct ids for tasks created back to back."""
        state = default_state()
        for _ in range(50):
            state = reduce(state, add_task("t"))
        ids = _ids(state["tasks"])
        assert len(set(ids)) == len(ids)

    def test_update_task_replaces_match(self, populated_state):
        """Should replace the task with the matching id."""
        task = populated_state["tasks"][0]
        updated = {**task, "completed": True, "subtasks": [new_subtask("skim")]}
        state = reduce(populated_state, update_task(updated))
        assert state["tasks"][0]["completed"] is True
        assert state["tasks"][0]["subtasks"][0]["text"] == "skim"

    def test_update_unknown_task_is_noop(self, populated_state):
        """Should not append a task that does not exist."""
        state = reduce(populated_state, update_task({"id": "task_x", "text": "ghost"}))
        assert _ids(state["tasks"]) == _ids(populated_state["tasks"])

    def test_delete_task(self, populated_state):
        """Should remove the task by id."""
        state = reduce(populated_state, delete_task("task_2000"))
        assert state["tasks"] == []


class TestMindMaps:
    """Tests for mind map actions."""

    def test_create_mind_map_scenario(self):
        """Should create a single root node labelled Central Idea."""
        state = reduce(default_state(), create_mind_map("Plan", now=7))
        mind_map = state["mindMaps"][0]
        assert mind_map["title"] == "Plan"
        assert mind_map["id"] == "map_7"
        assert list(mind_map["nodes"]) == [mind_map["rootId"]]
        root = mind_map["nodes"][mind_map["rootId"]]
        assert root["text"] == "Central Idea"
        assert root["position"] == {"x": 0, "y": 0}
        assert root["parentId"] is None
        assert root["id"] == mind_map["rootId"] == "node_7"

    def test_create_mind_map_with_explicit_id(self):
        """Should keep a caller-supplied map id."""
        state = reduce(default_state(), create_mind_map("Plan", map_id="map_custom", now=7))
        assert state["mindMaps"][0]["id"] == "map_custom"

    def test_update_overrides_modified_at(self, populated_state):
        """Should discard the caller's modifiedAt."""
        mind_map = {**populated_state["mindMaps"][0], "title": "Renamed", "modifiedAt": 1}
        state = reduce(populated_state, update_mind_map(mind_map, now=9_999))
        assert state["mindMaps"][0]["title"] == "Renamed"
        assert state["mindMaps"][0]["modifiedAt"] == 9_999

    def test_delete_mind_map(self, populated_state):
        """Should remove the map and ignore unknown ids."""
        state = reduce(populated_state, delete_mind_map("map_3000"))
        assert state["mindMaps"] == []
        assert reduce(state, delete_mind_map("map_3000"))["mindMaps"] == []


class TestReducer:
    """Tests for whole-state actions and unknown actions."""

    def test_unknown_action_returns_same_state(self, populated_state):
        """Should return the state unchanged."""
        assert reduce(populated_state, {"type": "EXPLODE"}) is populated_state
        assert reduce(populated_state, None) is populated_state

    def test_set_state_replaces_everything(self, populated_state):
        """Should adopt the payload wholesale."""
        assert reduce(populated_state, set_state(default_state())) == default_state()

    def test_update_settings(self, populated_state):
        """Should replace the settings record."""
        settings = {**populated_state["settings"], "theme": "dark"}
        assert reduce(populated_state, update_settings(settings))["settings"]["theme"] == "dark"

    @pytest.mark.parametrize("collection", ["notes", "tasks", "mindMaps"])
    def test_ids_stay_unique_across_mixed_sequence(self, collection):
        """Should never duplicate ids within a collection."""
        state = default_state()
        for i in range(20):
            state = reduce(state, save_note(new_note(f"n{i}", "")))
            state = reduce(state, add_task(f"t{i}"))
            state = reduce(state, create_mind_map(f"m{i}"))
            if i % 4 == 0:
                state = reduce(state, update_mind_map(state["mindMaps"][0]))
                state = reduce(state, save_note(state["notes"][-1]))
            if i % 3 == 0:
                state = reduce(state, delete_note(state["notes"][0]["id"]))
                state = reduce(state, delete_task(state["tasks"][-1]["id"]))
        ids = _ids(state[collection])
        assert len(ids) == len(set(ids))


class TestAppStore:
    """Tests for the state owner."""

    def test_dispatch_notifies_listeners(self, store):
        """Should call listeners with the new state."""
        seen = []
        store.subscribe(seen.append)
        store.dispatch(add_task("Walk"))
        assert len(seen) == 1
        assert seen[0] is store.state
        assert store.tasks[-1]["text"] == "Walk"

    def test_unknown_action_does_not_notify(self, store):
        """Should skip listeners when nothing changed."""
        seen = []
        store.subscribe(seen.append)
        store.dispatch({"type": "NOPE"})
        assert seen == []

    @pytest.mark.parametrize("action", [None, "SAVE_NOTE", 42, {"payload": 1}])
    def test_malformed_action_is_ignored(self, store, action):
        """Should return the same state without raising or notifying."""
        seen = []
        store.subscribe(seen.append)
        before = store.state
        assert store.dispatch(action) is before
        assert seen == []

    def test_unsubscribe(self, store):
        """Should stop notifying after unsubscribe."""
        seen = []
        unsubscribe = store.subscribe(seen.append)
        unsubscribe()
        store.dispatch(add_task("Walk"))
        assert seen == []

    def test_find_mind_map(self, store):
        """Should look maps up by id."""
        assert store.find_mind_map("map_3000")["title"] == "Plan"
        assert store.find_mind_map("map_missing") is None

    def test_default_store_is_empty(self):
        """Should start from the default state."""
        store = AppStore()
        assert store.notes == [] and store.tasks == [] and store.mind_maps == []
        assert store.settings["accentColor"] == "yellow"


class TestSelectors:
    """Tests for search and ordering helpers."""

    def test_filter_is_case_insensitive(self):
        """Should match substrings regardless of case."""
        items = [{"title": "Shopping List"}, {"title": "Ideas"}]
        assert filter_by_text(items, "title", "shop") == [items[0]]
        assert filter_by_text(items, "title", "") == items

    def test_sort_notes(self):
        """Should sort by recency, creation or name."""
        notes = [
            {"id": "a", "title": "beta", "createdAt": 1, "modifiedAt": 5},
            {"id": "b", "title": "Alpha", "createdAt": 3, "modifiedAt": 2},
            {"id": "c", "title": "gamma", "createdAt": 2, "modifiedAt": 9},
        ]
        assert _ids(sort_notes(notes, "modifiedAt")) == ["c", "a", "b"]
        assert _ids(sort_notes(notes, "createdAt")) == ["b", "c", "a"]
        assert _ids(sort_notes(notes, "title")) == ["b", "a", "c"]

    def test_split_tasks(self):
        """Should separate pending and completed tasks."""
        tasks = [{"id": "1", "completed": False}, {"id": "2", "completed": True}]
        pending, done = split_tasks(tasks)
        assert _ids(pending) == ["1"] and _ids(done) == ["2"]

    def test_sort_mind_maps(self):
        """Should put the most recently modified map first."""
        maps = [{"id": "old", "modifiedAt": 1}, {"id": "new", "modifiedAt": 2}]
        assert _ids(sort_mind_maps(maps)) == ["new", "old"]
