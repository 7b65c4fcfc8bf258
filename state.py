import logging
from typing import Any, Callable, Optional

from records import default_settings, make_id, new_mind_map, new_task, now_ms


logger = logging.getLogger(__name__)

SCHEMA_VERSION = 2

SET_STATE = "SET_STATE"
SAVE_NOTE = "SAVE_NOTE"
DELETE_NOTE = "DELETE_NOTE"
ADD_TASK = "ADD_TASK"
UPDATE_TASK = "UPDATE_TASK"
DELETE_TASK = "DELETE_TASK"
UPDATE_SETTINGS = "UPDATE_SETTINGS"
CREATE_MIND_MAP = "CREATE_MIND_MAP"
UPDATE_MIND_MAP = "UPDATE_MIND_MAP"
DELETE_MIND_MAP = "DELETE_MIND_MAP"

NOTE_SORT_METHODS = ("modifiedAt", "createdAt", "title")

Action = dict[str, Any]
Listener = Callable[[dict[str, Any]], None]


def default_state() -> dict[str, Any]:
    return {
        "schemaVersion": SCHEMA_VERSION,
        "notes": [],
        "tasks": [],
        "mindMaps": [],
        "settings": default_settings(),
    }


def set_state(state: dict[str, Any]) -> Action:
    return {"type": SET_STATE, "payload": state}


def save_note(note: dict[str, Any]) -> Action:
    return {"type": SAVE_NOTE, "payload": note}


def delete_note(note_id: str) -> Action:
    return {"type": DELETE_NOTE, "payload": note_id}


def add_task(text: str, now: Optional[int] = None) -> Action:
    stamp = now_ms() if now is None else now
    return {"type": ADD_TASK, "payload": {"text": text, "id": make_id("task", stamp), "now": stamp}}


def update_task(task: dict[str, Any]) -> Action:
    return {"type": UPDATE_TASK, "payload": task}


def delete_task(task_id: str) -> Action:
    return {"type": DELETE_TASK, "payload": task_id}


def update_settings(settings: dict[str, Any]) -> Action:
    return {"type": UPDATE_SETTINGS, "payload": settings}


def create_mind_map(title: str, map_id: Optional[str] = None, now: Optional[int] = None) -> Action:
    stamp = now_ms() if now is None else now
    return {
        "type": CREATE_MIND_MAP,
        "payload": {"title": title, "id": map_id or make_id("map", stamp), "now": stamp},
    }


def update_mind_map(mind_map: dict[str, Any], now: Optional[int] = None) -> Action:
    return {
        "type": UPDATE_MIND_MAP,
        "payload": {"mindMap": mind_map, "now": now_ms() if now is None else now},
    }


def delete_mind_map(map_id: str) -> Action:
    return {"type": DELETE_MIND_MAP, "payload": map_id}


def _replace_by_id(items: list[dict[str, Any]], item: dict[str, Any]) -> list[dict[str, Any]]:
    return [item if existing.get("id") == item.get("id") else existing for existing in items]


def _without_id(items: list[dict[str, Any]], item_id: Any) -> list[dict[str, Any]]:
    return [existing for existing in items if existing.get("id") != item_id]


def _reduce_set_state(state: dict[str, Any], payload: Any) -> dict[str, Any]:
    return payload


def _reduce_save_note(state: dict[str, Any], note: dict[str, Any]) -> dict[str, Any]:
    notes = state["notes"]
    if any(n.get("id") == note.get("id") for n in notes):
        notes = _replace_by_id(notes, note)
    else:
        notes = [*notes, note]
    return {**state, "notes": notes}


def _reduce_delete_note(state: dict[str, Any], note_id: str) -> dict[str, Any]:
    return {**state, "notes": _without_id(state["notes"], note_id)}


def _reduce_add_task(state: dict[str, Any], payload: dict[str, Any]) -> dict[str, Any]:
    task = new_task(payload["text"], payload["id"], payload["now"])
    return {**state, "tasks": [*state["tasks"], task]}


def _reduce_update_task(state: dict[str, Any], task: dict[str, Any]) -> dict[str, Any]:
    return {**state, "tasks": _replace_by_id(state["tasks"], task)}


def _reduce_delete_task(state: dict[str, Any], task_id: str) -> dict[str, Any]:
    return {**state, "tasks": _without_id(state["tasks"], task_id)}


def _reduce_update_settings(state: dict[str, Any], settings: dict[str, Any]) -> dict[str, Any]:
    return {**state, "settings": settings}


def _reduce_create_mind_map(state: dict[str, Any], payload: dict[str, Any]) -> dict[str, Any]:
    mind_map = new_mind_map(payload["title"], payload["id"], payload["now"])
    return {**state, "mindMaps": [*state["mindMaps"], mind_map]}


def _reduce_update_mind_map(state: dict[str, Any], payload: dict[str, Any]) -> dict[str, Any]:
    # Callers' modifiedAt is always overridden.
    stamped = {**payload["mindMap"], "modifiedAt": payload["now"]}
    return {**state, "mindMaps": _replace_by_id(state["mindMaps"], stamped)}


def _reduce_delete_mind_map(state: dict[str, Any], map_id: str) -> dict[str, Any]:
    return {**state, "mindMaps": _without_id(state["mindMaps"], map_id)}


REDUCERS: dict[str, Callable[[dict[str, Any], Any], dict[str, Any]]] = {
    SET_STATE: _reduce_set_state,
    SAVE_NOTE: _reduce_save_note,
    DELETE_NOTE: _reduce_delete_note,
    ADD_TASK: _reduce_add_task,
    UPDATE_TASK: _reduce_update_task,
    DELETE_TASK: _reduce_delete_task,
    UPDATE_SETTINGS: _reduce_update_settings,
    CREATE_MIND_MAP: _reduce_create_mind_map,
    UPDATE_MIND_MAP: _reduce_update_mind_map,
    DELETE_MIND_MAP: _reduce_delete_mind_map,
}


def reduce(state: dict[str, Any], action: Any) -> dict[str, Any]:
    """Return the state that follows ``action``; unknown actions leave it as is."""
    if not isinstance(action, dict):
        return state
    handler = REDUCERS.get(action.get("type"))
    if handler is None:
        return state
    return handler(state, action.get("payload"))


class AppStore:
    def __init__(self, initial: Optional[dict[str, Any]] = None) -> None:
        self.state: dict[str, Any] = initial if initial is not None else default_state()
        self._listeners: list[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def dispatch(self, action: Action) -> dict[str, Any]:
        next_state = reduce(self.state, action)
        if next_state is self.state:
            logger.debug(
                "Action %s left state unchanged",
                action.get("type") if isinstance(action, dict) else action,
            )
            return self.state
        self.state = next_state
        for listener in list(self._listeners):
            listener(self.state)
        return self.state

    @property
    def notes(self) -> list[dict[str, Any]]:
        return self.state["notes"]

    @property
    def tasks(self) -> list[dict[str, Any]]:
        return self.state["tasks"]

    @property
    def mind_maps(self) -> list[dict[str, Any]]:
        return self.state["mindMaps"]

    @property
    def settings(self) -> dict[str, Any]:
        return self.state["settings"]

    def find_mind_map(self, map_id: Optional[str]) -> Optional[dict[str, Any]]:
        return next((m for m in self.mind_maps if m.get("id") == map_id), None)


def filter_by_text(items: list[dict[str, Any]], field: str, term: str) -> list[dict[str, Any]]:
    needle = term.lower()
    return [item for item in items if needle in str(item.get(field, "")).lower()]


def sort_notes(notes: list[dict[str, Any]], method: str) -> list[dict[str, Any]]:
    if method == "title":
        return sorted(notes, key=lambda n: str(n.get("title", "")).lower())
    if method not in NOTE_SORT_METHODS:
        method = "modifiedAt"
    return sorted(notes, key=lambda n: int(n.get(method, 0)), reverse=True)


def split_tasks(tasks: list[dict[str, Any]]) -> tuple[list[dict[str, Any]], list[dict[str, Any]]]:
    pending = [t for t in tasks if not t.get("completed")]
    done = [t for t in tasks if t.get("completed")]
    return pending, done


def sort_mind_maps(mind_maps: list[dict[str, Any]]) -> list[dict[str, Any]]:
    return sorted(mind_maps, key=lambda m: int(m.get("modifiedAt", 0)), reverse=True)
