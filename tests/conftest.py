"""
Shared fixtures.

These fixtures cover the display-free modules and do not import PySide6.
"""

from typing import Any

import pytest

from records import new_note
from state import AppStore, add_task, create_mind_map, default_state, reduce, save_note
from storage import LocalStorage


@pytest.fixture
def storage(tmp_path) -> LocalStorage:
    """Key-value storage rooted in a fresh temporary directory."""
    return LocalStorage(tmp_path / "data")


@pytest.fixture
def populated_state() -> dict[str, Any]:
    """A state with one note, one task and one mind map."""
    state = default_state()
    state = reduce(state, save_note(new_note("Groceries", "<p>eggs</p>", now=1_000)))
    state = reduce(state, add_task("Buy milk", now=2_000))
    state = reduce(state, create_mind_map("Plan", now=3_000))
    return state


@pytest.fixture
def store(populated_state) -> AppStore:
    return AppStore(populated_state)
