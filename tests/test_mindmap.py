"""
Unit tests for the mind map node model, viewport and editing session.
"""

import pytest

from mindmap import (
    DRAGGING_NODE,
    IDLE,
    PANNING,
    ZOOM_MAX,
    ZOOM_MIN,
    MindMapEditor,
    Viewport,
    collect_subtree,
    connector_path,
    connectors,
    delete_subtree,
)
from records import new_mind_map


def _node(nid, parent=None, x=0.0, y=0.0, text=None):
    return {"id": nid, "text": text or nid, "position": {"x": x, "y": y}, "parentId": parent}


@pytest.fixture
def tree():
    """root -> a -> (a1, a2 -> a2x), root -> b"""
    nodes = [
        _node("root"),
        _node("a", "root", 150, 50),
        _node("a1", "a", 300, 100),
        _node("a2", "a", 300, 200),
        _node("a2x", "a2", 450, 250),
        _node("b", "root", -150, 50),
    ]
    return {n["id"]: n for n in nodes}


@pytest.fixture
def editor(tree):
    return MindMapEditor({"id": "map_1", "title": "Plan", "rootId": "root", "nodes": tree,
                          "createdAt": 1, "modifiedAt": 1})


class TestSubtree:
    """Tests for subtree collection and deletion."""

    def test_collect_breadth_first(self, tree):
        """Should list the node and every descendant."""
        assert collect_subtree(tree, "a") == ["a", "a1", "a2", "a2x"]

    def test_collect_missing(self, tree):
        """Should return nothing for an unknown id."""
        assert collect_subtree(tree, "zzz") == []

    def test_delete_removes_exactly_the_subtree(self, tree):
        """Should keep every node outside the subtree."""
        remaining = delete_subtree(tree, "root", "a")
        assert set(remaining) == {"root", "b"}
        assert set(tree) == {"root", "a", "a1", "a2", "a2x", "b"}

    def test_delete_leaf(self, tree):
        """Should remove only the leaf."""
        assert set(delete_subtree(tree, "root", "a2x")) == {"root", "a", "a1", "a2", "b"}

    def test_delete_root_rejected(self, tree):
        """Should never delete the root."""
        assert delete_subtree(tree, "root", "root") is None


class TestConnectors:
    """Tests for derived connector geometry."""

    def test_curve_control_points(self):
        """Should bend at the horizontal midpoint."""
        assert connector_path((0, 0), (100, 40)) == ((0, 0), (50.0, 0), (50.0, 40), (100, 40))

    def test_one_connector_per_non_root(self, tree):
        """Should connect each child to its parent."""
        edges = {(pid, nid) for pid, nid, _ in connectors(tree)}
        assert edges == {("root", "a"), ("a", "a1"), ("a", "a2"), ("a2", "a2x"), ("root", "b")}

    def test_dangling_parent_has_no_connector(self, tree):
        """Should skip nodes whose parent is missing."""
        tree["orphan"] = _node("orphan", "ghost")
        assert all(nid != "orphan" for _, nid, _ in connectors(tree))


class TestViewport:
    """Tests for pan, zoom and recenter math."""

    def test_screen_logical_inverse(self):
        """Should convert back and forth."""
        vp = Viewport(30, -20, 2.0)
        assert vp.to_logical(*vp.to_screen(12.5, -7)) == pytest.approx((12.5, -7))

    @pytest.mark.parametrize("zoom_in", [True, False])
    def test_zoom_keeps_point_under_pointer(self, zoom_in):
        """Should anchor the zoom at the pointer."""
        vp = Viewport(40, 25, 1.3)
        pointer = (321.0, 187.0)
        before = vp.to_logical(*pointer)
        vp.zoom_at(*pointer, zoom_in=zoom_in)
        assert vp.to_screen(*before) == pytest.approx(pointer)

    def test_zoom_step(self):
        """Should scale by 1.1 per step."""
        vp = Viewport()
        vp.zoom_at(0, 0, zoom_in=True)
        assert vp.zoom == pytest.approx(1.1)
        vp.zoom_at(0, 0, zoom_in=False)
        vp.zoom_at(0, 0, zoom_in=False)
        assert vp.zoom == pytest.approx(1 / 1.1)

    def test_zoom_is_clamped(self):
        """Should stay within the zoom limits."""
        vp = Viewport()
        for _ in range(100):
            vp.zoom_at(10, 10, zoom_in=True)
        assert vp.zoom == pytest.approx(ZOOM_MAX)
        for _ in range(200):
            vp.zoom_at(10, 10, zoom_in=False)
        assert vp.zoom == pytest.approx(ZOOM_MIN)

    def test_zoom_at_limit_keeps_point_under_pointer(self):
        """Should keep the anchor even when the zoom is clamped."""
        vp = Viewport(5, 5, ZOOM_MAX)
        before = vp.to_logical(50, 60)
        vp.zoom_at(50, 60, zoom_in=True)
        assert vp.to_screen(*before) == pytest.approx((50, 60))

    def test_center_on(self):
        """Should map the point to the viewport centre at zoom 1."""
        vp = Viewport(3, 4, 2.5)
        vp.center_on(120, -80, 800, 600)
        assert vp.zoom == 1.0
        assert vp.to_screen(120, -80) == (400.0, 300.0)


class TestEditorInteraction:
    """Tests for pointer driven interaction."""

    def test_recenter_on_root(self, editor):
        """Should place the root at the exact centre."""
        editor.nodes["root"]["position"] = {"x": 33, "y": -12}
        editor.viewport = Viewport(999, 999, 3.0)
        editor.recenter(640, 480)
        assert editor.viewport.zoom == 1.0
        assert editor.viewport.to_screen(33, -12) == (320.0, 240.0)

    def test_pan_moves_offset_only(self, editor):
        """Should add frame deltas to the offset."""
        editor.viewport = Viewport(0, 0, 2.0)
        assert editor.pointer_down(1000, 1000) is None
        assert editor.mode == PANNING
        editor.pointer_move(1010, 995)
        editor.pointer_move(1030, 990)
        editor.pointer_up()
        assert (editor.viewport.x, editor.viewport.y, editor.viewport.zoom) == (30, -10, 2.0)
        assert editor.mode == IDLE

    def test_drag_divides_by_zoom(self, editor):
        """Should move the node by screen delta over zoom."""
        editor.viewport = Viewport(100, 100, 2.0)
        sx, sy = editor.viewport.to_screen(150, 50)
        assert editor.pointer_down(sx, sy) == "a"
        assert editor.mode == DRAGGING_NODE
        assert editor.selected_id == "a"
        editor.pointer_move(sx + 10, sy + 10)
        editor.pointer_move(sx + 40, sy - 20)
        editor.pointer_leave()
        assert editor.nodes["a"]["position"] == {"x": 170.0, "y": 40.0}
        assert editor.nodes["a"]["parentId"] == "root"
        assert editor.mode == IDLE

    def test_move_without_pointer_down_does_nothing(self, editor):
        """Should ignore moves while idle."""
        before = (editor.viewport.x, editor.viewport.y)
        editor.pointer_move(50, 50)
        assert (editor.viewport.x, editor.viewport.y) == before

    def test_pointer_down_cancels_text_edit(self, editor):
        """Should leave edit mode when a node is grabbed."""
        editor.begin_edit("b")
        sx, sy = editor.viewport.to_screen(150, 50)
        editor.pointer_down(sx, sy)
        assert editor.editing_id is None

    def test_wheel_direction(self, editor):
        """Should zoom in on scroll up and out on scroll down."""
        editor.wheel(-120, 0, 0)
        assert editor.viewport.zoom == pytest.approx(1.1)
        editor.wheel(120, 0, 0)
        assert editor.viewport.zoom == pytest.approx(1.0)


class TestEditorEditing:
    """Tests for add, delete and retext."""

    def test_add_child_offsets_from_parent(self, editor):
        """Should add a selected, editable New Idea node."""
        editor.selected_id = "a"
        child_id = editor.add_child()
        child = editor.nodes[child_id]
        assert child["text"] == "New Idea"
        assert child["parentId"] == "a"
        assert child["position"] == {"x": 300.0, "y": 100.0}
        assert editor.selected_id == child_id
        assert editor.editing_id == child_id

    def test_added_children_have_unique_ids(self, editor):
        """Should never reuse a node id."""
        ids = {editor.add_child() for _ in range(10)}
        assert len(ids) == 10

    def test_delete_selected_subtree(self, editor):
        """Should remove the subtree and select the root."""
        editor.selected_id = "a2"
        assert editor.delete_selected() is True
        assert set(editor.nodes) == {"root", "a", "a1", "b"}
        assert editor.selected_id == "root"

    def test_delete_root_is_rejected(self, editor):
        """Should keep every node when the root is selected."""
        editor.selected_id = "root"
        assert editor.can_delete_selected() is False
        assert editor.delete_selected() is False
        assert len(editor.nodes) == 6

    def test_retext_rejects_blank(self, editor):
        """Should keep the previous text for blank input."""
        editor.begin_edit("b")
        assert editor.retext("b", "   ") is False
        assert editor.nodes["b"]["text"] == "b"
        assert editor.editing_id is None

    def test_retext(self, editor):
        """Should replace the node text."""
        assert editor.retext("b", "Budget") is True
        assert editor.nodes["b"]["text"] == "Budget"

    def test_session_works_on_a_copy(self, tree):
        """Should leave the source map untouched until saved."""
        source = {"id": "m", "title": "T", "rootId": "root", "nodes": tree, "createdAt": 1, "modifiedAt": 1}
        editor = MindMapEditor(source)
        editor.retext("a", "changed")
        editor.title = "New title"
        assert tree["a"]["text"] == "a"
        saved = editor.to_mind_map()
        assert saved["nodes"]["a"]["text"] == "changed"
        assert saved["title"] == "New title"
        assert saved["rootId"] == "root" and saved["id"] == "m"

    def test_fresh_map_starts_with_root_selected(self):
        """Should select the root of a new map."""
        editor = MindMapEditor(new_mind_map("Plan", "map_5", 5))
        assert editor.selected_id == editor.root_id == "node_5"
        assert editor.can_delete_selected() is False


class TestHitTesting:
    """Tests for node hit-testing."""

    def test_hit_inside_box(self, editor):
        """Should find the node under the pointer."""
        editor.viewport = Viewport(0, 0, 1.0)
        assert editor.node_at(150 + 60, 50 - 18) == "a"
        assert editor.node_at(150 + 70, 50) is None

    def test_selected_node_wins_overlap(self, editor):
        """Should prefer the selected node when boxes overlap."""
        editor.nodes["b"]["position"] = {"x": 150, "y": 50}
        editor.selected_id = "a"
        assert editor.node_at(150, 50) == "a"
        editor.selected_id = "root"
        assert editor.node_at(150, 50) == "b"

    def test_hit_respects_zoom(self, editor):
        """Should scale node boxes with the zoom."""
        editor.viewport = Viewport(0, 0, 2.0)
        assert editor.node_at(300, 100) == "a"
        assert editor.node_at(150, 50) is None
