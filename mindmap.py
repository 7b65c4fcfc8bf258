from collections import deque
from copy import deepcopy
from typing import Any, Optional

from records import make_id


ZOOM_STEP = 1.1
ZOOM_MIN = 0.1
ZOOM_MAX = 5.0
CHILD_OFFSET_X = 150.0
CHILD_OFFSET_Y = 50.0
CHILD_NODE_TEXT = "New Idea"
NODE_WIDTH = 128.0
NODE_HEIGHT = 40.0

IDLE = "idle"
PANNING = "panning"
DRAGGING_NODE = "dragging_node"

Point = tuple[float, float]


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def node_position(node: dict[str, Any]) -> Point:
    pos = node.get("position", {})
    return float(pos.get("x", 0.0)), float(pos.get("y", 0.0))


def collect_subtree(nodes: dict[str, dict[str, Any]], node_id: str) -> list[str]:
    """Breadth-first ids of ``node_id`` and every node whose parent chain reaches it."""
    if node_id not in nodes:
        return []
    children: dict[str, list[str]] = {}
    for nid, node in nodes.items():
        pid = node.get("parentId")
        if pid is not None:
            children.setdefault(pid, []).append(nid)

    collected = [node_id]
    seen = {node_id}
    queue = deque([node_id])
    while queue:
        current = queue.popleft()
        for child in children.get(current, []):
            if child not in seen:
                seen.add(child)
                collected.append(child)
                queue.append(child)
    return collected


def delete_subtree(
    nodes: dict[str, dict[str, Any]], root_id: str, node_id: str
) -> Optional[dict[str, dict[str, Any]]]:
    """Nodes without the subtree at ``node_id``; None when the delete is rejected."""
    if node_id == root_id or node_id not in nodes:
        return None
    doomed = set(collect_subtree(nodes, node_id))
    return {nid: node for nid, node in nodes.items() if nid not in doomed}


def add_child(
    nodes: dict[str, dict[str, Any]], parent_id: str, node_id: Optional[str] = None
) -> tuple[dict[str, dict[str, Any]], str]:
    parent = nodes[parent_id]
    px, py = node_position(parent)
    child_id = node_id or make_id("node")
    child = {
        "id": child_id,
        "text": CHILD_NODE_TEXT,
        "position": {"x": px + CHILD_OFFSET_X, "y": py + CHILD_OFFSET_Y},
        "parentId": parent_id,
    }
    return {**nodes, child_id: child}, child_id


def retext(nodes: dict[str, dict[str, Any]], node_id: str, text: str) -> Optional[dict[str, dict[str, Any]]]:
    if node_id not in nodes or not text.strip():
        return None
    return {**nodes, node_id: {**nodes[node_id], "text": text}}


def move_node(nodes: dict[str, dict[str, Any]], node_id: str, x: float, y: float) -> dict[str, dict[str, Any]]:
    return {**nodes, node_id: {**nodes[node_id], "position": {"x": x, "y": y}}}


def connector_path(start: Point, end: Point) -> tuple[Point, Point, Point, Point]:
    sx, sy = start
    ex, ey = end
    mid_x = sx + (ex - sx) * 0.5
    return start, (mid_x, sy), (mid_x, ey), end


def connectors(nodes: dict[str, dict[str, Any]]) -> list[tuple[str, str, tuple[Point, Point, Point, Point]]]:
    edges = []
    for nid, node in nodes.items():
        pid = node.get("parentId")
        if pid is None:
            continue
        parent = nodes.get(pid)
        if parent is None:
            continue
        edges.append((pid, nid, connector_path(node_position(parent), node_position(node))))
    return edges


class Viewport:
    def __init__(self, x: float = 0.0, y: float = 0.0, zoom: float = 1.0) -> None:
        self.x = x
        self.y = y
        self.zoom = zoom

    def to_screen(self, lx: float, ly: float) -> Point:
        return self.x + lx * self.zoom, self.y + ly * self.zoom

    def to_logical(self, sx: float, sy: float) -> Point:
        return (sx - self.x) / self.zoom, (sy - self.y) / self.zoom

    def pan_by(self, dx: float, dy: float) -> None:
        self.x += dx
        self.y += dy

    def zoom_at(self, sx: float, sy: float, zoom_in: bool) -> None:
        target = self.zoom * ZOOM_STEP if zoom_in else self.zoom / ZOOM_STEP
        new_zoom = clamp(target, ZOOM_MIN, ZOOM_MAX)
        ratio = new_zoom / self.zoom
        self.x = sx - (sx - self.x) * ratio
        self.y = sy - (sy - self.y) * ratio
        self.zoom = new_zoom

    def center_on(self, lx: float, ly: float, width: float, height: float) -> None:
        self.zoom = 1.0
        self.x = width / 2.0 - lx
        self.y = height / 2.0 - ly


class MindMapEditor:
    """Editing session over a copy of one mind map.

    Nothing reaches the store until the caller saves ``to_mind_map()``.
    """

    def __init__(self, mind_map: dict[str, Any]) -> None:
        self.source = mind_map
        self.title: str = str(mind_map.get("title", ""))
        self.nodes: dict[str, dict[str, Any]] = deepcopy(mind_map.get("nodes", {}))
        self.root_id: str = mind_map["rootId"]
        self.viewport = Viewport()
        self.selected_id: Optional[str] = self.root_id
        self.editing_id: Optional[str] = None
        self.mode = IDLE
        self._pointer: Point = (0.0, 0.0)
        self._drag_node_id: Optional[str] = None
        self._drag_origin: Point = (0.0, 0.0)

    def node_at(self, sx: float, sy: float) -> Optional[str]:
        lx, ly = self.viewport.to_logical(sx, sy)
        order = list(reversed(list(self.nodes)))
        if self.selected_id in self.nodes:
            order.remove(self.selected_id)
            order.insert(0, self.selected_id)
        for nid in order:
            nx, ny = node_position(self.nodes[nid])
            if abs(lx - nx) <= NODE_WIDTH / 2.0 and abs(ly - ny) <= NODE_HEIGHT / 2.0:
                return nid
        return None

    def pointer_down(self, sx: float, sy: float) -> Optional[str]:
        hit = self.node_at(sx, sy)
        self._pointer = (sx, sy)
        if hit is not None:
            self.selected_id = hit
            self.editing_id = None
            self.mode = DRAGGING_NODE
            self._drag_node_id = hit
            self._drag_origin = node_position(self.nodes[hit])
        else:
            self.mode = PANNING
        return hit

    def pointer_move(self, sx: float, sy: float) -> None:
        if self.mode == PANNING:
            px, py = self._pointer
            self.viewport.pan_by(sx - px, sy - py)
            self._pointer = (sx, sy)
        elif self.mode == DRAGGING_NODE and self._drag_node_id in self.nodes:
            ax, ay = self._pointer
            ox, oy = self._drag_origin
            zoom = self.viewport.zoom
            self.nodes = move_node(
                self.nodes,
                self._drag_node_id,
                ox + (sx - ax) / zoom,
                oy + (sy - ay) / zoom,
            )

    def pointer_up(self) -> None:
        self.mode = IDLE
        self._drag_node_id = None

    pointer_leave = pointer_up

    def wheel(self, delta_y: float, sx: float, sy: float) -> None:
        self.viewport.zoom_at(sx, sy, zoom_in=delta_y < 0)

    def recenter(self, width: float, height: float) -> None:
        root = self.nodes.get(self.root_id)
        lx, ly = node_position(root) if root else (0.0, 0.0)
        self.viewport.center_on(lx, ly, width, height)

    def add_child(self) -> Optional[str]:
        if self.selected_id not in self.nodes:
            return None
        self.nodes, child_id = add_child(self.nodes, self.selected_id)
        self.selected_id = child_id
        self.editing_id = child_id
        return child_id

    def can_delete_selected(self) -> bool:
        return self.selected_id is not None and self.selected_id != self.root_id

    def delete_selected(self) -> bool:
        if not self.can_delete_selected():
            return False
        remaining = delete_subtree(self.nodes, self.root_id, self.selected_id)
        if remaining is None:
            return False
        self.nodes = remaining
        self.selected_id = self.root_id
        if self.editing_id not in self.nodes:
            self.editing_id = None
        return True

    def begin_edit(self, node_id: str) -> None:
        if node_id in self.nodes:
            self.selected_id = node_id
            self.editing_id = node_id

    def retext(self, node_id: str, text: str) -> bool:
        self.editing_id = None
        updated = retext(self.nodes, node_id, text)
        if updated is None:
            return False
        self.nodes = updated
        return True

    def connectors(self) -> list[tuple[str, str, tuple[Point, Point, Point, Point]]]:
        return connectors(self.nodes)

    def to_mind_map(self) -> dict[str, Any]:
        return {**self.source, "title": self.title, "nodes": deepcopy(self.nodes)}
