from typing import Any, Callable, Optional

from PySide6.QtCore import QPointF, QRectF, Qt, Signal
from PySide6.QtGui import QColor, QPainter, QPainterPath, QPen
from PySide6.QtWidgets import (
    QDialog,
    QHBoxLayout,
    QLineEdit,
    QPushButton,
    QVBoxLayout,
    QWidget,
)

from mindmap import NODE_HEIGHT, NODE_WIDTH, MindMapEditor, node_position


class MindMapCanvas(QWidget):
    selection_changed = Signal()

    def __init__(self, editor: MindMapEditor, accent: str, dark: bool, parent: Optional[QWidget] = None) -> None:
        super().__init__(parent)
        self.editor = editor
        self.accent = QColor(accent)
        self.dark = dark
        self._centered = False
        self._edit_node_id: Optional[str] = None
        self.setMouseTracking(True)
        self.setMinimumSize(480, 360)

        self.text_input = QLineEdit(self)
        self.text_input.hide()
        self.text_input.editingFinished.connect(self.commit_edit)

    def showEvent(self, event) -> None:  # type: ignore[override]
        super().showEvent(event)
        if not self._centered:
            self._centered = True
            self.center_view()

    def center_view(self) -> None:
        self.editor.recenter(float(self.width()), float(self.height()))
        self._sync_editing()
        self.update()

    def add_child(self) -> None:
        if self.editor.add_child() is not None:
            self.selection_changed.emit()
            self._sync_editing()
            self.update()

    def delete_selected(self) -> None:
        if self.editor.delete_selected():
            self._hide_editor()
            self.selection_changed.emit()
            self.update()

    def _node_rect(self, node: dict[str, Any]) -> QRectF:
        x, y = node_position(node)
        return QRectF(x - NODE_WIDTH / 2.0, y - NODE_HEIGHT / 2.0, NODE_WIDTH, NODE_HEIGHT)

    def _screen_rect(self, node_id: str) -> QRectF:
        vp = self.editor.viewport
        rect = self._node_rect(self.editor.nodes[node_id])
        left, top = vp.to_screen(rect.left(), rect.top())
        return QRectF(left, top, rect.width() * vp.zoom, rect.height() * vp.zoom)

    def paintEvent(self, _event) -> None:  # type: ignore[override]
        p = QPainter(self)
        p.setRenderHint(QPainter.Antialiasing)
        p.fillRect(self.rect(), QColor("#111827" if self.dark else "#f3f4f6"))

        vp = self.editor.viewport
        step = 20.0
        p.setPen(QPen(QColor("#4b5563" if self.dark else "#d2d6dc"), 1))
        y = 0.0
        while y < self.height():
            x = 0.0
            while x < self.width():
                p.drawPoint(QPointF(x, y))
                x += step
            y += step

        p.save()
        p.translate(vp.x, vp.y)
        p.scale(vp.zoom, vp.zoom)

        p.setPen(QPen(QColor("#9ca3af"), 2))
        p.setBrush(Qt.NoBrush)
        for _pid, _nid, (start, c1, c2, end) in self.editor.connectors():
            path = QPainterPath(QPointF(*start))
            path.cubicTo(QPointF(*c1), QPointF(*c2), QPointF(*end))
            p.drawPath(path)

        node_bg = QColor("#1f2937" if self.dark else "#ffffff")
        text_color = QColor("#f3f4f6" if self.dark else "#111827")
        ordered = [nid for nid in self.editor.nodes if nid != self.editor.selected_id]
        if self.editor.selected_id in self.editor.nodes:
            ordered.append(self.editor.selected_id)
        for nid in ordered:
            node = self.editor.nodes[nid]
            rect = self._node_rect(node)
            selected = nid == self.editor.selected_id
            p.setPen(QPen(self.accent, 2) if selected else QPen(QColor("#d1d5db"), 1))
            p.setBrush(node_bg)
            p.drawRoundedRect(rect, 6, 6)
            if nid != self._edit_node_id:
                p.setPen(text_color)
                p.drawText(rect.adjusted(6, 2, -6, -2), Qt.AlignCenter | Qt.TextWordWrap, str(node.get("text", "")))
        p.restore()

    def mousePressEvent(self, event) -> None:  # type: ignore[override]
        if event.button() != Qt.LeftButton:
            return
        pos = event.position()
        if self._edit_node_id is not None:
            self.commit_edit()
        hit = self.editor.pointer_down(pos.x(), pos.y())
        if hit is not None:
            self.selection_changed.emit()
        self.setCursor(Qt.ClosedHandCursor)
        self.update()

    def mouseMoveEvent(self, event) -> None:  # type: ignore[override]
        pos = event.position()
        self.editor.pointer_move(pos.x(), pos.y())
        self.update()

    def mouseReleaseEvent(self, _event) -> None:  # type: ignore[override]
        self.editor.pointer_up()
        self.unsetCursor()

    def leaveEvent(self, _event) -> None:  # type: ignore[override]
        self.editor.pointer_leave()
        self.unsetCursor()

    def mouseDoubleClickEvent(self, event) -> None:  # type: ignore[override]
        pos = event.position()
        hit = self.editor.node_at(pos.x(), pos.y())
        if hit is None:
            return
        self.editor.pointer_up()
        self.editor.begin_edit(hit)
        self.selection_changed.emit()
        self._sync_editing()

    def wheelEvent(self, event) -> None:  # type: ignore[override]
        delta = event.angleDelta().y()
        if delta == 0:
            return
        pos = event.position()
        self.editor.wheel(-delta, pos.x(), pos.y())
        self._sync_editing()
        self.update()

    def _sync_editing(self) -> None:
        node_id = self.editor.editing_id
        if node_id is None or node_id not in self.editor.nodes:
            self._hide_editor()
            return
        rect = self._screen_rect(node_id)
        self.text_input.setGeometry(rect.toRect())
        if self._edit_node_id != node_id:
            self._edit_node_id = node_id
            self.text_input.setText(str(self.editor.nodes[node_id].get("text", "")))
            self.text_input.selectAll()
        self.text_input.show()
        self.text_input.setFocus()

    def commit_edit(self) -> None:
        node_id = self._edit_node_id
        if node_id is None:
            return
        self._edit_node_id = None
        self.editor.retext(node_id, self.text_input.text())
        self.text_input.hide()
        self.update()

    def _hide_editor(self) -> None:
        self._edit_node_id = None
        self.text_input.hide()


class MindMapWindow(QDialog):
    def __init__(
        self,
        mind_map: dict[str, Any],
        on_save: Callable[[dict[str, Any]], None],
        accent: str,
        dark: bool,
        parent: Optional[QWidget] = None,
    ) -> None:
        super().__init__(parent)
        self.setWindowTitle("Mind Map")
        self.resize(980, 700)
        self._on_save = on_save
        self.editor = MindMapEditor(mind_map)

        self.title_input = QLineEdit(self.editor.title)
        self.title_input.setAlignment(Qt.AlignCenter)
        self.title_input.setObjectName("mapTitle")
        back_btn = QPushButton("Back")
        save_btn = QPushButton("Save && Close")
        save_btn.setObjectName("accent")

        header = QHBoxLayout()
        header.addWidget(back_btn)
        header.addWidget(self.title_input, 1)
        header.addWidget(save_btn)

        self.canvas = MindMapCanvas(self.editor, accent, dark)

        self.center_btn = QPushButton("Center View")
        self.add_btn = QPushButton("Add Child Node")
        self.delete_btn = QPushButton("Delete Node")
        toolbar = QHBoxLayout()
        toolbar.addStretch(1)
        toolbar.addWidget(self.center_btn)
        toolbar.addWidget(self.add_btn)
        toolbar.addWidget(self.delete_btn)

        root = QVBoxLayout()
        root.addLayout(header)
        root.addWidget(self.canvas, 1)
        root.addLayout(toolbar)
        self.setLayout(root)

        back_btn.clicked.connect(self.reject)
        save_btn.clicked.connect(self._save_and_close)
        self.center_btn.clicked.connect(self.canvas.center_view)
        self.add_btn.clicked.connect(self.canvas.add_child)
        self.delete_btn.clicked.connect(self.canvas.delete_selected)
        self.canvas.selection_changed.connect(self._update_toolbar)
        self._update_toolbar()

    def _update_toolbar(self) -> None:
        has_selection = self.editor.selected_id is not None
        self.add_btn.setVisible(has_selection)
        self.delete_btn.setVisible(self.editor.can_delete_selected())

    def _save_and_close(self) -> None:
        self.canvas.commit_edit()
        self.editor.title = self.title_input.text()
        self._on_save(self.editor.to_mind_map())
        self.accept()
