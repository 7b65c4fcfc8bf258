import logging
import mimetypes
import os
import sys
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Optional

from PySide6.QtCore import QBuffer, QIODevice, QObject, QPointF, Qt, QTimer, QUrl, Signal
from PySide6.QtGui import QColor, QFont, QFontDatabase, QIcon, QImage, QKeySequence, QPainter, QPen, QPixmap, QShortcut
from PySide6.QtMultimedia import QAudioInput, QAudioOutput, QMediaCaptureSession, QMediaPlayer, QMediaRecorder
from PySide6.QtWidgets import (
    QApplication,
    QCheckBox,
    QComboBox,
    QDialog,
    QFileDialog,
    QFormLayout,
    QGridLayout,
    QHBoxLayout,
    QInputDialog,
    QLabel,
    QLineEdit,
    QListWidget,
    QListWidgetItem,
    QMainWindow,
    QMessageBox,
    QPushButton,
    QStackedWidget,
    QTabWidget,
    QTextEdit,
    QTreeWidget,
    QTreeWidgetItem,
    QVBoxLayout,
    QWidget,
)

import state as actions
from mindmap_view import MindMapWindow
from pinpad import ERROR_RESET_MS, PinPad, sanitize_pin, should_lock
from records import ACCENT_COLORS, decode_data_uri, encode_data_uri, new_attachment, new_note, new_subtask, now_ms
from state import AppStore, default_state, filter_by_text, sort_mind_maps, sort_notes, split_tasks
from storage import (
    BACKUP_FILE_NAME,
    InvalidBackupError,
    LocalStorage,
    export_backup,
    import_backup,
    load_state,
    save_state,
)


logger = logging.getLogger(__name__)

FONT_SIZE_MAP: dict[str, int] = {
    "sm": 13,
    "base": 15,
    "lg": 18,
}
DEFAULT_FONT_SIZE = "base"

ACCENT_HEX: dict[str, str] = {
    "yellow": "#eab308",
    "blue": "#3b82f6",
    "green": "#22c55e",
    "pink": "#ec4899",
    "purple": "#a855f7",
}

THEME_COLORS: dict[str, dict[str, str]] = {
    "light": {"bg": "#f3f4f6", "panel": "#ffffff", "text": "#111827", "muted": "#6b7280", "border": "#d1d5db", "button": "#e5e7eb"},
    "dark": {"bg": "#111827", "panel": "#1f2937", "text": "#f3f4f6", "muted": "#9ca3af", "border": "#374151", "button": "#374151"},
}

NOTE_SORT_LABELS = (("Recent", "modifiedAt"), ("Created", "createdAt"), ("Name", "title"))
KEYBOARD_ROWS = ("qwertyuiop", "asdfghjkl", "zxcvbnm")


def format_date(stamp: int) -> str:
    return datetime.fromtimestamp(stamp / 1000).strftime("%x")


def build_style_sheet(theme: str, accent: str) -> str:
    c = THEME_COLORS.get(theme, THEME_COLORS["light"])
    a = ACCENT_HEX.get(accent, ACCENT_HEX["yellow"])
    return f"""
        QWidget {{
            background: {c["bg"]};
            color: {c["text"]};
        }}
        QTreeWidget, QListWidget, QTextEdit, QLineEdit, QComboBox {{
            background: {c["panel"]};
            border: 1px solid {c["border"]};
            border-radius: 6px;
            padding: 4px;
        }}
        QLineEdit:focus, QTextEdit:focus {{
            border: 2px solid {a};
        }}
        QPushButton {{
            background: {c["button"]};
            border: 1px solid {c["border"]};
            border-radius: 6px;
            padding: 6px 10px;
        }}
        QPushButton:disabled {{
            color: {c["muted"]};
        }}
        QPushButton#accent, QTabBar::tab:selected {{
            background: {a};
            color: #ffffff;
        }}
        QTabBar::tab {{
            background: {c["button"]};
            padding: 8px 16px;
            border-radius: 6px;
        }}
        QLabel#title {{
            font-size: 24px;
            font-weight: bold;
            padding-bottom: 8px;
        }}
        QLabel#hint {{
            color: {c["muted"]};
        }}
        QLabel#pinError {{
            color: #ef4444;
        }}
    """


class LockScreen(QWidget):
    unlocked = Signal()

    def __init__(self, correct_pin: str, parent: Optional[QWidget] = None) -> None:
        super().__init__(parent)
        self.pad = PinPad(correct_pin)
        self.setFocusPolicy(Qt.StrongFocus)

        title = QLabel("Enter PIN")
        title.setObjectName("title")
        title.setAlignment(Qt.AlignCenter)
        self.dots = QLabel()
        self.dots.setAlignment(Qt.AlignCenter)
        self.error_label = QLabel("")
        self.error_label.setObjectName("pinError")
        self.error_label.setAlignment(Qt.AlignCenter)

        grid = QGridLayout()
        for i in range(9):
            grid.addWidget(self._key_button(str(i + 1)), i // 3, i % 3)
        grid.addWidget(self._key_button("0"), 3, 1)
        back = QPushButton("⌫")
        back.setFixedSize(64, 64)
        back.clicked.connect(self._on_backspace)
        grid.addWidget(back, 3, 2)

        root = QVBoxLayout()
        root.addStretch(1)
        root.addWidget(title)
        root.addWidget(self.dots)
        root.addWidget(self.error_label)
        row = QHBoxLayout()
        row.addStretch(1)
        row.addLayout(grid)
        row.addStretch(1)
        root.addLayout(row)
        root.addStretch(1)
        self.setLayout(root)
        self._refresh()

    def _key_button(self, digit: str) -> QPushButton:
        btn = QPushButton(digit)
        btn.setFixedSize(64, 64)
        btn.clicked.connect(lambda: self._on_key(digit))
        return btn

    def keyPressEvent(self, event) -> None:  # type: ignore[override]
        text = event.text()
        if text.isdigit():
            self._on_key(text)
        elif event.key() == Qt.Key_Backspace:
            self._on_backspace()
        else:
            super().keyPressEvent(event)

    def _on_key(self, digit: str) -> None:
        result = self.pad.press(digit)
        self._refresh()
        if result is True:
            self.unlocked.emit()
        elif result is False:
            QTimer.singleShot(ERROR_RESET_MS, self._reset_after_error)

    def _on_backspace(self) -> None:
        self.pad.backspace()
        self._refresh()

    def _reset_after_error(self) -> None:
        self.pad.clear_error()
        self._refresh()

    def _refresh(self) -> None:
        filled = len(self.pad.entered)
        total = len(self.pad.correct_pin)
        self.dots.setText(" ".join("●" if i < filled else "○" for i in range(total)))
        self.error_label.setText("Wrong PIN" if self.pad.error else "")


class HalloweenKeyboard(QWidget):
    key_pressed = Signal(str)
    backspace = Signal()
    enter = Signal()

    def __init__(self, family: str = "", parent: Optional[QWidget] = None) -> None:
        super().__init__(parent)
        self.setStyleSheet(
            """
            QWidget { background: #1a1a1a; }
            QPushButton {
                background: #2a2a2a;
                color: #ffffff;
                font-weight: bold;
                border: none;
                border-bottom: 4px solid #f97316;
                border-radius: 6px;
                min-height: 36px;
            }
            QPushButton:hover { background: #c2410c; }
            QLabel { color: #fb923c; }
            """
        )
        root = QVBoxLayout()
        for i, row_keys in enumerate(KEYBOARD_ROWS):
            row = QHBoxLayout()
            if i == 2:
                row.addWidget(self._button("⌫", self.backspace.emit, family), 2)
            for key in row_keys:
                row.addWidget(self._button(key, lambda k=key: self.key_pressed.emit(k), family), 1)
            root.addLayout(row)
        last = QHBoxLayout()
        last.addWidget(self._button("SPACE", lambda: self.key_pressed.emit(" "), family), 7)
        last.addWidget(self._button("ENTER", self.enter.emit, family), 3)
        root.addLayout(last)
        footer = QLabel("Happy Halloween!")
        footer.setAlignment(Qt.AlignCenter)
        root.addWidget(footer)
        self.setLayout(root)

    def _button(self, label: str, slot: Callable[[], None], family: str) -> QPushButton:
        btn = QPushButton(label)
        btn.setFocusPolicy(Qt.NoFocus)
        if family:
            btn.setFont(QFont(family))
        btn.clicked.connect(slot)
        return btn


class DoodleCanvas(QWidget):
    def __init__(self, parent: Optional[QWidget] = None) -> None:
        super().__init__(parent)
        self.setFixedSize(600, 400)
        self.image = QImage(self.size(), QImage.Format_ARGB32)
        self.image.fill(QColor("#ffffff"))
        self._last: Optional[QPointF] = None
        self.dirty = False

    def mousePressEvent(self, event) -> None:  # type: ignore[override]
        if event.button() == Qt.LeftButton:
            self._last = event.position()

    def mouseMoveEvent(self, event) -> None:  # type: ignore[override]
        if self._last is None:
            return
        current = event.position()
        p = QPainter(self.image)
        p.setRenderHint(QPainter.Antialiasing)
        p.setPen(QPen(QColor("#111827"), 3, Qt.SolidLine, Qt.RoundCap, Qt.RoundJoin))
        p.drawLine(self._last, current)
        p.end()
        self._last = current
        self.dirty = True
        self.update()

    def mouseReleaseEvent(self, _event) -> None:  # type: ignore[override]
        self._last = None

    def paintEvent(self, _event) -> None:  # type: ignore[override]
        p = QPainter(self)
        p.drawImage(0, 0, self.image)

    def clear(self) -> None:
        self.image.fill(QColor("#ffffff"))
        self.dirty = False
        self.update()

    def to_data_uri(self) -> str:
        buffer = QBuffer()
        buffer.open(QIODevice.WriteOnly)
        self.image.save(buffer, "PNG")
        return encode_data_uri(bytes(buffer.data()), "image/png")


class DoodleDialog(QDialog):
    def __init__(self, parent: Optional[QWidget] = None) -> None:
        super().__init__(parent)
        self.setWindowTitle("Doodle")
        self.setModal(True)
        self.data_uri: Optional[str] = None
        self.canvas = DoodleCanvas()

        clear_btn = QPushButton("Clear")
        save_btn = QPushButton("Save")
        cancel_btn = QPushButton("Cancel")
        buttons = QHBoxLayout()
        buttons.addWidget(clear_btn)
        buttons.addStretch(1)
        buttons.addWidget(save_btn)
        buttons.addWidget(cancel_btn)

        root = QVBoxLayout()
        root.addWidget(self.canvas)
        root.addLayout(buttons)
        self.setLayout(root)

        clear_btn.clicked.connect(self.canvas.clear)
        save_btn.clicked.connect(self._on_save)
        cancel_btn.clicked.connect(self.reject)

    def _on_save(self) -> None:
        if not self.canvas.dirty:
            self.reject()
            return
        self.data_uri = self.canvas.to_data_uri()
        self.accept()


class AudioRecorder(QObject):
    finished = Signal(str)
    failed = Signal(str)

    def __init__(self, parent: Optional[QObject] = None) -> None:
        super().__init__(parent)
        self.session = QMediaCaptureSession(self)
        self.audio_input = QAudioInput(self)
        self.session.setAudioInput(self.audio_input)
        self.recorder = QMediaRecorder(self)
        self.session.setRecorder(self.recorder)
        self.recorder.recorderStateChanged.connect(self._on_state_changed)
        self.recorder.errorOccurred.connect(self._on_error)
        self._temp_dir: Optional[tempfile.TemporaryDirectory] = None

    @property
    def recording(self) -> bool:
        return self.recorder.recorderState() == QMediaRecorder.RecordingState

    def start(self) -> None:
        self._temp_dir = tempfile.TemporaryDirectory(prefix="notenest_", ignore_cleanup_errors=True)
        self.recorder.setOutputLocation(QUrl.fromLocalFile(str(Path(self._temp_dir.name) / "voice_note")))
        self.recorder.record()
        logger.info("Audio recording started")

    def stop(self) -> None:
        self.recorder.stop()

    def cancel(self) -> None:
        """Stop capturing and drop the clip; ``finished`` is not emitted."""
        temp_dir, self._temp_dir = self._temp_dir, None
        if self.recording:
            self.recorder.stop()
            logger.info("Audio recording discarded")
        if temp_dir is not None:
            temp_dir.cleanup()

    def _on_state_changed(self, state) -> None:
        if state != QMediaRecorder.StoppedState or self._temp_dir is None:
            return
        path = Path(self.recorder.actualLocation().toLocalFile())
        try:
            payload = path.read_bytes()
        except OSError as exc:
            logger.exception("Could not read recording %s", path)
            self.failed.emit(str(exc))
        else:
            mime = mimetypes.guess_type(path.name)[0] or "audio/webm"
            self.finished.emit(encode_data_uri(payload, mime))
        finally:
            self._temp_dir.cleanup()
            self._temp_dir = None

    def _on_error(self, _error, message: str) -> None:
        logger.error("Audio recording failed: %s", message)
        self.failed.emit(message)


class NoteEditor(QDialog):
    ATTACHMENT_ID_ROLE = Qt.UserRole + 1

    def __init__(
        self,
        note: Optional[dict[str, Any]],
        on_save: Callable[[dict[str, Any]], None],
        on_delete: Callable[[str], bool],
        parent: Optional[QWidget] = None,
    ) -> None:
        super().__init__(parent)
        self.setWindowTitle("Edit Note" if note else "New Note")
        self.resize(760, 640)
        self.note = note
        self._on_save = on_save
        self._on_delete = on_delete
        self.attachments: list[dict[str, Any]] = list(note.get("attachments", [])) if note else []
        self._player: Optional[QMediaPlayer] = None
        self._playback_files: list[Path] = []

        self.title_input = QLineEdit(note.get("title", "") if note else "")
        self.title_input.setPlaceholderText("Title")
        self.body = QTextEdit()
        self.body.setAcceptRichText(True)
        self.body.setPlaceholderText("Start writing...")
        if note:
            self.body.setHtml(str(note.get("content", "")))

        self.bold_btn = QPushButton("B")
        self.italic_btn = QPushButton("I")
        self.underline_btn = QPushButton("U")
        self.image_btn = QPushButton("Image")
        self.record_btn = QPushButton("Record")
        self.doodle_btn = QPushButton("Doodle")
        for btn in (self.bold_btn, self.italic_btn, self.underline_btn):
            btn.setCheckable(True)
            btn.setFocusPolicy(Qt.NoFocus)

        format_bar = QHBoxLayout()
        format_bar.addWidget(self.bold_btn)
        format_bar.addWidget(self.italic_btn)
        format_bar.addWidget(self.underline_btn)
        format_bar.addStretch(1)
        format_bar.addWidget(self.image_btn)
        format_bar.addWidget(self.record_btn)
        format_bar.addWidget(self.doodle_btn)

        self.attachment_list = QListWidget()
        self.attachment_list.setMaximumHeight(140)
        self.attachment_list.setViewMode(QListWidget.IconMode)
        remove_btn = QPushButton("Remove Attachment")

        save_btn = QPushButton("Save")
        save_btn.setObjectName("accent")
        close_btn = QPushButton("Close")
        delete_btn = QPushButton("Delete Note")
        delete_btn.setEnabled(note is not None)
        buttons = QHBoxLayout()
        buttons.addWidget(delete_btn)
        buttons.addWidget(remove_btn)
        buttons.addStretch(1)
        buttons.addWidget(close_btn)
        buttons.addWidget(save_btn)

        root = QVBoxLayout()
        root.addWidget(self.title_input)
        root.addLayout(format_bar)
        root.addWidget(self.body, 1)
        root.addWidget(QLabel("Attachments"))
        root.addWidget(self.attachment_list)
        root.addLayout(buttons)
        self.setLayout(root)

        self.recorder = AudioRecorder(self)
        self.recorder.finished.connect(self._on_recording_finished)
        self.recorder.failed.connect(self._on_record_failed)
        self._save_when_stopped = False

        self.bold_btn.toggled.connect(
            lambda on: self.body.setFontWeight(int(QFont.Weight.Bold if on else QFont.Weight.Normal))
        )
        self.italic_btn.toggled.connect(self.body.setFontItalic)
        self.underline_btn.toggled.connect(self.body.setFontUnderline)
        self.body.currentCharFormatChanged.connect(self._sync_format_buttons)
        self.image_btn.clicked.connect(self._on_add_image)
        self.record_btn.clicked.connect(self._on_toggle_record)
        self.doodle_btn.clicked.connect(self._on_add_doodle)
        self.attachment_list.itemDoubleClicked.connect(self._on_open_attachment)
        remove_btn.clicked.connect(self._on_remove_attachment)
        save_btn.clicked.connect(self._on_save_clicked)
        close_btn.clicked.connect(self.reject)
        delete_btn.clicked.connect(self._on_delete_clicked)

        self._rebuild_attachments()

    def _sync_format_buttons(self, fmt) -> None:
        for btn, on in (
            (self.bold_btn, fmt.fontWeight() >= int(QFont.Weight.Bold)),
            (self.italic_btn, fmt.fontItalic()),
            (self.underline_btn, fmt.fontUnderline()),
        ):
            btn.blockSignals(True)
            btn.setChecked(bool(on))
            btn.blockSignals(False)

    def _rebuild_attachments(self) -> None:
        self.attachment_list.clear()
        for att in self.attachments:
            label = {"image": "Image", "audio": "Voice note", "doodle": "Doodle"}.get(att.get("type"), "File")
            item = QListWidgetItem(label)
            item.setData(self.ATTACHMENT_ID_ROLE, att.get("id"))
            if att.get("type") in ("image", "doodle"):
                try:
                    _mime, payload = decode_data_uri(str(att.get("data", "")))
                except ValueError:
                    logger.warning("Attachment %s has unreadable data", att.get("id"))
                else:
                    pixmap = QPixmap()
                    if pixmap.loadFromData(payload):
                        item.setIcon(QIcon(pixmap.scaled(96, 96, Qt.KeepAspectRatio, Qt.SmoothTransformation)))
            self.attachment_list.addItem(item)

    def _add_attachment(self, kind: str, data: str) -> None:
        self.attachments.append(new_attachment(kind, data))
        self._rebuild_attachments()

    def _on_add_image(self) -> None:
        path, _ = QFileDialog.getOpenFileName(self, "Add Image", "", "Images (*.png *.jpg *.jpeg *.gif *.bmp *.webp)")
        if not path:
            return
        try:
            payload = Path(path).read_bytes()
        except OSError as exc:
            QMessageBox.critical(self, "Read Error", f"Failed to read image:\n{exc}")
            return
        mime = mimetypes.guess_type(path)[0] or "image/png"
        self._add_attachment("image", encode_data_uri(payload, mime))

    def _on_toggle_record(self) -> None:
        if self.recorder.recording:
            self.recorder.stop()
            self.record_btn.setText("Record")
        else:
            self.recorder.start()
            self.record_btn.setText("Stop")

    def _on_recording_finished(self, data: str) -> None:
        self.record_btn.setText("Record")
        self._add_attachment("audio", data)
        if self._save_when_stopped:
            self._save_when_stopped = False
            self._save_and_accept()

    def _on_record_failed(self, message: str) -> None:
        self.record_btn.setText("Record")
        self._save_when_stopped = False
        QMessageBox.warning(
            self,
            "Recording Error",
            f"Microphone access is required for voice notes.\n{message}",
        )

    def _on_add_doodle(self) -> None:
        dialog = DoodleDialog(self)
        if dialog.exec() == QDialog.Accepted and dialog.data_uri:
            self._add_attachment("doodle", dialog.data_uri)

    def _on_open_attachment(self, item: QListWidgetItem) -> None:
        att_id = item.data(self.ATTACHMENT_ID_ROLE)
        att = next((a for a in self.attachments if a.get("id") == att_id), None)
        if att is None or att.get("type") != "audio":
            return
        try:
            mime, payload = decode_data_uri(str(att.get("data", "")))
        except ValueError:
            logger.warning("Attachment %s has unreadable data", att_id)
            return
        suffix = mimetypes.guess_extension(mime) or ".webm"
        with tempfile.NamedTemporaryFile(prefix="notenest_", suffix=suffix, delete=False) as f:
            f.write(payload)
        playback_file = Path(f.name)
        self._playback_files.append(playback_file)
        if self._player is None:
            self._player = QMediaPlayer(self)
            self._player.setAudioOutput(QAudioOutput(self))
        self._player.setSource(QUrl.fromLocalFile(str(playback_file)))
        self._player.play()

    def _on_remove_attachment(self) -> None:
        item = self.attachment_list.currentItem()
        if item is None:
            return
        att_id = item.data(self.ATTACHMENT_ID_ROLE)
        self.attachments = [a for a in self.attachments if a.get("id") != att_id]
        self._rebuild_attachments()

    def _on_save_clicked(self) -> None:
        if self.recorder.recording:
            # The clip arrives asynchronously once the recorder has stopped.
            self._save_when_stopped = True
            self.recorder.stop()
            return
        self._save_and_accept()

    def _save_and_accept(self) -> None:
        self._on_save(
            new_note(self.title_input.text(), self.body.toHtml(), self.attachments, existing=self.note)
        )
        self.accept()

    def _on_delete_clicked(self) -> None:
        if self.note is not None and self._on_delete(self.note["id"]):
            self.accept()

    def done(self, result: int) -> None:  # type: ignore[override]
        self._save_when_stopped = False
        self.recorder.finished.disconnect(self._on_recording_finished)
        self.recorder.cancel()
        if self._player is not None:
            self._player.stop()
            self._player.setSource(QUrl())
        for path in self._playback_files:
            path.unlink(missing_ok=True)
        self._playback_files.clear()
        super().done(result)


class SettingsDialog(QDialog):
    def __init__(
        self,
        settings: dict[str, Any],
        on_change: Callable[[dict[str, Any]], None],
        on_backup: Callable[[], None],
        on_restore: Callable[[], bool],
        parent: Optional[QWidget] = None,
    ) -> None:
        super().__init__(parent)
        self.setWindowTitle("Settings")
        self.setModal(True)
        self.settings = dict(settings)
        self._on_change = on_change
        self._on_restore = on_restore

        self.dark_check = QCheckBox("Dark Mode")
        self.dark_check.setChecked(self.settings.get("theme") == "dark")

        self.accent_combo = QComboBox()
        for name in ACCENT_COLORS:
            self.accent_combo.addItem(name.capitalize(), name)
        self.accent_combo.setCurrentIndex(ACCENT_COLORS.index(self.settings.get("accentColor", "yellow")))

        self.font_combo = QComboBox()
        self.font_combo.addItem("Small", "sm")
        self.font_combo.addItem("Base", "base")
        self.font_combo.addItem("Large", "lg")
        idx = {"sm": 0, "base": 1, "lg": 2}.get(self.settings.get("fontSize", DEFAULT_FONT_SIZE), 1)
        self.font_combo.setCurrentIndex(idx)

        self.keyboard_check = QCheckBox("Halloween Keyboard")
        self.keyboard_check.setChecked(bool(self.settings.get("halloweenKeyboard")))

        self.lock_check = QCheckBox("Enable App Lock")
        self.lock_check.setChecked(bool(self.settings.get("lockEnabled")))
        self.pin_input = QLineEdit(self.settings.get("lockPin") or "")
        self.pin_input.setPlaceholderText("Enter 4-6 digit PIN")
        self.pin_input.setEchoMode(QLineEdit.Password)
        self.pin_visible_btn = QPushButton("Show")
        self.pin_visible_btn.setCheckable(True)
        pin_row = QHBoxLayout()
        pin_row.addWidget(self.pin_input, 1)
        pin_row.addWidget(self.pin_visible_btn)
        self.pin_row = QWidget()
        self.pin_row.setLayout(pin_row)
        self.pin_row.setVisible(self.lock_check.isChecked())

        backup_btn = QPushButton("Backup to File")
        restore_btn = QPushButton("Restore")
        sync_btn = QPushButton("Sync with Google Drive")
        sync_btn.setEnabled(False)
        data_row = QHBoxLayout()
        data_row.addWidget(backup_btn)
        data_row.addWidget(restore_btn)

        close_btn = QPushButton("Close")

        form = QFormLayout()
        form.addRow(self.dark_check)
        form.addRow("Accent Color", self.accent_combo)
        form.addRow("Font Size", self.font_combo)
        form.addRow(self.keyboard_check)
        form.addRow(self.lock_check)
        form.addRow(self.pin_row)

        root = QVBoxLayout()
        root.addLayout(form)
        root.addWidget(QLabel("Data Management"))
        root.addLayout(data_row)
        root.addWidget(sync_btn)
        root.addWidget(close_btn)
        self.setLayout(root)

        self.dark_check.toggled.connect(lambda on: self._set("theme", "dark" if on else "light"))
        self.accent_combo.currentIndexChanged.connect(lambda: self._set("accentColor", str(self.accent_combo.currentData())))
        self.font_combo.currentIndexChanged.connect(lambda: self._set("fontSize", str(self.font_combo.currentData())))
        self.keyboard_check.toggled.connect(lambda on: self._set("halloweenKeyboard", on))
        self.lock_check.toggled.connect(self._on_lock_toggled)
        self.pin_input.textEdited.connect(self._on_pin_edited)
        self.pin_visible_btn.toggled.connect(self._on_pin_visibility)
        backup_btn.clicked.connect(on_backup)
        restore_btn.clicked.connect(self._on_restore_clicked)
        close_btn.clicked.connect(self.accept)

    def _set(self, key: str, value: Any) -> None:
        self.settings = {**self.settings, key: value}
        self._on_change(self.settings)

    def _on_lock_toggled(self, on: bool) -> None:
        self.pin_row.setVisible(on)
        self._set("lockEnabled", on)

    def _on_pin_edited(self, text: str) -> None:
        pin = sanitize_pin(text)
        if pin != text:
            self.pin_input.setText(pin)
        self._set("lockPin", pin or None)

    def _on_pin_visibility(self, visible: bool) -> None:
        self.pin_input.setEchoMode(QLineEdit.Normal if visible else QLineEdit.Password)
        self.pin_visible_btn.setText("Hide" if visible else "Show")

    def _on_restore_clicked(self) -> None:
        if self._on_restore():
            self.accept()


class TasksPanel(QWidget):
    TASK_ID_ROLE = Qt.UserRole + 1
    SUBTASK_ID_ROLE = Qt.UserRole + 2

    def __init__(self, store: AppStore, completed: bool, keyboard_family: str = "", parent: Optional[QWidget] = None) -> None:
        super().__init__(parent)
        self.store = store
        self.completed = completed
        self._suppress_item_changed = False

        self.tree = QTreeWidget()
        self.tree.setColumnCount(1)
        self.tree.setHeaderHidden(True)
        self.tree.setIndentation(20)
        self.tree.setUniformRowHeights(True)
        self.tree.itemChanged.connect(self._on_item_changed)

        self.enter_shortcut = QShortcut(QKeySequence("Return"), self.tree)
        self.enter_shortcut.activated.connect(self._add_subtask_to_current)
        self.numpad_enter_shortcut = QShortcut(QKeySequence("Enter"), self.tree)
        self.numpad_enter_shortcut.activated.connect(self._add_subtask_to_current)
        self.delete_shortcut = QShortcut(QKeySequence("Delete"), self.tree)
        self.delete_shortcut.activated.connect(self._delete_current)

        root = QVBoxLayout()
        root.setContentsMargins(0, 0, 0, 0)
        root.addWidget(self.tree, 1)

        self.task_input: Optional[QLineEdit] = None
        self.keyboard: Optional[HalloweenKeyboard] = None
        if not completed:
            self.task_input = QLineEdit()
            self.task_input.setPlaceholderText("Add a new task...")
            self.task_input.returnPressed.connect(self._add_task)
            add_btn = QPushButton("Add")
            add_btn.setObjectName("accent")
            add_btn.clicked.connect(self._add_task)
            row = QHBoxLayout()
            row.addWidget(self.task_input, 1)
            row.addWidget(add_btn)
            root.addLayout(row)
            self.keyboard = HalloweenKeyboard(keyboard_family)
            self.keyboard.hide()
            root.addWidget(self.keyboard)
            self.keyboard.key_pressed.connect(lambda key: self.task_input.insert(key))
            self.keyboard.backspace.connect(self.task_input.backspace)
            self.keyboard.enter.connect(self._add_task)

        hint = QLabel("Enter on a task adds a subtask. Delete removes the task.")
        hint.setObjectName("hint")
        root.addWidget(hint)
        self.setLayout(root)

    def update_keyboard(self, enabled: bool, focus_widget: Optional[QWidget]) -> None:
        if self.keyboard is not None:
            self.keyboard.setVisible(enabled and focus_widget is self.task_input)

    def set_tasks(self, tasks: list[dict[str, Any]]) -> None:
        self._suppress_item_changed = True
        self.tree.clear()
        for task in tasks:
            self.tree.addTopLevelItem(self._build_item(task))
        self.tree.expandAll()
        self._suppress_item_changed = False

    def _build_item(self, task: dict[str, Any]) -> QTreeWidgetItem:
        item = QTreeWidgetItem([str(task.get("text", ""))])
        item.setFlags(item.flags() | Qt.ItemIsUserCheckable | Qt.ItemIsSelectable | Qt.ItemIsEnabled)
        item.setData(0, self.TASK_ID_ROLE, task.get("id", ""))
        item.setCheckState(0, Qt.Checked if task.get("completed") else Qt.Unchecked)
        self._apply_item_visual(item, bool(task.get("completed")))
        for sub in task.get("subtasks", []):
            child = QTreeWidgetItem([str(sub.get("text", ""))])
            child.setFlags(child.flags() | Qt.ItemIsUserCheckable | Qt.ItemIsSelectable | Qt.ItemIsEnabled)
            child.setData(0, self.TASK_ID_ROLE, task.get("id", ""))
            child.setData(0, self.SUBTASK_ID_ROLE, sub.get("id", ""))
            child.setCheckState(0, Qt.Checked if sub.get("completed") else Qt.Unchecked)
            self._apply_item_visual(child, bool(sub.get("completed")))
            item.addChild(child)
        return item

    def _apply_item_visual(self, item: QTreeWidgetItem, completed: bool) -> None:
        font = item.font(0)
        font.setStrikeOut(completed)
        item.setFont(0, font)
        if completed:
            item.setForeground(0, QColor("#7f878d"))

    def _find_task(self, task_id: str) -> Optional[dict[str, Any]]:
        return next((t for t in self.store.tasks if t.get("id") == task_id), None)

    def _on_item_changed(self, item: QTreeWidgetItem, column: int) -> None:
        if self._suppress_item_changed or column != 0:
            return
        task = self._find_task(str(item.data(0, self.TASK_ID_ROLE)))
        if task is None:
            return
        checked = item.checkState(0) == Qt.Checked
        subtask_id = item.data(0, self.SUBTASK_ID_ROLE)
        if subtask_id:
            subtasks = [
                {**st, "completed": checked} if st.get("id") == subtask_id else st
                for st in task.get("subtasks", [])
            ]
            updated = {**task, "subtasks": subtasks, "modifiedAt": now_ms()}
        else:
            updated = {**task, "completed": checked, "modifiedAt": now_ms()}
        # Defer: the dispatch rebuilds this tree while Qt is still inside the signal.
        QTimer.singleShot(0, lambda: self.store.dispatch(actions.update_task(updated)))

    def _add_task(self) -> None:
        text = self.task_input.text().strip()
        if not text:
            return
        self.store.dispatch(actions.add_task(text))
        self.task_input.clear()

    def _current_task(self) -> Optional[dict[str, Any]]:
        item = self.tree.currentItem()
        if item is None:
            return None
        return self._find_task(str(item.data(0, self.TASK_ID_ROLE)))

    def _add_subtask_to_current(self) -> None:
        task = self._current_task()
        if task is None:
            return
        text, ok = QInputDialog.getText(self, "Add Subtask", "Subtask:")
        if not ok or not text.strip():
            return
        subtasks = [*task.get("subtasks", []), new_subtask(text.strip())]
        self.store.dispatch(actions.update_task({**task, "subtasks": subtasks}))

    def _delete_current(self) -> None:
        task = self._current_task()
        if task is None:
            return
        answer = QMessageBox.question(
            self,
            "Delete Task",
            f'Delete "{task.get("text", "")}" and its subtasks?',
            QMessageBox.Yes | QMessageBox.No,
            QMessageBox.No,
        )
        if answer == QMessageBox.Yes:
            self.store.dispatch(actions.delete_task(task["id"]))


class NoteNestWindow(QMainWindow):
    NOTE_ID_ROLE = Qt.UserRole + 1
    MAP_ID_ROLE = Qt.UserRole + 2

    def __init__(self, store: AppStore, storage: LocalStorage, keyboard_family: str = "") -> None:
        super().__init__()
        self.store = store
        self.storage = storage
        self.sort_method = "modifiedAt"

        self.setWindowTitle("NoteNest")
        self.resize(980, 700)

        self.search_input = QLineEdit()
        self.search_input.setPlaceholderText("Search...")
        self.search_input.textChanged.connect(lambda _text: self._refresh_views())
        self.settings_btn = QPushButton("Settings")
        self.settings_btn.clicked.connect(self._open_settings)
        header = QHBoxLayout()
        header.addWidget(self.search_input, 1)
        header.addWidget(self.settings_btn)

        self.tabs = QTabWidget()
        self.tabs.addTab(self._build_notes_tab(), "Notes")
        self.pending_panel = TasksPanel(store, completed=False, keyboard_family=keyboard_family)
        self.completed_panel = TasksPanel(store, completed=True)
        self.tabs.addTab(self.pending_panel, "Tasks")
        self.tabs.addTab(self.completed_panel, "Completed")
        self.tabs.addTab(self._build_mind_maps_tab(), "Mind Map")

        body = QVBoxLayout()
        body.addLayout(header)
        body.addWidget(self.tabs, 1)
        main_page = QWidget()
        main_page.setLayout(body)

        self.stack = QStackedWidget()
        self.stack.addWidget(main_page)
        self.setCentralWidget(self.stack)
        self.lock_screen: Optional[LockScreen] = None

        self.store.subscribe(self._on_state_changed)
        app = QApplication.instance()
        if app is not None:
            app.focusChanged.connect(self._on_focus_changed)

        self._apply_appearance()
        self._refresh_views()
        if should_lock(self.store.settings):
            self._show_lock_screen()

    def _build_notes_tab(self) -> QWidget:
        title = QLabel("Notes")
        title.setObjectName("title")
        self.sort_combo = QComboBox()
        for label, method in NOTE_SORT_LABELS:
            self.sort_combo.addItem(label, method)
        self.sort_combo.currentIndexChanged.connect(self._on_sort_changed)
        new_btn = QPushButton("New Note")
        new_btn.setObjectName("accent")
        new_btn.clicked.connect(lambda: self._open_note_editor(None))

        top = QHBoxLayout()
        top.addWidget(title)
        top.addStretch(1)
        top.addWidget(self.sort_combo)
        top.addWidget(new_btn)

        self.notes_list = QListWidget()
        self.notes_list.itemActivated.connect(self._on_note_activated)

        layout = QVBoxLayout()
        layout.addLayout(top)
        layout.addWidget(self.notes_list, 1)
        page = QWidget()
        page.setLayout(layout)
        return page

    def _build_mind_maps_tab(self) -> QWidget:
        title = QLabel("Mind Maps")
        title.setObjectName("title")
        new_btn = QPushButton("New Mind Map")
        new_btn.setObjectName("accent")
        new_btn.clicked.connect(self._create_mind_map)
        delete_btn = QPushButton("Delete")
        delete_btn.clicked.connect(self._delete_current_mind_map)

        top = QHBoxLayout()
        top.addWidget(title)
        top.addStretch(1)
        top.addWidget(delete_btn)
        top.addWidget(new_btn)

        self.maps_list = QListWidget()
        self.maps_list.itemActivated.connect(lambda item: self._open_mind_map(str(item.data(self.MAP_ID_ROLE))))

        layout = QVBoxLayout()
        layout.addLayout(top)
        layout.addWidget(self.maps_list, 1)
        page = QWidget()
        page.setLayout(layout)
        return page

    def _on_state_changed(self, state: dict[str, Any]) -> None:
        if not save_state(self.storage, state):
            logger.warning("State kept in memory only; the last write failed")
        self._apply_appearance()
        self._refresh_views()

    def _refresh_views(self) -> None:
        term = self.search_input.text()

        self.notes_list.clear()
        for note in sort_notes(filter_by_text(self.store.notes, "title", term), self.sort_method):
            label = f"{note.get('title') or 'Untitled Note'}\n{format_date(int(note.get('modifiedAt', 0)))}"
            item = QListWidgetItem(label)
            item.setData(self.NOTE_ID_ROLE, note.get("id"))
            self.notes_list.addItem(item)

        pending, done = split_tasks(filter_by_text(self.store.tasks, "text", term))
        self.pending_panel.set_tasks(pending)
        self.completed_panel.set_tasks(done)

        self.maps_list.clear()
        for mind_map in sort_mind_maps(filter_by_text(self.store.mind_maps, "title", term)):
            item = QListWidgetItem(f"{mind_map.get('title', '')}\n{format_date(int(mind_map.get('modifiedAt', 0)))}")
            item.setData(self.MAP_ID_ROLE, mind_map.get("id"))
            self.maps_list.addItem(item)

    def _apply_appearance(self) -> None:
        settings = self.store.settings
        app = QApplication.instance()
        if app is None:
            return
        app.setStyleSheet(build_style_sheet(settings.get("theme", "light"), settings.get("accentColor", "yellow")))
        font = app.font()
        font.setPointSize(FONT_SIZE_MAP.get(settings.get("fontSize", DEFAULT_FONT_SIZE), FONT_SIZE_MAP[DEFAULT_FONT_SIZE]))
        app.setFont(font)
        self.pending_panel.update_keyboard(bool(settings.get("halloweenKeyboard")), app.focusWidget())

    def _on_focus_changed(self, _old: Optional[QWidget], new: Optional[QWidget]) -> None:
        self.pending_panel.update_keyboard(bool(self.store.settings.get("halloweenKeyboard")), new)

    def _show_lock_screen(self) -> None:
        self.lock_screen = LockScreen(str(self.store.settings.get("lockPin")))
        self.lock_screen.unlocked.connect(self._unlock)
        self.stack.addWidget(self.lock_screen)
        self.stack.setCurrentWidget(self.lock_screen)
        self.lock_screen.setFocus()

    def _unlock(self) -> None:
        if self.lock_screen is not None:
            self.stack.removeWidget(self.lock_screen)
            self.lock_screen.deleteLater()
            self.lock_screen = None
        self.stack.setCurrentIndex(0)
        logger.info("Unlocked")

    def _on_sort_changed(self) -> None:
        self.sort_method = str(self.sort_combo.currentData())
        self._refresh_views()

    def _on_note_activated(self, item: QListWidgetItem) -> None:
        note_id = item.data(self.NOTE_ID_ROLE)
        note = next((n for n in self.store.notes if n.get("id") == note_id), None)
        if note is not None:
            self._open_note_editor(note)

    def _open_note_editor(self, note: Optional[dict[str, Any]]) -> None:
        editor = NoteEditor(
            note,
            on_save=lambda saved: self.store.dispatch(actions.save_note(saved)),
            on_delete=self._confirm_delete_note,
            parent=self,
        )
        editor.exec()

    def _confirm_delete_note(self, note_id: str) -> bool:
        answer = QMessageBox.question(
            self,
            "Delete Note",
            "Are you sure you want to delete this note?",
            QMessageBox.Yes | QMessageBox.No,
            QMessageBox.No,
        )
        if answer != QMessageBox.Yes:
            return False
        self.store.dispatch(actions.delete_note(note_id))
        return True

    def _create_mind_map(self) -> None:
        title, ok = QInputDialog.getText(self, "New Mind Map", "Enter new Mind Map title:", text="New Mind Map")
        if not ok or not title:
            return
        action = actions.create_mind_map(title)
        self.store.dispatch(action)
        self._open_mind_map(action["payload"]["id"])

    def _open_mind_map(self, map_id: str) -> None:
        mind_map = self.store.find_mind_map(map_id)
        if mind_map is None:
            return
        settings = self.store.settings
        window = MindMapWindow(
            mind_map,
            on_save=lambda updated: self.store.dispatch(actions.update_mind_map(updated)),
            accent=ACCENT_HEX.get(settings.get("accentColor", "yellow"), ACCENT_HEX["yellow"]),
            dark=settings.get("theme") == "dark",
            parent=self,
        )
        window.exec()

    def _delete_current_mind_map(self) -> None:
        item = self.maps_list.currentItem()
        if item is None:
            return
        mind_map = self.store.find_mind_map(str(item.data(self.MAP_ID_ROLE)))
        if mind_map is None:
            return
        answer = QMessageBox.question(
            self,
            "Delete Mind Map",
            f'Are you sure you want to delete "{mind_map.get("title", "")}"?',
            QMessageBox.Yes | QMessageBox.No,
            QMessageBox.No,
        )
        if answer == QMessageBox.Yes:
            self.store.dispatch(actions.delete_mind_map(mind_map["id"]))

    def _open_settings(self) -> None:
        dialog = SettingsDialog(
            self.store.settings,
            on_change=lambda settings: self.store.dispatch(actions.update_settings(settings)),
            on_backup=self._backup,
            on_restore=self._restore,
            parent=self,
        )
        dialog.exec()

    def _backup(self) -> None:
        path, _ = QFileDialog.getSaveFileName(self, "Backup to File", BACKUP_FILE_NAME, "JSON (*.json)")
        if not path:
            return
        try:
            export_backup(self.store.state, Path(path))
        except OSError as exc:
            logger.exception("Backup failed")
            QMessageBox.critical(self, "Write Error", f"Failed to write backup:\n{exc}")

    def _restore(self) -> bool:
        path, _ = QFileDialog.getOpenFileName(self, "Restore", "", "JSON (*.json)")
        if not path:
            return False
        try:
            restored = import_backup(Path(path))
        except InvalidBackupError as exc:
            logger.warning("Rejected backup %s: %s", path, exc)
            QMessageBox.warning(self, "Restore", str(exc))
            return False
        self.store.dispatch(actions.set_state(restored))
        QMessageBox.information(self, "Restore", "Restore successful!")
        return True


def load_keyboard_font(fonts_dir: Path) -> str:
    font_path = fonts_dir / "Creepster-Regular.ttf"
    if not font_path.exists():
        return ""
    font_id = QFontDatabase.addApplicationFont(str(font_path))
    if font_id == -1:
        logger.warning("Could not load %s", font_path)
        return ""
    families = QFontDatabase.applicationFontFamilies(font_id)
    return families[0] if families else ""


def storage_base_dir() -> Path:
    if getattr(sys, "frozen", False):
        return Path(sys.executable).resolve().parent
    return Path(__file__).resolve().parent


def resource_base_dir() -> Path:
    if getattr(sys, "frozen", False):
        meipass = getattr(sys, "_MEIPASS", "")
        if meipass:
            return Path(meipass).resolve()
        return Path(sys.executable).resolve().parent
    return Path(__file__).resolve().parent


def data_dir() -> Path:
    configured = os.environ.get("NOTENEST_DATA_DIR", "")
    if configured:
        return Path(configured).expanduser()
    return storage_base_dir() / "data"


def configure_logging(log_dir: Path) -> None:
    level = os.environ.get("NOTENEST_LOG_LEVEL", "INFO").upper()
    log_dir.mkdir(parents=True, exist_ok=True)
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        handlers=[
            logging.FileHandler(str(log_dir / "notenest.log"), encoding="utf-8"),
            logging.StreamHandler(),
        ],
    )


def main() -> None:
    base = data_dir()
    configure_logging(base)
    storage = LocalStorage(base)
    store = AppStore(load_state(storage) or default_state())
    logger.info("Loaded state from %s", base)

    app = QApplication(sys.argv)
    keyboard_family = load_keyboard_font(resource_base_dir() / "fonts")
    window = NoteNestWindow(store, storage, keyboard_family)
    window.show()
    sys.exit(app.exec())


if __name__ == "__main__":
    main()
