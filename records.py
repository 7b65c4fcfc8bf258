import base64
import time
from typing import Any, Optional


THEMES = ("light", "dark")
ACCENT_COLORS = ("yellow", "blue", "green", "pink", "purple")
FONT_SIZES = ("sm", "base", "lg")
ATTACHMENT_TYPES = ("image", "audio", "doodle")

ROOT_NODE_TEXT = "Central Idea"

_last_stamp = 0


def now_ms() -> int:
    """Epoch milliseconds, strictly increasing within the process."""
    global _last_stamp
    stamp = int(time.time() * 1000)
    if stamp <= _last_stamp:
        stamp = _last_stamp + 1
    _last_stamp = stamp
    return stamp


def make_id(prefix: str, stamp: Optional[int] = None) -> str:
    return f"{prefix}_{now_ms() if stamp is None else stamp}"


def default_settings() -> dict[str, Any]:
    return {
        "theme": "light",
        "accentColor": "yellow",
        "fontSize": "base",
        "highPriorityReminders": True,
        "lockEnabled": False,
        "lockPin": "1234",
        "halloweenKeyboard": False,
    }


def normalize_settings(raw: Any) -> dict[str, Any]:
    merged = default_settings()
    if not isinstance(raw, dict):
        return merged
    merged.update(raw)
    if merged.get("theme") not in THEMES:
        merged["theme"] = "light"
    if merged.get("accentColor") not in ACCENT_COLORS:
        merged["accentColor"] = "yellow"
    if merged.get("fontSize") not in FONT_SIZES:
        merged["fontSize"] = "base"
    for flag in ("highPriorityReminders", "lockEnabled", "halloweenKeyboard"):
        merged[flag] = bool(merged.get(flag))
    pin = merged.get("lockPin")
    merged["lockPin"] = str(pin) if pin else None
    return merged


def new_note(
    title: str,
    content: str,
    attachments: Optional[list[dict[str, Any]]] = None,
    existing: Optional[dict[str, Any]] = None,
    now: Optional[int] = None,
) -> dict[str, Any]:
    stamp = now_ms() if now is None else now
    return {
        "id": existing["id"] if existing else make_id("note", stamp),
        "title": title,
        "content": content,
        "attachments": list(attachments or []),
        "folder": existing.get("folder") if existing else None,
        "createdAt": existing["createdAt"] if existing else stamp,
        "modifiedAt": stamp,
    }


def new_attachment(kind: str, data: str) -> dict[str, Any]:
    if kind not in ATTACHMENT_TYPES:
        raise ValueError(f"Unknown attachment type: {kind}")
    return {"id": make_id("att"), "type": kind, "data": data}


def encode_data_uri(payload: bytes, mime: str) -> str:
    return f"data:{mime};base64,{base64.b64encode(payload).decode('ascii')}"


def decode_data_uri(uri: str) -> tuple[str, bytes]:
    header, sep, body = uri.partition(",")
    if not sep or not header.startswith("data:") or not header.endswith(";base64"):
        raise ValueError("Not a base64 data URI")
    mime = header[len("data:") : -len(";base64")]
    return mime, base64.b64decode(body)


def new_task(text: str, task_id: str, now: int) -> dict[str, Any]:
    return {
        "id": task_id,
        "text": text,
        "completed": False,
        "subtasks": [],
        "reminder": None,
        "highPriorityReminder": False,
        "createdAt": now,
        "modifiedAt": now,
    }


def new_subtask(text: str) -> dict[str, Any]:
    return {"id": make_id("sub"), "text": text, "completed": False}


def new_mind_map(title: str, map_id: str, now: int) -> dict[str, Any]:
    root_id = make_id("node", now)
    return {
        "id": map_id,
        "title": title,
        "rootId": root_id,
        "nodes": {
            root_id: {
                "id": root_id,
                "text": ROOT_NODE_TEXT,
                "position": {"x": 0, "y": 0},
                "parentId": None,
            }
        },
        "createdAt": now,
        "modifiedAt": now,
    }
