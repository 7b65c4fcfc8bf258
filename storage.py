import json
import logging
import os
from pathlib import Path
from typing import Any, Callable, Optional

from records import normalize_settings
from state import SCHEMA_VERSION


logger = logging.getLogger(__name__)

STATE_KEY = "noteNestState"
UNREADABLE_KEY = "noteNestState.unreadable"
BACKUP_FILE_NAME = "notenest_backup.json"
REQUIRED_BACKUP_FIELDS = ("notes", "tasks", "settings")
BACKUP_FIELD_TYPES = {"notes": list, "tasks": list, "mindMaps": list, "settings": dict}


class InvalidBackupError(ValueError):
    pass


class LocalStorage:
    def __init__(self, data_dir: Path) -> None:
        self.data_dir = data_dir
        self.data_dir.mkdir(parents=True, exist_ok=True)

    def _path_for(self, key: str) -> Path:
        return self.data_dir / f"{key}.json"

    def get_item(self, key: str) -> Optional[str]:
        path = self._path_for(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def set_item(self, key: str, value: str) -> None:
        self.atomic_write(self._path_for(key), value)

    def remove_item(self, key: str) -> None:
        path = self._path_for(key)
        if path.exists():
            path.unlink()

    @staticmethod
    def atomic_write(path: Path, text: str) -> None:
        temp_path = path.with_suffix(path.suffix + ".tmp")
        with temp_path.open("w", encoding="utf-8") as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        os.replace(temp_path, path)


def _backfill_mind_maps(state: dict[str, Any]) -> dict[str, Any]:
    out = dict(state)
    if not isinstance(out.get("mindMaps"), list):
        out["mindMaps"] = []
    return out


MIGRATIONS: dict[int, Callable[[dict[str, Any]], dict[str, Any]]] = {
    1: _backfill_mind_maps,
}


def upgrade_state(raw: Any) -> dict[str, Any]:
    """Bring a loaded blob up to SCHEMA_VERSION. Additive and idempotent."""
    if not isinstance(raw, dict):
        raise TypeError(f"state must be dict; got {type(raw).__name__}")

    version = raw.get("schemaVersion")
    if not isinstance(version, int) or version < 1:
        version = 1
    if version > SCHEMA_VERSION:
        raise ValueError(f"Unsupported schemaVersion: {version} (latest={SCHEMA_VERSION})")

    out = dict(raw)
    while version < SCHEMA_VERSION:
        # MIGRATIONS[n] upgrades version n to n + 1.
        out = MIGRATIONS[version](out)
        version += 1
        out["schemaVersion"] = version

    # Fields added later follow the same additive-with-default pattern.
    for field in ("notes", "tasks", "mindMaps"):
        if not isinstance(out.get(field), list):
            out[field] = []
    out["settings"] = normalize_settings(out.get("settings"))
    out["schemaVersion"] = SCHEMA_VERSION
    return out


def serialize_state(state: dict[str, Any], indent: Optional[int] = None) -> str:
    return json.dumps(state, ensure_ascii=False, indent=indent)


def load_state(storage: LocalStorage) -> Optional[dict[str, Any]]:
    try:
        stored = storage.get_item(STATE_KEY)
    except OSError:
        logger.exception("Failed to read %s", STATE_KEY)
        return None
    if stored is None:
        return None
    try:
        return upgrade_state(json.loads(stored))
    except (ValueError, TypeError):
        logger.exception("Failed to load state from %s", STATE_KEY)
        _keep_unreadable(storage, stored)
        return None


def _keep_unreadable(storage: LocalStorage, stored: str) -> None:
    # The next save replaces STATE_KEY, so the rejected blob is set aside first.
    try:
        storage.set_item(UNREADABLE_KEY, stored)
    except OSError:
        logger.exception("Failed to keep unreadable state under %s", UNREADABLE_KEY)
    else:
        logger.warning("Unreadable state kept under %s", UNREADABLE_KEY)


def save_state(storage: LocalStorage, state: dict[str, Any]) -> bool:
    try:
        storage.set_item(STATE_KEY, serialize_state(state))
        return True
    except (OSError, TypeError, ValueError):
        logger.exception("Failed to save state to %s", STATE_KEY)
        return False


def export_backup(state: dict[str, Any], path: Path) -> None:
    LocalStorage.atomic_write(path, serialize_state(state, indent=2))
    logger.info("Exported backup to %s", path)


def parse_backup(text: str) -> dict[str, Any]:
    try:
        raw = json.loads(text)
    except ValueError as exc:
        raise InvalidBackupError("Failed to parse backup file.") from exc
    if not isinstance(raw, dict):
        raise InvalidBackupError("Invalid backup file.")
    missing = [field for field in REQUIRED_BACKUP_FIELDS if raw.get(field) is None]
    if missing:
        raise InvalidBackupError(f"Invalid backup file: missing {', '.join(missing)}.")
    malformed = [
        field
        for field, kind in BACKUP_FIELD_TYPES.items()
        if raw.get(field) is not None and not isinstance(raw[field], kind)
    ]
    if malformed:
        raise InvalidBackupError(f"Invalid backup file: malformed {', '.join(malformed)}.")
    try:
        return upgrade_state(raw)
    except (ValueError, TypeError) as exc:
        raise InvalidBackupError(f"Invalid backup file: {exc}") from exc


def import_backup(path: Path) -> dict[str, Any]:
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise InvalidBackupError(f"Could not read {path.name}: {exc}") from exc
    state = parse_backup(text)
    logger.info("Imported backup from %s", path)
    return state
