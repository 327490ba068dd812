"""
Settings store and execution log, both JSON files under the data directory.

The settings file is a flat {key: value} mapping of strings. The execution
log is append-only; entries are never edited.
"""

import json
import threading
from datetime import datetime
from pathlib import Path
from typing import Mapping, Optional

from services.config import RECOMMENDED_SETTINGS


def load_json(filepath: Path, default):
    """Load a JSON file, returning default if it is missing or unreadable."""
    try:
        with open(filepath, "r", encoding="utf-8") as f:
            return json.load(f)
    except (FileNotFoundError, json.JSONDecodeError):
        return default


def save_json(filepath: Path, data) -> None:
    filepath.parent.mkdir(parents=True, exist_ok=True)
    tmp = filepath.with_suffix(filepath.suffix + ".tmp")
    with open(tmp, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, ensure_ascii=False, default=str)
    tmp.replace(filepath)


class SettingsStore:
    """Key-value settings persisted to settings.json."""

    def __init__(self, data_dir: Path):
        self.path = Path(data_dir) / "settings.json"
        self._lock = threading.Lock()

    def get_all(self) -> dict[str, str]:
        data = load_json(self.path, {})
        if not isinstance(data, dict):
            return {}
        return {str(k): str(v) for k, v in data.items()}

    def upsert(self, key: str, value) -> None:
        self.upsert_many({key: value})

    def upsert_many(self, values: Mapping[str, object]) -> dict[str, str]:
        with self._lock:
            settings = self.get_all()
            for key, value in values.items():
                settings[str(key)] = str(value)
            save_json(self.path, settings)
        return settings

    def seed(self) -> list[str]:
        """Write recommended values for keys that are not set yet."""
        with self._lock:
            settings = self.get_all()
            added = [k for k in RECOMMENDED_SETTINGS if k not in settings]
            for key in added:
                settings[key] = RECOMMENDED_SETTINGS[key]
            if added:
                save_json(self.path, settings)
        return added


class ExecutionLog:
    """Append-only log of judgment runs, sends and settings changes."""

    def __init__(self, data_dir: Path):
        self.path = Path(data_dir) / "execution_log.json"
        self._lock = threading.Lock()

    def load(self) -> list[dict]:
        entries = load_json(self.path, [])
        return entries if isinstance(entries, list) else []

    def append(
        self,
        action_type: str,
        status: str = "success",
        executed_by: str = "system",
        target_count: int = 0,
        error_message: Optional[str] = None,
        details: Optional[dict] = None,
    ) -> dict:
        with self._lock:
            entries = self.load()
            max_id = max((e.get("id", 0) for e in entries), default=0)
            entry = {
                "id": max_id + 1,
                "executed_at": datetime.now().isoformat(),
                "action_type": action_type,
                "executed_by": executed_by,
                "target_count": target_count,
                "status": status,
                "error_message": error_message,
                "details": details or {},
            }
            entries.append(entry)
            save_json(self.path, entries)
        return entry

    def recent(self, limit: int = 50) -> list[dict]:
        entries = self.load()
        entries.sort(key=lambda e: (e.get("executed_at", ""), e.get("id", 0)), reverse=True)
        return entries[:limit]
