"""File-backed item and read-state storage."""

import json
import logging
import re
import time
from pathlib import Path
from typing import Any, Optional

from unified_inbox.core.interfaces import ItemStore

logger = logging.getLogger(__name__)

ITEMS_PREFIX = "items-"
UNREAD_PREFIX = "unread-state-"


class FileItemStore(ItemStore):
    """Store per-instance blobs as JSON files in one directory.

    Read and write failures are logged and treated as an empty store, so a
    broken disk degrades to running without a cache.
    """

    def __init__(self, storage_dir: Path) -> None:
        self.storage_dir = storage_dir
        self._ensure_structure()

    def _ensure_structure(self) -> None:
        try:
            self.storage_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.warning("Could not create storage directory %s: %s", self.storage_dir, e)

    def _path(self, prefix: str, instance_id: str) -> Path:
        safe_id = re.sub(r"[^\w.-]", "_", instance_id)
        return self.storage_dir / f"{prefix}{safe_id}.json"

    def _read(self, path: Path) -> Optional[Any]:
        if not path.exists():
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, ValueError) as e:
            logger.warning("Could not read %s: %s", path, e)
            return None

    def _write(self, path: Path, data: Any) -> None:
        tmp_path = path.with_suffix(".tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False, indent=2)
            tmp_path.replace(path)
        except (OSError, TypeError, ValueError) as e:
            logger.warning("Could not write %s: %s", path, e)

    def _remove(self, path: Path) -> None:
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning("Could not remove %s: %s", path, e)

    def load_items(self, instance_id: str) -> Optional[dict[str, Any]]:
        data = self._read(self._path(ITEMS_PREFIX, instance_id))
        return data if isinstance(data, dict) else None

    def save_items(self, instance_id: str, items: dict[str, Any]) -> None:
        data = dict(items)
        data.setdefault("timestamp", int(time.time() * 1000))
        self._write(self._path(ITEMS_PREFIX, instance_id), data)

    def clear_items(self, instance_id: str) -> None:
        self._remove(self._path(ITEMS_PREFIX, instance_id))

    def load_unread_state(self, instance_id: str) -> dict[str, bool]:
        data = self._read(self._path(UNREAD_PREFIX, instance_id))
        if not isinstance(data, dict):
            return {}
        return {str(k): bool(v) for k, v in data.items()}

    def save_unread_state(self, instance_id: str, state: dict[str, bool]) -> None:
        self._write(self._path(UNREAD_PREFIX, instance_id), state)

    def clear_unread_state(self, instance_id: str) -> None:
        self._remove(self._path(UNREAD_PREFIX, instance_id))


class MemoryItemStore(ItemStore):
    """In-process store for tests and cache-less runs."""

    def __init__(self) -> None:
        self.items: dict[str, dict[str, Any]] = {}
        self.unread: dict[str, dict[str, bool]] = {}

    def load_items(self, instance_id: str) -> Optional[dict[str, Any]]:
        blob = self.items.get(instance_id)
        return json.loads(json.dumps(blob)) if blob is not None else None

    def save_items(self, instance_id: str, items: dict[str, Any]) -> None:
        self.items[instance_id] = json.loads(json.dumps(items))

    def clear_items(self, instance_id: str) -> None:
        self.items.pop(instance_id, None)

    def load_unread_state(self, instance_id: str) -> dict[str, bool]:
        return dict(self.unread.get(instance_id, {}))

    def save_unread_state(self, instance_id: str, state: dict[str, bool]) -> None:
        self.unread[instance_id] = dict(state)

    def clear_unread_state(self, instance_id: str) -> None:
        self.unread.pop(instance_id, None)
