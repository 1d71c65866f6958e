"""Key/value stores for small markers that survive across page loads.

The datalayer only needs ``get``/``set``/``remove`` of short string values
with an optional max age (the test-mode marker). Two stores are provided:
an in-memory one for tests and single-process use, and a JSON file store.
"""

from __future__ import annotations

import json
import logging
import time
from pathlib import Path
from typing import Optional, Protocol

logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str, max_age: Optional[int] = None) -> None: ...

    def remove(self, key: str) -> None: ...


class MemoryStore:
    """Dict-backed store. Entries with a max age expire lazily on read."""

    def __init__(self) -> None:
        self._entries: dict[str, tuple[str, Optional[float]]] = {}

    def get(self, key: str) -> Optional[str]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and expires_at <= time.time():
            del self._entries[key]
            return None
        return value

    def set(self, key: str, value: str, max_age: Optional[int] = None) -> None:
        expires_at = time.time() + max_age if max_age is not None else None
        self._entries[key] = (value, expires_at)

    def remove(self, key: str) -> None:
        self._entries.pop(key, None)


class JsonFileStore:
    """Store persisted as a single JSON document on disk."""

    def __init__(self, path: Path):
        """Initialize the store.

        Args:
            path: JSON file to read and write. Parent directories are created.
        """
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._entries: dict[str, dict] = {}
        self._load()

    def _load(self) -> None:
        if not self.path.exists():
            return
        try:
            with open(self.path) as f:
                self._entries = json.load(f)
            logger.debug(f"Loaded {len(self._entries)} stored markers from {self.path}")
        except (OSError, ValueError) as e:
            logger.error(f"Failed to load store {self.path}: {e}")
            self._entries = {}

    def _save(self) -> None:
        with open(self.path, "w") as f:
            json.dump(self._entries, f, indent=2)

    def get(self, key: str) -> Optional[str]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at = entry.get("expires_at")
        if expires_at is not None and expires_at <= time.time():
            self.remove(key)
            return None
        return entry.get("value")

    def set(self, key: str, value: str, max_age: Optional[int] = None) -> None:
        self._entries[key] = {
            "value": value,
            "expires_at": time.time() + max_age if max_age is not None else None,
        }
        self._save()

    def remove(self, key: str) -> None:
        if self._entries.pop(key, None) is not None:
            self._save()
