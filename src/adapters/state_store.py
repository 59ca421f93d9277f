"""
Key/value state adapters (StateStorePort implementations).

JsonFileStateStore persists to a single JSON document, written atomically
(temp file + rename) so a crash never leaves a half-written file.
InMemoryStateStore is used in tests and for ephemeral runs.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


class JsonFileStateStore:
    """JSON file implementation of StateStorePort."""

    def __init__(self, path: str | Path, *, create_dirs: bool = True) -> None:
        self.path = Path(path)
        if create_dirs:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        self._values: dict[str, Any] = self._load()

    def _load(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path) as f:
                data = json.load(f)
        except json.JSONDecodeError:
            logger.warning("State file %s is corrupt; starting empty", self.path)
            return {}
        return data if isinstance(data, dict) else {}

    def _flush(self) -> None:
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp_path, "w") as f:
            json.dump(self._values, f, indent=2, sort_keys=True)
        os.replace(tmp_path, self.path)

    def get(self, key: str, default: Any = None) -> Any:
        return self._values.get(key, default)

    def set_many(self, values: dict[str, Any]) -> None:
        self._values.update(values)
        self._flush()

    def remove(self, keys: tuple[str, ...] | list[str]) -> None:
        changed = False
        for key in keys:
            if key in self._values:
                del self._values[key]
                changed = True
        if changed:
            self._flush()


class InMemoryStateStore:
    """In-memory state store for testing/dev."""

    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self.values: dict[str, Any] = dict(initial or {})

    def get(self, key: str, default: Any = None) -> Any:
        return self.values.get(key, default)

    def set_many(self, values: dict[str, Any]) -> None:
        self.values.update(values)

    def remove(self, keys: tuple[str, ...] | list[str]) -> None:
        for key in keys:
            self.values.pop(key, None)
