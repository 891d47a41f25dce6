"""Key-value backends for persisted routes and tour progress."""

from __future__ import annotations

import copy
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Protocol

_logger = logging.getLogger(__name__)


class KeyValueBackend(Protocol):
    """Minimal persistent key-value store.

    Values are JSON-compatible structures. Implementations may raise on I/O
    failure; callers treat such failures as a cache miss.
    """

    def get(self, key: str) -> Any | None:
        ...

    def set(self, key: str, value: Any) -> None:
        ...

    def remove(self, key: str) -> None:
        ...

    def keys_with_prefix(self, prefix: str) -> list[str]:
        ...


class MemoryBackend:
    """Process-local backend; values are deep-copied in and out."""

    def __init__(self) -> None:
        self._data: dict[str, Any] = {}

    def get(self, key: str) -> Any | None:
        value = self._data.get(key)
        return copy.deepcopy(value) if value is not None else None

    def set(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def keys_with_prefix(self, prefix: str) -> list[str]:
        return [key for key in self._data if key.startswith(prefix)]

    def __len__(self) -> int:
        return len(self._data)


class JsonFileBackend:
    """All keys in one JSON document, rewritten atomically on every change."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._data: dict[str, Any] | None = None

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> dict[str, Any]:
        if self._data is not None:
            return self._data
        if not self._path.exists():
            self._data = {}
            return self._data
        raw = json.loads(self._path.read_text(encoding="utf-8"))
        if not isinstance(raw, dict):
            raise ValueError(f"{self._path} does not hold a JSON object")
        self._data = raw
        return self._data

    def _flush(self, data: dict[str, Any]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{self._path.name}.", dir=self._path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh, separators=(",", ":"))
            os.replace(tmp_name, self._path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        _logger.debug("Wrote %d keys to %s", len(data), self._path)

    def get(self, key: str) -> Any | None:
        value = self._load().get(key)
        return copy.deepcopy(value) if value is not None else None

    def set(self, key: str, value: Any) -> None:
        data = self._load()
        updated = {**data, key: copy.deepcopy(value)}
        self._flush(updated)
        self._data = updated

    def remove(self, key: str) -> None:
        data = self._load()
        if key not in data:
            return
        updated = {k: v for k, v in data.items() if k != key}
        self._flush(updated)
        self._data = updated

    def keys_with_prefix(self, prefix: str) -> list[str]:
        return [key for key in self._load() if key.startswith(prefix)]
