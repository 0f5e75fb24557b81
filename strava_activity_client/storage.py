"""Key-value stores used to persist tokens and the activity cache.

The client never touches process-wide state; callers inject one of these (or
any object with the same ``get``/``set``/``delete`` methods) at construction.
Values are plain strings; the client serialises them itself.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Dict, Optional, Protocol

LOGGER = logging.getLogger(__name__)

__all__ = ["KeyValueStore", "MemoryStore", "JsonFileStore"]


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


class MemoryStore:
    """In-process store; contents are lost when the process exits."""

    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        self._data: Dict[str, str] = dict(initial or {})
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._data)


class JsonFileStore:
    """Durable store backed by a single JSON object on disk.

    Every write rewrites the file through a temporary sibling and
    ``os.replace`` so readers never observe a partial file. A file that is
    missing or not a JSON object reads as empty.
    """

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self._path = Path(path)
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> Dict[str, str]:
        try:
            raw = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except OSError as exc:
            LOGGER.warning("Failed to read store %s: %s", self._path, exc)
            return {}
        try:
            data = json.loads(raw)
        except ValueError:
            LOGGER.warning("Store %s is not valid JSON; treating as empty", self._path)
            return {}
        if not isinstance(data, dict):
            LOGGER.warning(
                "Store %s has unexpected type %s; treating as empty",
                self._path,
                type(data).__name__,
            )
            return {}
        return {str(key): str(value) for key, value in data.items()}

    def _dump(self, data: Dict[str, str]) -> None:
        directory = self._path.parent
        directory.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self._path.name}.", suffix=".tmp", dir=directory
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(data, handle, sort_keys=True)
            os.replace(tmp_name, self._path)
        except BaseException:
            try:
                os.unlink(tmp_name)
            except OSError:
                pass
            raise

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._load().get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            data = self._load()
            data[key] = value
            self._dump(data)

    def delete(self, key: str) -> None:
        with self._lock:
            data = self._load()
            if key not in data:
                return
            del data[key]
            self._dump(data)
