"""Key-value store implementations."""

import json
import os
from pathlib import Path
from threading import Lock
from typing import Dict, Optional, Union

import structlog

from .base import KeyValueStore

logger = structlog.get_logger()


class InMemoryStore(KeyValueStore):
    """Dict-backed store, scoped to one process."""

    def __init__(self) -> None:
        self._data: Dict[str, str] = {}
        self._lock = Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value

    def remove(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)


class NullStore(KeyValueStore):
    """Store used when no durable storage is available: reads are empty, writes are dropped."""

    def get(self, key: str) -> Optional[str]:
        return None

    def set(self, key: str, value: str) -> None:
        logger.debug("storage_unavailable_write_dropped", key=key)

    def remove(self, key: str) -> None:
        pass


class JsonFileStore(KeyValueStore):
    """
    Store persisted as a single JSON object on disk.

    Every write rewrites the whole file through a temporary file and an
    atomic rename. There is no locking across processes: the last writer wins.
    """

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path)
        self._lock = Lock()
        logger.info("file_store_initialized", path=str(self.path))

    def _load(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.error("file_store_read_failed", path=str(self.path), error=str(e))
            return {}
        if not isinstance(data, dict):
            logger.error("file_store_unexpected_shape", path=str(self.path))
            return {}
        return {k: v for k, v in data.items() if isinstance(v, str)}

    def _dump(self, data: Dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(data), encoding="utf-8")
        os.replace(tmp_path, self.path)

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._load().get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            data = self._load()
            data[key] = value
            self._dump(data)

    def remove(self, key: str) -> None:
        with self._lock:
            data = self._load()
            if data.pop(key, None) is not None:
                self._dump(data)


def create_store(path: Optional[str] = None) -> KeyValueStore:
    """Return a file-backed store for path, or an in-memory one when path is unset."""
    if path:
        return JsonFileStore(path)
    return InMemoryStore()
