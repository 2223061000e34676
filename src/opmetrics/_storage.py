"""Key-value persistence for serialized metric records."""

import json
import re
from collections.abc import Iterable
from pathlib import Path
from typing import Any, Protocol

from beartype import beartype
from loguru import logger

from opmetrics._errors import ProfilingError

_UNSAFE_KEY_CHARS = re.compile(r"[^a-zA-Z0-9_-]")


class MetricsStorage(Protocol):
    """Stores serialized records (MetricRecord.to_dict()) by string key."""

    def store(self, key: str, metrics: dict[str, Any]) -> None: ...

    def retrieve(self, key: str) -> dict[str, Any] | None: ...

    def retrieve_multiple(self, keys: Iterable[str]) -> dict[str, dict[str, Any]]: ...

    def has(self, key: str) -> bool: ...

    def delete(self, key: str) -> None: ...

    def clear(self) -> None: ...


class MemoryStorage:
    """In-process storage, for tests or within one run."""

    def __init__(self) -> None:
        self._storage: dict[str, dict[str, Any]] = {}

    @beartype
    def store(self, key: str, metrics: dict[str, Any]) -> None:
        self._storage[key] = metrics

    def retrieve(self, key: str) -> dict[str, Any] | None:
        return self._storage.get(key)

    def retrieve_multiple(self, keys: Iterable[str]) -> dict[str, dict[str, Any]]:
        return {key: self._storage[key] for key in keys if key in self._storage}

    def has(self, key: str) -> bool:
        return key in self._storage

    def delete(self, key: str) -> None:
        self._storage.pop(key, None)

    def clear(self) -> None:
        self._storage.clear()

    def all(self) -> dict[str, dict[str, Any]]:
        return dict(self._storage)


class FileStorage:
    """One JSON file per key in a directory, with an in-memory read cache.

    Keys are sanitized for the filesystem: anything outside [A-Za-z0-9_-]
    becomes "_", so distinct keys may share a file.

    Args:
        storage_path: Directory for the JSON files (created if missing)
    """

    @beartype
    def __init__(self, storage_path: Path) -> None:
        self.storage_path = storage_path
        self.storage_path.mkdir(parents=True, exist_ok=True)
        self._cache: dict[str, dict[str, Any]] = {}

    def _file_path(self, key: str) -> Path:
        return self.storage_path / f"{_UNSAFE_KEY_CHARS.sub('_', key)}.json"

    @beartype
    def store(self, key: str, metrics: dict[str, Any]) -> None:
        path = self._file_path(key)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(metrics, f, indent=2, ensure_ascii=False)
        self._cache[key] = metrics
        logger.debug(f"[STORAGE] Stored metrics for {key!r} at {path}")

    def retrieve(self, key: str) -> dict[str, Any] | None:
        if key in self._cache:
            return self._cache[key]

        path = self._file_path(key)
        if not path.exists():
            return None

        metrics = json.loads(path.read_text(encoding="utf-8"))
        if not isinstance(metrics, dict):
            raise ProfilingError(f"Invalid JSON in metrics file: {path}")

        self._cache[key] = metrics
        return metrics

    def retrieve_multiple(self, keys: Iterable[str]) -> dict[str, dict[str, Any]]:
        result = {}
        for key in keys:
            metrics = self.retrieve(key)
            if metrics is not None:
                result[key] = metrics
        return result

    def has(self, key: str) -> bool:
        return self._file_path(key).exists()

    def delete(self, key: str) -> None:
        self._file_path(key).unlink(missing_ok=True)
        self._cache.pop(key, None)

    def clear(self) -> None:
        for path in self.storage_path.glob("*.json"):
            path.unlink()
        self._cache.clear()
