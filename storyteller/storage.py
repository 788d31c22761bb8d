"""Browser-style key/value storage for session and persistent data."""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path

__all__ = ["PREFIX", "StorageError", "KeyValueStorage", "SessionStorage", "LocalStorage"]

PREFIX = "story-teller_"


class StorageError(Exception):
    """Raised when a storage area cannot be read or written."""


class KeyValueStorage:
    """A map of strings with the Web Storage operations."""

    area = "storage"

    def __init__(self, items: dict[str, str] | None = None):
        self._items: dict[str, str] = dict(items or {})

    def __contains__(self, key: object) -> bool:
        return key in self._items

    def __len__(self) -> int:
        return len(self._items)

    def _commit(self) -> None:
        """Persist the current items; in-memory areas have nothing to do."""

    def get(self, key: str) -> str | None:
        return self._items.get(key)

    def set(self, key: str, value: str) -> None:
        previous = dict(self._items)
        self._items[key] = value
        try:
            self._commit()
        except OSError as exc:
            self._items = previous
            raise StorageError(f"Failed to set item in {self.area}") from exc

    def remove(self, key: str) -> None:
        if key not in self._items:
            return
        previous = dict(self._items)
        del self._items[key]
        try:
            self._commit()
        except OSError as exc:
            self._items = previous
            raise StorageError(f"Failed to remove item from {self.area}") from exc

    def get_all_keys(self) -> list[str]:
        """Keys that belong to the application, in insertion order."""
        return [key for key in self._items if key.startswith(PREFIX)]

    def has_key_starting_with(self, prefix: str) -> bool:
        return any(key.startswith(prefix) for key in self.get_all_keys())


class SessionStorage(KeyValueStorage):
    """Storage that lives only as long as the process."""

    area = "sessionStorage"


class LocalStorage(KeyValueStorage):
    """Storage kept in a JSON file when a path is given."""

    area = "localStorage"

    def __init__(self, path: str | os.PathLike | None = None):
        self.path = Path(path) if path is not None else None
        super().__init__(self._load())

    def _load(self) -> dict[str, str]:
        if self.path is None or not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise StorageError(f"Failed to access {self.area}") from exc
        if not isinstance(data, dict) or not all(
            isinstance(k, str) and isinstance(v, str) for k, v in data.items()
        ):
            raise StorageError(f"Failed to access {self.area}")
        return data

    def _commit(self) -> None:
        if self.path is None:
            return
        descriptor, temp_name = tempfile.mkstemp(dir=self.path.parent, prefix=".storage-")
        try:
            with os.fdopen(descriptor, "w", encoding="utf-8") as handle:
                json.dump(self._items, handle, ensure_ascii=False)
            os.replace(temp_name, self.path)
        except BaseException:
            with _suppress_missing():
                os.unlink(temp_name)
            raise


class _suppress_missing:
    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return exc_type is not None and issubclass(exc_type, FileNotFoundError)