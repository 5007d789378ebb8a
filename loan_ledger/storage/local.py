"""Key/value backends for on-device persistence."""

import logging
import os
import tempfile
from pathlib import Path
from typing import Mapping, Protocol

from loan_ledger.exceptions import StorageError

logger = logging.getLogger(__name__)

# Fixed collection keys
LOANS_KEY = "loans"
NOTIFICATIONS_KEY = "notifications"
LAST_SYNC_KEY = "last_sync_time"


class LocalStorage(Protocol):
    """Text blobs keyed by a fixed name, like a browser's localStorage."""

    def get(self, key: str) -> str | None:
        """Get the value stored under ``key``, or None."""
        ...

    def set_many(self, items: Mapping[str, str]) -> None:
        """Store several values; either all become visible or none do."""
        ...

    def delete(self, key: str) -> None:
        """Remove ``key`` if present."""
        ...


class MemoryStorage:
    """Dict-backed storage for tests and embedding hosts."""

    def __init__(self, initial: Mapping[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set_many(self, items: Mapping[str, str]) -> None:
        self._data.update(items)

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return sorted(self._data)


class JsonFileStorage:
    """Store each key as ``<key>.json`` under a directory."""

    def __init__(self, directory: str | Path) -> None:
        """Initialize JSON file storage.

        Parameters
        ----------
        directory : str | Path
            Directory holding one file per key. Created if missing.

        Raises
        ------
        StorageError
            If the directory cannot be created.
        """
        self.directory = Path(directory)
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Cannot create storage directory {self.directory}: {e}") from e

    def _path(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def get(self, key: str) -> str | None:
        path = self._path(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StorageError(f"Cannot read {path}: {e}") from e

    def set_many(self, items: Mapping[str, str]) -> None:
        """Write every value to a temp file first, then move them into place."""
        staged: list[tuple[str, Path]] = []
        try:
            for key, text in items.items():
                fd, tmp_name = tempfile.mkstemp(dir=self.directory, prefix=f".{key}.", suffix=".tmp")
                staged.append((tmp_name, self._path(key)))
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(text)
                    f.flush()
                    os.fsync(f.fileno())
            for tmp_name, target in staged:
                os.replace(tmp_name, target)
        except OSError as e:
            for tmp_name, _ in staged:
                Path(tmp_name).unlink(missing_ok=True)
            raise StorageError(f"Cannot write to {self.directory}: {e}") from e
        logger.debug("Wrote %s to %s", ", ".join(items), self.directory)

    def delete(self, key: str) -> None:
        try:
            self._path(key).unlink(missing_ok=True)
        except OSError as e:
            raise StorageError(f"Cannot delete {key}: {e}") from e
