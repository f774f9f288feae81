"""Durable storage of import progress keyed by workspace and file name."""
from __future__ import annotations

import dataclasses
import hashlib
import json
import logging
import os
import tempfile
import time
from datetime import timedelta
from pathlib import Path
from typing import Callable, Dict, Optional, Protocol

from .errors import PersistenceError
from .models import ImportCheckpoint

LOGGER = logging.getLogger(__name__)

KEY_PREFIX = "csv_upload_progress"
DEFAULT_FRESHNESS = timedelta(days=7)


def storage_key(workspace_id: str, file_name: str) -> str:
    """Derive the storage key for a workspace/file pair.

    Both parts are hashed together as a JSON array so that no choice of
    separator characters in either value can make two pairs collide.
    """

    digest = hashlib.sha256(json.dumps([workspace_id, file_name]).encode("utf-8")).hexdigest()
    return f"{KEY_PREFIX}:{digest}"


class KeyValueStorage(Protocol):
    """String key/value storage with localStorage-like semantics."""

    def get_item(self, key: str) -> Optional[str]:  # pragma: no cover - runtime protocol
        ...

    def set_item(self, key: str, value: str) -> None:  # pragma: no cover - runtime protocol
        ...

    def remove_item(self, key: str) -> None:  # pragma: no cover - runtime protocol
        ...


class MemoryStorage:
    """Process-local storage, used for tests and throwaway runs."""

    def __init__(self) -> None:
        self._items: Dict[str, str] = {}

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)

    def __len__(self) -> int:
        return len(self._items)


class FileStorage:
    """Stores each key as a JSON file inside ``directory``."""

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory).expanduser()

    def _path_for(self, key: str) -> Path:
        return self.directory / f"{key.replace(':', '_')}.json"

    def get_item(self, key: str) -> Optional[str]:
        path = self._path_for(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as exc:
            raise PersistenceError(f"Could not read {path}: {exc}") from exc

    def set_item(self, key: str, value: str) -> None:
        path = self._path_for(key)
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.directory, prefix=".tmp-", suffix=".json")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    handle.write(value)
                os.replace(tmp_name, path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as exc:
            raise PersistenceError(f"Could not write {path}: {exc}") from exc

    def remove_item(self, key: str) -> None:
        path = self._path_for(key)
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            raise PersistenceError(f"Could not delete {path}: {exc}") from exc


class CheckpointStore:
    """Saves, validates and clears :class:`ImportCheckpoint` snapshots.

    Nothing here raises to the caller. Write failures are logged, and
    anything unreadable, stale or out of bounds loads as ``None``.
    """

    def __init__(
        self,
        storage: KeyValueStorage,
        *,
        freshness: timedelta = DEFAULT_FRESHNESS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._storage = storage
        self._freshness_ms = int(freshness.total_seconds() * 1000)
        self._clock = clock

    def now_millis(self) -> int:
        return int(self._clock() * 1000)

    def save(self, workspace_id: str, file_name: str, checkpoint: ImportCheckpoint) -> bool:
        """Persist ``checkpoint``, stamping it with the current time. Returns success."""

        snapshot = dataclasses.replace(checkpoint, saved_at_epoch_millis=self.now_millis())
        try:
            self._storage.set_item(storage_key(workspace_id, file_name), json.dumps(snapshot.to_dict()))
        except (PersistenceError, TypeError, ValueError):
            LOGGER.exception("Error saving progress for %s in workspace %s", file_name, workspace_id)
            return False
        LOGGER.debug(
            "Saved progress for %s: row %s/%s",
            file_name,
            snapshot.current_row_index,
            snapshot.total_rows,
        )
        return True

    def load(self, workspace_id: str, file_name: str) -> Optional[ImportCheckpoint]:
        try:
            raw = self._storage.get_item(storage_key(workspace_id, file_name))
        except PersistenceError:
            LOGGER.exception("Error checking for saved progress for %s", file_name)
            return None
        if raw is None:
            return None

        try:
            checkpoint = ImportCheckpoint.from_dict(json.loads(raw))
        except (ValueError, TypeError) as exc:
            LOGGER.warning("Discarding malformed saved progress for %s: %s", file_name, exc)
            return None

        if checkpoint.file_name != file_name:
            LOGGER.warning("Discarding saved progress recorded for a different file (%s)", checkpoint.file_name)
            return None
        if not 0 <= checkpoint.current_row_index < checkpoint.total_rows:
            LOGGER.info(
                "Discarding saved progress for %s: row %s outside [0, %s)",
                file_name,
                checkpoint.current_row_index,
                checkpoint.total_rows,
            )
            return None
        if self.now_millis() - checkpoint.saved_at_epoch_millis >= self._freshness_ms:
            LOGGER.info("Discarding stale saved progress for %s", file_name)
            return None
        return checkpoint

    def clear(self, workspace_id: str, file_name: str) -> None:
        try:
            self._storage.remove_item(storage_key(workspace_id, file_name))
        except PersistenceError:
            LOGGER.exception("Error clearing saved progress for %s", file_name)


__all__ = [
    "CheckpointStore",
    "DEFAULT_FRESHNESS",
    "FileStorage",
    "KeyValueStorage",
    "MemoryStorage",
    "storage_key",
]
