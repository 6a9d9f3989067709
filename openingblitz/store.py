"""Key-value byte stores backing session and blunder history.

FileStore keeps one JSON file per key under a data directory and writes
atomically. MemoryStore is the in-process equivalent used by tests and
by callers that do not want history on disk.
"""

from __future__ import annotations

import json
import logging
import os
import shutil
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    def get(self, key: str) -> bytes | None: ...

    def set(self, key: str, value: bytes) -> None: ...

    def delete(self, key: str) -> None: ...


class MemoryStore:
    """Dict-backed store."""

    def __init__(self) -> None:
        self._data: dict[str, bytes] = {}

    def get(self, key: str) -> bytes | None:
        return self._data.get(key)

    def set(self, key: str, value: bytes) -> None:
        self._data[key] = bytes(value)

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class FileStore:
    """One ``<key>.json`` file per key under ``data_dir``."""

    def __init__(self, data_dir: str | Path) -> None:
        self._data_dir = Path(data_dir)

    def _path(self, key: str) -> Path:
        return self._data_dir / f"{key}.json"

    def get(self, key: str) -> bytes | None:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_bytes()

    def set(self, key: str, value: bytes) -> None:
        """Write with temp file + os.replace so readers never see partial data."""
        self._data_dir.mkdir(parents=True, exist_ok=True)
        path = self._path(key)
        tmp_path = path.with_suffix(".tmp")
        tmp_path.write_bytes(value)
        os.replace(tmp_path, path)

    def delete(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)

    def backup(self, key: str) -> None:
        """Copy a key's file aside as ``.bak``."""
        path = self._path(key)
        if path.exists():
            shutil.copy2(path, path.with_suffix(".bak"))


def load_versioned_list(store: KeyValueStore, key: str, version: int) -> list[dict]:
    """Read ``{"version": n, key: [...]}`` from the store.

    Absent, unreadable or corrupt data yields an empty list. Corrupt
    files are backed up when the store supports it.
    """
    try:
        raw = store.get(key)
    except OSError as exc:
        logger.warning("Could not read %s: %s", key, exc)
        return []
    if raw is None:
        return []

    try:
        data = json.loads(raw.decode("utf-8"))
        if not isinstance(data, dict) or not isinstance(data.get(key), list):
            raise ValueError(f"{key} document must hold a JSON array under {key!r}")
        if data.get("version") != version:
            logger.info("Reading %s written with version %s", key, data.get("version"))
        return [item for item in data[key] if isinstance(item, dict)]
    except (UnicodeDecodeError, ValueError) as exc:
        logger.warning("Discarding corrupt %s data: %s", key, exc)
        backup = getattr(store, "backup", None)
        if backup is not None:
            try:
                backup(key)
            except OSError:
                logger.warning("Could not back up corrupt %s data", key)
        return []


def save_versioned_list(
    store: KeyValueStore, key: str, version: int, items: list[dict]
) -> bool:
    """Write ``items`` as a versioned document. Returns False if the write failed."""
    payload = json.dumps({"version": version, key: items}, indent=2, ensure_ascii=False)
    try:
        store.set(key, payload.encode("utf-8"))
    except OSError as exc:
        logger.warning("Could not write %s: %s", key, exc)
        return False
    return True
