"""
Stitch Client SDK Token Storage Implementations

Key/value backends for session persistence. Backends never raise when the
persistent medium is missing or unwritable; they keep working from memory.
"""

import json
import logging
import os
import threading
from pathlib import Path
from typing import Dict, Optional


logger = logging.getLogger("stitch_client")


class MemoryStorage:
    """In-memory key/value storage (default, non-persistent)."""

    def __init__(self) -> None:
        self._data: Dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value

    def remove(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._data.clear()


class FileStorage:
    """File-based key/value storage (persistent across restarts).

    The file is a flat JSON object. Values are mirrored in memory, so a
    read or write failure degrades to in-process storage with a warning.
    """

    def __init__(self, file_path: Optional[str] = None) -> None:
        """
        Initialize file storage.

        Args:
            file_path: Path to session file. Defaults to ~/.stitch/session.json
        """
        if file_path:
            self._file_path = Path(file_path)
        else:
            self._file_path = Path.home() / ".stitch" / "session.json"

        self._lock = threading.Lock()
        self._persistent = True
        self._data: Dict[str, str] = self._read_data()

    @property
    def path(self) -> Path:
        return self._file_path

    @property
    def persistent(self) -> bool:
        """False once the file could not be written and storage is memory-only."""
        return self._persistent

    def _read_data(self) -> Dict[str, str]:
        """Read session data from file."""
        if not self._file_path.exists():
            return {}
        try:
            with open(self._file_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning("Could not read session file %s: %s", self._file_path, e)
            return {}
        if not isinstance(data, dict):
            logger.warning("Ignoring malformed session file %s", self._file_path)
            return {}
        return {str(k): str(v) for k, v in data.items()}

    def _write_data(self) -> None:
        """Write session data to file."""
        if not self._persistent:
            return
        try:
            self._file_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self._file_path, "w", encoding="utf-8") as f:
                json.dump(self._data, f)
            # Owner read/write only
            os.chmod(self._file_path, 0o600)
        except OSError as e:
            logger.warning(
                "Could not write session file %s, keeping session in memory: %s",
                self._file_path, e,
            )
            self._persistent = False

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value
            self._write_data()

    def remove(self, key: str) -> None:
        with self._lock:
            if self._data.pop(key, None) is not None:
                self._write_data()

    def clear(self) -> None:
        with self._lock:
            self._data.clear()
            if not self._persistent:
                return
            try:
                if self._file_path.exists():
                    self._file_path.unlink()
            except OSError as e:
                logger.warning("Could not remove session file %s: %s", self._file_path, e)


def create_storage(file_path: Optional[str] = None, persist: bool = True):
    """Return file storage when its directory is usable, memory storage otherwise."""
    if not persist:
        return MemoryStorage()

    storage = FileStorage(file_path)
    try:
        storage.path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logger.warning("Session directory unavailable, using memory storage: %s", e)
        return MemoryStorage()
    if not os.access(storage.path.parent, os.W_OK):
        logger.warning("Session directory %s is not writable, using memory storage", storage.path.parent)
        return MemoryStorage()
    return storage
