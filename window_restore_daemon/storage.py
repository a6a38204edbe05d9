"""Key-value persistence backends for snapshot data."""

import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Dict, Optional

from .constants import STATE_DIR

logger = logging.getLogger(__name__)

_UNSAFE = re.compile(r"[^A-Za-z0-9._-]")


class FileKeyValueStore:
    """One file per key under a state directory.

    Writes go to a temp file in the same directory, are fsynced, then renamed
    over the target so readers never observe a half-written value.
    """

    def __init__(self, directory: Path = STATE_DIR):
        self.directory = directory

    def _path(self, key: str) -> Path:
        return self.directory / _UNSAFE.sub("_", key)

    def get(self, key: str) -> Optional[bytes]:
        path = self._path(key)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return None

    def set(self, key: str, value: bytes) -> None:
        path = self._path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, temp_path = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}-", suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(value)
                f.flush()
                os.fsync(f.fileno())
            os.rename(temp_path, path)
        except Exception:
            if os.path.exists(temp_path):
                os.unlink(temp_path)
            raise
        logger.debug(f"Wrote {len(value)} bytes to {path}")

    def remove(self, key: str) -> None:
        try:
            self._path(key).unlink()
        except FileNotFoundError:
            pass


class MemoryKeyValueStore:
    """In-process store, used for tests and when the state dir is unusable."""

    def __init__(self, initial: Optional[Dict[str, bytes]] = None):
        self.data: Dict[str, bytes] = dict(initial or {})

    def get(self, key: str) -> Optional[bytes]:
        return self.data.get(key)

    def set(self, key: str, value: bytes) -> None:
        self.data[key] = value

    def remove(self, key: str) -> None:
        self.data.pop(key, None)
