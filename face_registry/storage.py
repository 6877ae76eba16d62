"""Key-value persistence slots (get/set/remove of text values under string keys)."""
from __future__ import annotations

import os
import re
import tempfile
import threading
from pathlib import Path
from typing import Dict, Optional, Protocol

from face_registry.utils.log import get_logger

logger = get_logger(__name__)

_KEY_RE = re.compile(r"^[A-Za-z0-9_.-]+$")


class KeyValueStorage(Protocol):
    def get_item(self, key: str) -> Optional[str]: ...

    def set_item(self, key: str, value: str) -> None: ...

    def remove_item(self, key: str) -> None: ...


class MemoryKeyValueStorage:
    """Dict-backed storage (tests, embedding in a host that persists elsewhere)."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get_item(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._data[key] = str(value)

    def remove_item(self, key: str) -> None:
        self._data.pop(key, None)


class FileKeyValueStorage:
    """One UTF-8 file per key under `root`.

    Writes go to a temp file in the same directory and are moved into place with
    `os.replace`, so a crash mid-write never leaves a truncated blob behind.
    """

    def __init__(self, root: Path, suffix: str = ".json"):
        self.root = Path(root)
        self.suffix = suffix
        self._lock = threading.Lock()

    def _path(self, key: str) -> Path:
        if not _KEY_RE.match(str(key)) or key in (".", ".."):
            raise ValueError(f"Invalid storage key: {key!r}")
        return self.root / f"{key}{self.suffix}"

    def get_item(self, key: str) -> Optional[str]:
        fp = self._path(key)
        if not fp.exists():
            return None
        return fp.read_text(encoding="utf-8")

    def set_item(self, key: str, value: str) -> None:
        fp = self._path(key)
        with self._lock:
            self.root.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(prefix=f".{key}.", suffix=".tmp", dir=str(self.root))
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(value)
                os.replace(tmp, fp)
            except BaseException:
                if os.path.exists(tmp):
                    os.unlink(tmp)
                raise
        logger.debug(f"Wrote {len(value)} chars to {fp}")

    def remove_item(self, key: str) -> None:
        fp = self._path(key)
        with self._lock:
            if fp.exists():
                fp.unlink()
