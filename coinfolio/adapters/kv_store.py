"""Key-value slot adapters.

Implements the KeyValueStore port with a process-local dict (the browser
localStorage analog) and with one UTF-8 file per key on disk.
"""

from __future__ import annotations

import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Optional

from coinfolio.errors.errors import ConfigurationError, StorageFault

_LOGGER = logging.getLogger(__name__)

# Keys become file names; LocalStoreConfig validates against the same pattern.
KEY_PATTERN = r"^[A-Za-z0-9_.\-]{1,128}$"
_KEY_RE = re.compile(KEY_PATTERN)


class MemoryKeyValueStore:
    """Process-local slot. Each instance owns its own mapping."""

    def __init__(self, initial: Optional[dict[str, str]] = None) -> None:
        self._slots: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._slots.get(key)

    def set(self, key: str, text: str) -> None:
        self._slots[key] = text


class FileKeyValueStore:
    def __init__(self, root: Path | str) -> None:
        """
        Persist each key as ``<root>/<key>.json``. The directory is created on first write.
        """
        self._root = root if isinstance(root, Path) else Path(root)

    @property
    def root(self) -> Path:
        return self._root

    def _path(self, key: str) -> Path:
        if not _KEY_RE.match(key):
            raise ConfigurationError(
                "Invalid storage key", field="key", value=key, component="file_kv"
            )
        return self._root / f"{key}.json"

    def get(self, key: str) -> Optional[str]:
        path = self._path(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except UnicodeDecodeError as exc:
            raise StorageFault(
                f"{path} is not valid UTF-8", operation="get", component="file_kv"
            ) from exc
        except OSError as exc:
            raise StorageFault(
                f"Cannot read {path}", operation="get", component="file_kv"
            ) from exc

    def set(self, key: str, text: str) -> None:
        path = self._path(key)
        try:
            data = text.encode("utf-8")
        except UnicodeEncodeError as exc:
            raise StorageFault(
                f"Cannot encode value for {key!r}", operation="set", component="file_kv"
            ) from exc
        try:
            self._root.mkdir(parents=True, exist_ok=True)
            # write-then-rename so readers never observe a half-written slot
            fd, tmp_name = tempfile.mkstemp(dir=self._root, prefix=f".{key}.", suffix=".tmp")
            with os.fdopen(fd, "wb") as handle:
                handle.write(data)
            os.replace(tmp_name, path)
        except OSError as exc:
            raise StorageFault(
                f"Cannot write {path}", operation="set", component="file_kv"
            ) from exc

        _LOGGER.debug(
            "kv_slot_written",
            extra={"event": "kv_slot_written", "key": key, "bytes": len(data)},
        )
