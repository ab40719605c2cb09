"""
Directory-backed key/value storage standing in for the browser's local storage.

Each key maps to one file holding the serialized value. Writes replace the
whole value: the new content lands in a temporary file first and is then
renamed over the old one.
"""

from __future__ import annotations

import contextlib
import logging
import os
import re
from pathlib import Path
from typing import Optional, Union

from .errors import PersistenceError

logger = logging.getLogger(__name__)

_KEY_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+$")


class LocalStorage:
    """Persistent string key/value store rooted at ``data_dir``."""

    def __init__(self, data_dir: Union[str, Path]) -> None:
        self._data_dir = Path(data_dir)

    def get_item(self, key: str) -> Optional[str]:
        path = self._path_for(key)
        if not path.exists():
            return None
        try:
            return path.read_text(encoding="utf-8")
        except OSError as exc:
            logger.warning("Failed to read storage key '%s': %s", key, exc)
            raise PersistenceError(f"无法读取本地数据: {key}", key=key) from exc

    def set_item(self, key: str, value: str) -> None:
        path = self._path_for(key)
        tmp_path = path.with_suffix(path.suffix + ".tmp")
        try:
            self._data_dir.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(value, encoding="utf-8")
            os.replace(tmp_path, path)
        except OSError as exc:
            with contextlib.suppress(OSError):
                tmp_path.unlink(missing_ok=True)
            logger.error("Failed to write storage key '%s': %s", key, exc)
            raise PersistenceError(f"无法写入本地数据: {key}", key=key) from exc
        logger.debug("Wrote %d characters to storage key '%s'", len(value), key)

    def remove_item(self, key: str) -> None:
        path = self._path_for(key)
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            raise PersistenceError(f"无法删除本地数据: {key}", key=key) from exc

    def _path_for(self, key: str) -> Path:
        if not key or not _KEY_PATTERN.match(key):
            raise ValueError(f"Invalid storage key: {key!r}")
        return self._data_dir / f"{key}.json"
