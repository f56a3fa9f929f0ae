"""Cache backend storing artifacts in a local directory.

Entries live at ``<root>/<safe key>/artifact``. Writes go through a temporary
file and a rename so a reader never sees a half-written entry.
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from pathlib import Path

from depbuild.cache.base import safe_key
from depbuild.errors import CacheMissError, CacheSaveError

logger = logging.getLogger(__name__)

ENTRY_FILENAME = "artifact"


class LocalDirectoryCache:
    """CacheBackend backed by a directory on the local filesystem."""

    def __init__(self, root: Path) -> None:
        self.root = root

    def entry_path(self, key: str) -> Path:
        """Return where the entry for ``key`` is stored."""
        return self.root / safe_key(key) / ENTRY_FILENAME

    def lookup(self, key: str) -> Path:
        """Return the stored entry for ``key``.

        Raises:
            CacheMissError: If no entry exists.
        """
        path = self.entry_path(key)
        if not path.is_file():
            raise CacheMissError(key)
        return path

    def restore(self, key: str, destination: Path) -> bool:
        try:
            entry = self.lookup(key)
        except CacheMissError as e:
            logger.info("%s", e)
            return False

        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(entry, destination)
        except OSError as e:
            logger.warning("Failed to restore %s from %s: %s", key, entry, e)
            destination.unlink(missing_ok=True)
            return False

        logger.info("Restored %s from %s", destination, entry)
        return True

    def _store(self, key: str, source: Path) -> Path:
        entry = self.entry_path(key)
        try:
            entry.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=entry.parent, prefix=".tmp_")
            os.close(fd)
            tmp_path = Path(tmp_name)
            try:
                shutil.copy2(source, tmp_path)
                tmp_path.replace(entry)
            finally:
                tmp_path.unlink(missing_ok=True)
        except OSError as e:
            raise CacheSaveError(key, str(e)) from e
        return entry

    def save(self, key: str, source: Path) -> bool:
        try:
            entry = self._store(key, source)
        except CacheSaveError as e:
            logger.warning("%s", e)
            return False

        logger.info("Saved %s to %s", source, entry)
        return True


__all__ = ["ENTRY_FILENAME", "LocalDirectoryCache"]
