"""Cache backend driving the external ``cache-util`` command.

The utility addresses entries as ``<key>:<path>`` and reports success through
its exit status::

    cache-util restore nearcore@1.2.3:bin/neard
    cache-util save nearcore@1.2.3:bin/neard
"""

from __future__ import annotations

import logging
import shlex
import subprocess
from pathlib import Path

logger = logging.getLogger(__name__)


class CacheUtilBackend:
    """CacheBackend implemented on top of the cache-util CLI."""

    def __init__(self, executable: str = "cache-util") -> None:
        self.executable = executable

    def _invoke(self, action: str, key: str, path: Path) -> bool:
        cmd = [self.executable, action, f"{key}:{path}"]
        logger.debug("Running: %s", shlex.join(cmd))
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                check=False,
            )
        except OSError as e:
            logger.warning("cache-util %s unavailable: %s", action, e)
            return False

        if result.returncode != 0:
            logger.info(
                "cache-util %s %s exited with %d: %s",
                action,
                key,
                result.returncode,
                (result.stderr or result.stdout).strip(),
            )
            return False
        return True

    def restore(self, key: str, destination: Path) -> bool:
        destination.parent.mkdir(parents=True, exist_ok=True)
        return self._invoke("restore", key, destination)

    def save(self, key: str, source: Path) -> bool:
        return self._invoke("save", key, source)


__all__ = ["CacheUtilBackend"]
