"""Cache backend capability.

A backend restores and saves a single artifact file by key. Both operations
report success as a boolean: a miss or a failed save is an expected outcome,
never an exception the orchestrator has to handle.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Protocol, runtime_checkable

_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9_.@\-]+")


@runtime_checkable
class CacheBackend(Protocol):
    """Port for artifact cache operations."""

    def restore(self, key: str, destination: Path) -> bool:
        """Restore the entry for ``key`` to ``destination``; False on a miss."""
        ...

    def save(self, key: str, source: Path) -> bool:
        """Store ``source`` under ``key``; False if the save failed."""
        ...


def safe_key(key: str) -> str:
    """Turn a cache key into a single safe path component."""
    return _UNSAFE_KEY_CHARS.sub("_", key).strip(".") or "_"


__all__ = ["CacheBackend", "safe_key"]
