"""Shared type definitions for depbuild.

This module contains dataclasses, enums, and type aliases shared across
subpackages to avoid circular imports.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any


class RunState(str, Enum):
    """State of an ensure-artifact run."""

    NOT_STARTED = "not_started"
    CACHE_CHECKED = "cache_checked"
    SATISFIED = "satisfied"
    SOURCE_BUILD = "source_build"
    VERIFIED = "verified"
    CACHE_SAVED = "cache_saved"
    DONE = "done"
    FAILED = "failed"


class RunOutcome(str, Enum):
    """How the artifact came to be present."""

    ALREADY_PRESENT = "already_present"
    RESTORED = "restored"
    BUILT = "built"


@dataclass
class BuildTarget:
    """The artifact a run must guarantee.

    Attributes:
        artifact_path: Where the binary must end up.
        cache_key: Opaque key addressing the artifact in the cache.
    """

    artifact_path: Path
    cache_key: str

    @property
    def present(self) -> bool:
        """Whether the artifact currently exists on disk."""
        return self.artifact_path.is_file()


@dataclass(frozen=True)
class SourceRef:
    """A revision of a source repository and where to check it out."""

    repository_url: str
    checkout_path: Path
    revision: str


@dataclass(frozen=True)
class ConfigPatch:
    """A targeted line replacement applied to config files before building.

    Attributes:
        file_pattern: Glob relative to the checkout root.
        key: Key whose line is replaced (matched as ``"<key>"``).
        new_value: Literal value, rendered as JSON.
        required: Fail instead of skipping when the key matches no line.
    """

    file_pattern: str
    key: str
    new_value: Any
    required: bool = False


@dataclass(frozen=True)
class BuildCommand:
    """External build invocation, run from the checkout root."""

    argv: tuple[str, ...]
    env: dict[str, str] = field(default_factory=dict)
    timeout: int | None = None


__all__ = [
    "BuildCommand",
    "BuildTarget",
    "ConfigPatch",
    "RunOutcome",
    "RunState",
    "SourceRef",
]
