"""Cache key computation for dependency builds.

This module handles:
- Canonical input snapshot creation from a dependency's build inputs
- Deterministic hash computation over normalized inputs

A derived key changes whenever anything that affects the produced binary
changes (repository, revision, patches, build command, install output).
Keys never contain ':' so they compose with cache-util's ``key:path`` form.
"""

from __future__ import annotations

import hashlib
import json
import re
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from depbuild.builds.install import InstallStep
from depbuild.types import BuildCommand, ConfigPatch, SourceRef

# Schema version for cache key format; bump when cache key format changes
CACHE_KEY_SCHEMA_VERSION = "1"

_UNSAFE_NAME_CHARS = re.compile(r"[^A-Za-z0-9_.\-]+")


@dataclass
class BuildInputs:
    """Canonical representation of all inputs that affect the artifact.

    Attributes:
        schema_version: Version of cache key schema.
        name: Dependency name.
        repository_url: Source repository.
        revision: Source revision.
        patches: Patches in application order.
        build_argv: Build command arguments.
        build_env: Build environment overrides.
        install_output: Installed build output path.
    """

    schema_version: str = CACHE_KEY_SCHEMA_VERSION
    name: str = ""
    repository_url: str = ""
    revision: str = ""
    patches: list[dict[str, Any]] = field(default_factory=list)
    build_argv: list[str] = field(default_factory=list)
    build_env: dict[str, str] = field(default_factory=dict)
    install_output: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "schema_version": self.schema_version,
            "name": self.name,
            "repository_url": self.repository_url,
            "revision": self.revision,
            "patches": self.patches,
            "build_argv": self.build_argv,
            "build_env": self.build_env,
            "install_output": self.install_output,
        }


def create_build_inputs(
    name: str,
    source: SourceRef,
    patches: Sequence[ConfigPatch],
    build_command: BuildCommand,
    install_step: InstallStep,
) -> BuildInputs:
    """Create canonical build inputs.

    The checkout path is deliberately excluded: the same revision built in a
    different workspace yields the same artifact.
    """
    return BuildInputs(
        name=name,
        repository_url=source.repository_url,
        revision=source.revision,
        # Patch order is significant, so it is preserved rather than sorted
        patches=[
            {"files": p.file_pattern, "key": p.key, "value": p.new_value}
            for p in patches
        ],
        build_argv=list(build_command.argv),
        build_env=dict(sorted(build_command.env.items())),
        install_output=install_step.output,
    )


def compute_cache_key(inputs: BuildInputs) -> str:
    """Compute a cache key from build inputs.

    Args:
        inputs: BuildInputs instance.

    Returns:
        Cache key of the form ``<name>@<sha256 hex>``.
    """
    canonical_json = json.dumps(
        inputs.to_dict(),
        sort_keys=True,
        separators=(",", ":"),
    )
    digest = hashlib.sha256(canonical_json.encode("utf-8")).hexdigest()
    safe_name = _UNSAFE_NAME_CHARS.sub("_", inputs.name) or "artifact"
    return f"{safe_name}@{digest}"


def derive_cache_key(
    name: str,
    source: SourceRef,
    patches: Sequence[ConfigPatch],
    build_command: BuildCommand,
    install_step: InstallStep,
) -> str:
    """Convenience wrapper computing the key directly from build inputs."""
    return compute_cache_key(
        create_build_inputs(name, source, patches, build_command, install_step)
    )


__all__ = [
    "CACHE_KEY_SCHEMA_VERSION",
    "BuildInputs",
    "compute_cache_key",
    "create_build_inputs",
    "derive_cache_key",
]
