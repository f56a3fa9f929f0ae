"""Line-oriented config patching for checked-out sources.

This module handles:
- Resolving patch globs against a checkout tree
- Replacing every line that mentions a quoted key with a rebuilt line
- Reporting how many lines each patch touched

Patching is textual, not structural: the file may be otherwise malformed,
even undecodable, and bytes outside the replaced lines are written back
unchanged. The key must already be present verbatim for a patch to take
effect.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from depbuild.errors import PatchError
from depbuild.types import ConfigPatch

logger = logging.getLogger(__name__)


@dataclass
class PatchResult:
    """Outcome of applying one patch across its matching files.

    Attributes:
        patch: The applied patch.
        files: Files matched by the patch glob.
        replaced: Number of lines replaced per file (matched files only).
    """

    patch: ConfigPatch
    files: list[Path] = field(default_factory=list)
    replaced: dict[Path, int] = field(default_factory=dict)

    @property
    def total_replaced(self) -> int:
        """Total number of lines replaced across all files."""
        return sum(self.replaced.values())


def render_value(value: Any) -> str:
    """Render a patch value as a JSON literal."""
    return json.dumps(value)


def render_patched_line(line: str, key: str, value: Any) -> str:
    """Build the replacement for a line that mentions ``key``.

    The original indentation, trailing comma and line ending are kept.

    Args:
        line: Original line, including its line ending.
        key: Config key.
        value: New value.

    Returns:
        The replacement line.
    """
    body = line.rstrip("\r\n")
    ending = line[len(body) :]
    indent = body[: len(body) - len(body.lstrip())]
    comma = "," if body.rstrip().endswith(",") else ""
    return f'{indent}"{key}": {render_value(value)}{comma}{ending}'


def apply_patch_to_file(path: Path, patch: ConfigPatch) -> int:
    """Apply a single patch to a single file.

    Args:
        path: File to patch in place.
        patch: Patch to apply.

    Returns:
        Number of lines that matched the key.

    Raises:
        PatchError: If the file cannot be read or written.
    """
    needle = f'"{patch.key}"'
    try:
        with path.open(encoding="utf-8", errors="surrogateescape", newline="") as f:
            lines = f.readlines()
    except OSError as e:
        raise PatchError(f"Failed to read {path}: {e}", code="patch_read_error") from e

    matched = 0
    changed = False
    for i, line in enumerate(lines):
        if needle not in line:
            continue
        matched += 1
        new_line = render_patched_line(line, patch.key, patch.new_value)
        if new_line != line:
            lines[i] = new_line
            changed = True

    if changed:
        try:
            with path.open(
                "w", encoding="utf-8", errors="surrogateescape", newline=""
            ) as f:
                f.writelines(lines)
        except OSError as e:
            raise PatchError(
                f"Failed to write {path}: {e}", code="patch_write_error"
            ) from e

    return matched


def apply_patches(root: Path, patches: Sequence[ConfigPatch]) -> list[PatchResult]:
    """Apply patches, in order, to every file under ``root`` matching each glob.

    Args:
        root: Checkout root the globs are relative to.
        patches: Patches in application order.

    Returns:
        One PatchResult per patch.

    Raises:
        PatchError: If a required patch matches no line, or a file cannot be
            read or written.
    """
    results: list[PatchResult] = []

    for patch in patches:
        files = sorted(p for p in root.glob(patch.file_pattern) if p.is_file())
        result = PatchResult(patch=patch, files=files)

        for path in files:
            result.replaced[path] = apply_patch_to_file(path, patch)

        if not files:
            logger.warning("Patch pattern matched no files: %s", patch.file_pattern)
        elif result.total_replaced == 0:
            logger.warning(
                "Key %s not found in files matching %s",
                patch.key,
                patch.file_pattern,
            )
        else:
            logger.info(
                "Patched %s=%s in %d line(s) across %d file(s)",
                patch.key,
                render_value(patch.new_value),
                result.total_replaced,
                len(files),
            )

        if patch.required and result.total_replaced == 0:
            raise PatchError(
                f"Required key {patch.key!r} not found in {patch.file_pattern}",
                code="patch_key_missing",
            )

        results.append(result)

    return results


__all__ = [
    "PatchResult",
    "apply_patch_to_file",
    "apply_patches",
    "render_patched_line",
    "render_value",
]
