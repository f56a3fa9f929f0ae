"""Install step: copy the produced binary to the artifact path."""

from __future__ import annotations

import hashlib
import logging
import shutil
from dataclasses import dataclass
from pathlib import Path

from depbuild.errors import InstallError

logger = logging.getLogger(__name__)

# Default chunk size for hashing
HASH_CHUNK_SIZE = 64 * 1024  # 64KB


def compute_file_hash(
    file_path: Path,
    chunk_size: int = HASH_CHUNK_SIZE,
) -> str:
    """Compute SHA-256 hash of a file.

    Args:
        file_path: Path to the file.
        chunk_size: Size of chunks for streaming hash.

    Returns:
        SHA-256 hex digest.
    """
    sha256 = hashlib.sha256()
    with file_path.open("rb") as f:
        while chunk := f.read(chunk_size):
            sha256.update(chunk)
    return sha256.hexdigest()


def parse_mode(mode_str: str | None) -> int | None:
    """Parse an octal mode string like '0755' to an integer."""
    if not mode_str:
        return None
    try:
        return int(mode_str, 8)
    except ValueError:
        logger.warning("Invalid mode string: %s, keeping source mode", mode_str)
        return None


@dataclass(frozen=True)
class InstallStep:
    """Which build output to install, and how.

    Attributes:
        output: Build output path relative to the checkout root.
        mode: Optional octal file mode for the installed artifact.
    """

    output: str
    mode: str | None = None

    def run(self, checkout_path: Path, artifact_path: Path) -> str:
        """Copy the build output to ``artifact_path``.

        Args:
            checkout_path: Checkout root the output is relative to.
            artifact_path: Destination of the artifact.

        Returns:
            SHA-256 of the installed artifact.

        Raises:
            InstallError: If the build output is absent or cannot be copied.
        """
        source = checkout_path / self.output
        if not source.is_file():
            raise InstallError(
                f"Expected build output not found: {source}",
                code="build_output_missing",
            )

        try:
            artifact_path.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(source, artifact_path)
            mode = parse_mode(self.mode)
            if mode is not None:
                artifact_path.chmod(mode)
        except OSError as e:
            raise InstallError(
                f"Failed to install {source} -> {artifact_path}: {e}",
                code="copy_error",
            ) from e

        digest = compute_file_hash(artifact_path)
        logger.info(
            "Installed %s -> %s (sha256=%s)", source, artifact_path, digest[:16]
        )
        return digest


__all__ = ["HASH_CHUNK_SIZE", "InstallStep", "compute_file_hash", "parse_mode"]
