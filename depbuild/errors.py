"""Error taxonomy for depbuild.

Every error carries a stable ``code`` for structured handling. Cache-path
errors (CacheMissError, CacheSaveError) are non-fatal and are logged by the
orchestrator; the remaining errors abort a run.
"""

from __future__ import annotations

from pathlib import Path


class DepBuildError(Exception):
    """Base error for depbuild operations."""

    def __init__(self, message: str, code: str = "depbuild_error") -> None:
        super().__init__(message)
        self.code = code


class CacheMissError(DepBuildError):
    """Raised when a cache entry is absent. Expected, never fatal."""

    def __init__(self, cache_key: str, code: str = "cache_miss") -> None:
        super().__init__(f"Cache miss for key: {cache_key}", code=code)
        self.cache_key = cache_key


class CacheSaveError(DepBuildError):
    """Raised when saving to the cache fails. Logged only."""

    def __init__(self, cache_key: str, reason: str, code: str = "cache_save") -> None:
        super().__init__(f"Cache save failed for key {cache_key}: {reason}", code=code)
        self.cache_key = cache_key


class CheckoutError(DepBuildError):
    """Raised when the source repository cannot be checked out."""

    def __init__(
        self,
        message: str,
        stderr: str | None = None,
        code: str = "checkout_error",
    ) -> None:
        super().__init__(message, code=code)
        self.stderr = stderr


class PatchError(DepBuildError):
    """Raised when a required config patch cannot be applied."""

    def __init__(self, message: str, code: str = "patch_error") -> None:
        super().__init__(message, code=code)


class BuildFailure(DepBuildError):
    """Raised when the external build command fails."""

    def __init__(
        self,
        message: str,
        exit_code: int | None = None,
        output: str = "",
        log_path: Path | None = None,
        code: str = "build_failed",
    ) -> None:
        super().__init__(message, code=code)
        self.exit_code = exit_code
        self.output = output
        self.log_path = log_path


class InstallError(DepBuildError):
    """Raised when the build output cannot be installed."""

    def __init__(self, message: str, code: str = "install_error") -> None:
        super().__init__(message, code=code)


class ArtifactMissingError(DepBuildError):
    """Raised when a run finishes without the artifact on disk."""

    def __init__(self, artifact_path: Path, code: str = "artifact_missing") -> None:
        super().__init__(f"Artifact missing after run: {artifact_path}", code=code)
        self.artifact_path = artifact_path


class ManifestError(DepBuildError):
    """Raised when a dependency manifest cannot be loaded."""

    def __init__(self, message: str, code: str = "manifest_error") -> None:
        super().__init__(message, code=code)


__all__ = [
    "ArtifactMissingError",
    "BuildFailure",
    "CacheMissError",
    "CacheSaveError",
    "CheckoutError",
    "DepBuildError",
    "InstallError",
    "ManifestError",
    "PatchError",
]
