"""Dependency build orchestration.

This module provides the high-level API:
- DependencyBuildOrchestrator.ensure_artifact(): make sure an artifact exists,
  restoring it from the cache or building it from source
- The run state machine and its transition table

Each step short-circuits as soon as the artifact is present:

1. artifact already present -> done, no external calls
2. cache enabled -> restore; a hit is done and is never saved back
3. checkout -> patch -> build -> install
4. verify the artifact exists
5. cache enabled and freshly built -> save once, best-effort

The orchestrator takes no locks. Callers running concurrent jobs against a
shared workspace must serialise on the artifact (see ``artifact_lock``).
"""

from __future__ import annotations

import fcntl
import logging
import os
import time
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path

from depbuild.builds.checkout import checkout_source
from depbuild.builds.install import InstallStep
from depbuild.builds.patching import apply_patches
from depbuild.builds.runner import BuildResult, run_build
from depbuild.cache.base import CacheBackend, safe_key
from depbuild.errors import ArtifactMissingError, CacheSaveError, DepBuildError
from depbuild.types import (
    BuildCommand,
    BuildTarget,
    ConfigPatch,
    RunOutcome,
    RunState,
    SourceRef,
)

logger = logging.getLogger(__name__)

TRANSITIONS: dict[RunState, frozenset[RunState]] = {
    RunState.NOT_STARTED: frozenset({RunState.CACHE_CHECKED, RunState.SATISFIED}),
    RunState.CACHE_CHECKED: frozenset({RunState.SATISFIED, RunState.SOURCE_BUILD}),
    RunState.SATISFIED: frozenset({RunState.VERIFIED}),
    RunState.SOURCE_BUILD: frozenset({RunState.VERIFIED}),
    RunState.VERIFIED: frozenset({RunState.CACHE_SAVED, RunState.DONE}),
    RunState.CACHE_SAVED: frozenset({RunState.DONE}),
    RunState.DONE: frozenset(),
    RunState.FAILED: frozenset(),
}

TERMINAL_STATES = frozenset({RunState.DONE, RunState.FAILED})


class InvalidTransitionError(RuntimeError):
    """Raised on a state change the transition table does not allow."""


@dataclass
class EnsureResult:
    """Result of an ensure_artifact run.

    Attributes:
        target: The ensured target.
        outcome: How the artifact came to be present.
        states: Every state the run passed through, in order.
        cache_saved: Whether a cache save succeeded.
        build_result: Build details when the artifact was built.
        sha256: Hash of the installed artifact when it was built.
    """

    target: BuildTarget
    outcome: RunOutcome | None = None
    states: list[RunState] = field(default_factory=lambda: [RunState.NOT_STARTED])
    cache_saved: bool = False
    build_result: BuildResult | None = None
    sha256: str | None = None

    @property
    def state(self) -> RunState:
        """Current state of the run."""
        return self.states[-1]

    @property
    def freshly_built(self) -> bool:
        """Whether this run built the artifact from source."""
        return self.outcome is RunOutcome.BUILT

    def advance(self, new_state: RunState) -> None:
        """Move to ``new_state``.

        Raises:
            InvalidTransitionError: If the transition is not allowed.
        """
        current = self.state
        if new_state is RunState.FAILED and current not in TERMINAL_STATES:
            self.states.append(new_state)
            return
        if new_state not in TRANSITIONS[current]:
            raise InvalidTransitionError(
                f"Invalid run transition: {current.value} -> {new_state.value}"
            )
        logger.debug("Run state: %s -> %s", current.value, new_state.value)
        self.states.append(new_state)


@contextmanager
def artifact_lock(
    lock_dir: Path,
    cache_key: str,
    timeout: float | None = None,
) -> Iterator[None]:
    """Acquire a file lock for a cache key.

    Args:
        lock_dir: Directory for lock files.
        cache_key: Cache key to lock on.
        timeout: Lock acquisition timeout in seconds (None = blocking).

    Yields:
        None when lock is acquired.

    Raises:
        TimeoutError: If lock cannot be acquired within timeout.
    """
    lock_dir.mkdir(parents=True, exist_ok=True)
    lock_file = lock_dir / f"{safe_key(cache_key)[:96]}.lock"

    logger.debug("Acquiring lock for key: %s", cache_key)

    fd = os.open(str(lock_file), os.O_RDWR | os.O_CREAT, 0o600)
    lock_acquired = False
    try:
        if timeout is not None:
            start = time.monotonic()
            while True:
                try:
                    fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
                    lock_acquired = True
                    break
                except BlockingIOError:
                    if time.monotonic() - start >= timeout:
                        raise TimeoutError(
                            f"Timeout waiting for lock on {cache_key}"
                        ) from None
                    time.sleep(0.1)
        else:
            fcntl.flock(fd, fcntl.LOCK_EX)
            lock_acquired = True

        logger.debug("Lock acquired for key: %s", cache_key)
        yield
    finally:
        if lock_acquired:
            fcntl.flock(fd, fcntl.LOCK_UN)
            logger.debug("Lock released for key: %s", cache_key)
        os.close(fd)


class DependencyBuildOrchestrator:
    """Ensures external dependency artifacts exist locally.

    Args:
        cache: Cache backend used when a run has caching enabled.
        git: Git executable for checkouts.
        log_dir: Directory for build logs. Defaults to next to the checkout.
    """

    def __init__(
        self,
        cache: CacheBackend | None = None,
        git: str = "git",
        log_dir: Path | None = None,
    ) -> None:
        self.cache = cache
        self.git = git
        self.log_dir = log_dir

    def build_log_path(self, target: BuildTarget, source: SourceRef) -> Path:
        """Return the log file used when building ``target``."""
        if self.log_dir is not None:
            return self.log_dir / f"{safe_key(target.cache_key)}.log"
        checkout = source.checkout_path
        return checkout.with_name(f"{checkout.name}.build.log")

    def ensure_artifact(
        self,
        target: BuildTarget,
        source: SourceRef,
        patches: Sequence[ConfigPatch],
        build_command: BuildCommand,
        install_step: InstallStep,
        cache_enabled: bool = False,
    ) -> EnsureResult:
        """Ensure ``target.artifact_path`` exists.

        Args:
            target: Artifact path and cache key.
            source: Repository to build from on a cache miss.
            patches: Config patches applied after checkout, in order.
            build_command: Build invocation, run from the checkout root.
            install_step: Copies the build output to the artifact path.
            cache_enabled: Restore from and save to the cache backend.

        Returns:
            EnsureResult describing the run.

        Raises:
            ValueError: If caching is enabled without a cache backend.
            CheckoutError: If the checkout fails.
            PatchError: If a required patch does not apply.
            BuildFailure: If the build command fails.
            InstallError: If the build output cannot be installed.
            ArtifactMissingError: If the artifact is absent after the run.
        """
        if cache_enabled and self.cache is None:
            raise ValueError("cache_enabled requires a cache backend")

        cache = self.cache if cache_enabled else None
        result = EnsureResult(target=target)

        if target.present:
            logger.info("Artifact already present: %s", target.artifact_path)
            result.outcome = RunOutcome.ALREADY_PRESENT
            result.advance(RunState.SATISFIED)
            result.advance(RunState.VERIFIED)
            result.advance(RunState.DONE)
            return result

        try:
            if cache is not None and self._try_restore(cache, target):
                result.advance(RunState.CACHE_CHECKED)
                result.outcome = RunOutcome.RESTORED
                result.advance(RunState.SATISFIED)
            else:
                result.advance(RunState.CACHE_CHECKED)
                result.advance(RunState.SOURCE_BUILD)
                self._build_from_source(
                    result, source, patches, build_command, install_step
                )
                result.outcome = RunOutcome.BUILT

            if not target.present:
                raise ArtifactMissingError(target.artifact_path)
            result.advance(RunState.VERIFIED)
        except DepBuildError:
            result.advance(RunState.FAILED)
            raise

        if cache is not None and result.freshly_built:
            result.cache_saved = self._try_save(cache, target)
            if result.cache_saved:
                result.advance(RunState.CACHE_SAVED)

        result.advance(RunState.DONE)
        logger.info(
            "Artifact ready: %s (%s)", target.artifact_path, result.outcome.value
        )
        return result

    def _try_restore(self, cache: CacheBackend, target: BuildTarget) -> bool:
        logger.info("Trying to restore %s from cache...", target.cache_key)
        try:
            hit = cache.restore(target.cache_key, target.artifact_path)
        except Exception:
            logger.exception("Cache restore raised for %s", target.cache_key)
            hit = False

        if hit and target.present:
            logger.info("Cache hit for %s", target.cache_key)
            return True
        if hit:
            logger.warning(
                "Cache reported a hit for %s but %s is absent",
                target.cache_key,
                target.artifact_path,
            )
        else:
            logger.info("Cache miss for %s", target.cache_key)
        return False

    def _build_from_source(
        self,
        result: EnsureResult,
        source: SourceRef,
        patches: Sequence[ConfigPatch],
        build_command: BuildCommand,
        install_step: InstallStep,
    ) -> None:
        target = result.target

        logger.info("Checking out %s@%s", source.repository_url, source.revision)
        checkout_source(source, git=self.git)

        if patches:
            logger.info("Applying %d config patch(es)", len(patches))
            apply_patches(source.checkout_path, patches)

        result.build_result = run_build(
            build_command,
            cwd=source.checkout_path,
            log_path=self.build_log_path(target, source),
        )
        logger.info("Build finished in %.1fs", result.build_result.duration)

        result.sha256 = install_step.run(source.checkout_path, target.artifact_path)

    def _try_save(self, cache: CacheBackend, target: BuildTarget) -> bool:
        logger.info("Saving %s to cache...", target.cache_key)
        try:
            saved = cache.save(target.cache_key, target.artifact_path)
        except Exception as e:
            saved = False
            logger.warning("%s", CacheSaveError(target.cache_key, str(e)))
        else:
            if not saved:
                logger.warning(
                    "%s", CacheSaveError(target.cache_key, "backend reported failure")
                )
        return saved


__all__ = [
    "TERMINAL_STATES",
    "TRANSITIONS",
    "DependencyBuildOrchestrator",
    "EnsureResult",
    "InvalidTransitionError",
    "artifact_lock",
]
