"""Source checkout using the git executable.

This module handles:
- Cloning a repository on first use
- Refreshing an existing checkout from its origin
- Resolving branch names to their fetched remote-tracking refs
- Forcing the working tree to the requested revision (detached HEAD)

Forcing the checkout discards local edits (including earlier config
patches), so a re-run always patches pristine sources.
"""

from __future__ import annotations

import logging
import shlex
import subprocess

from depbuild.errors import CheckoutError
from depbuild.types import SourceRef

logger = logging.getLogger(__name__)


def _run_git(args: list[str], git: str = "git") -> subprocess.CompletedProcess[str]:
    """Run a git command, translating failures to CheckoutError.

    Args:
        args: Arguments after the git executable.
        git: Git executable.

    Returns:
        Completed process with captured output.

    Raises:
        CheckoutError: If git is missing or exits non-zero.
    """
    cmd = [git, *args]
    logger.debug("Running: %s", shlex.join(cmd))

    try:
        return subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            check=True,
        )
    except subprocess.CalledProcessError as e:
        raise CheckoutError(
            f"{shlex.join(cmd)} failed with exit code {e.returncode}",
            stderr=e.stderr,
            code="git_error",
        ) from e
    except OSError as e:
        raise CheckoutError(
            f"Failed to run git: {e}",
            code="git_unavailable",
        ) from e


def is_checkout(source: SourceRef) -> bool:
    """Check whether the checkout path already holds a git working tree."""
    return (source.checkout_path / ".git").exists()


def resolve_revision(source: SourceRef, git: str = "git") -> str:
    """Return the ref to check out for ``source.revision``.

    A branch name resolves to its remote-tracking ref so a refreshed
    checkout follows the fetched branch tip rather than a stale local
    branch. Tags and commits are returned unchanged.

    Raises:
        CheckoutError: If git cannot be executed.
    """
    remote_ref = f"origin/{source.revision}"
    try:
        _run_git(
            [
                "-C",
                str(source.checkout_path),
                "rev-parse",
                "--verify",
                "--quiet",
                f"refs/remotes/{remote_ref}^{{commit}}",
            ],
            git,
        )
    except CheckoutError as e:
        if e.code != "git_error":
            raise
        return source.revision
    return remote_ref


def checkout_source(source: SourceRef, git: str = "git") -> None:
    """Materialise ``source.revision`` at ``source.checkout_path``.

    The working tree is left on a detached HEAD at the resolved commit.

    Args:
        source: Repository, revision and destination.
        git: Git executable.

    Raises:
        CheckoutError: If the remote is unreachable or the revision unknown.
    """
    path = source.checkout_path

    if is_checkout(source):
        logger.info("Updating checkout at %s", path)
        _run_git(
            ["-C", str(path), "fetch", "--tags", "--force", "--prune", "origin"], git
        )
    else:
        if path.exists() and any(path.iterdir()):
            raise CheckoutError(
                f"Checkout path exists and is not a git repository: {path}",
                code="checkout_path_occupied",
            )
        logger.info("Cloning %s into %s", source.repository_url, path)
        path.parent.mkdir(parents=True, exist_ok=True)
        _run_git(["clone", source.repository_url, str(path)], git)

    ref = resolve_revision(source, git)
    logger.info("Checking out revision %s (%s)", source.revision, ref)
    _run_git(["-C", str(path), "checkout", "--force", "--detach", ref], git)


__all__ = ["checkout_source", "is_checkout", "resolve_revision"]
