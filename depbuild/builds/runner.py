"""Build runner for executing external build commands.

This module handles:
- Executing the build command from the checkout root
- Capturing stdout/stderr to a log file
- Optional build timeouts
- Surfacing the tail of the log on failure
"""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from depbuild.errors import BuildFailure
from depbuild.types import BuildCommand

logger = logging.getLogger(__name__)

# Number of trailing log lines attached to a BuildFailure
OUTPUT_TAIL_LINES = 50


@dataclass
class BuildResult:
    """Result of a successful build execution.

    Attributes:
        exit_code: Process exit code.
        log_path: Path to the build log file.
        started_at: Build start time.
        finished_at: Build finish time.
        command: The command that was executed.
    """

    exit_code: int
    log_path: Path
    started_at: datetime
    finished_at: datetime
    command: str

    @property
    def duration(self) -> float:
        """Build duration in seconds."""
        return (self.finished_at - self.started_at).total_seconds()


def read_log_tail(log_path: Path, lines: int = OUTPUT_TAIL_LINES) -> str:
    """Return the last ``lines`` lines of a log file.

    Args:
        log_path: Log file to read.
        lines: Number of lines to keep.

    Returns:
        Tail of the log, or an empty string if it cannot be read.
    """
    try:
        with log_path.open(encoding="utf-8", errors="replace") as f:
            return "".join(deque(f, maxlen=lines))
    except OSError:
        return ""


def run_build(
    command: BuildCommand,
    cwd: Path,
    log_path: Path,
) -> BuildResult:
    """Execute a build command.

    Args:
        command: Command, environment overrides and timeout.
        cwd: Working directory (the checkout root).
        log_path: File receiving the combined build output.

    Returns:
        BuildResult with execution details.

    Raises:
        BuildFailure: If the build cannot start, times out or exits non-zero.
    """
    log_path.parent.mkdir(parents=True, exist_ok=True)

    cmd = list(command.argv)
    cmd_str = shlex.join(cmd)
    logger.info("Executing build: %s", cmd_str)
    logger.info("Working directory: %s", cwd)
    logger.info("Build log: %s", log_path)

    started_at = datetime.now(timezone.utc)

    try:
        with log_path.open("w") as log_file:
            log_file.write(f"# Command: {cmd_str}\n")
            log_file.write(f"# Started: {started_at.isoformat()}\n")
            log_file.write(f"# CWD: {cwd}\n")
            log_file.write("# " + "=" * 70 + "\n\n")
            log_file.flush()

            env: dict[str, str] | None = None
            if command.env:
                env = dict(os.environ)
                env.update(command.env)

            result = subprocess.run(
                cmd,
                cwd=cwd,
                stdout=log_file,
                stderr=subprocess.STDOUT,
                timeout=command.timeout,
                env=env,
                check=False,
            )
            exit_code = result.returncode

    except subprocess.TimeoutExpired as e:
        error_message = f"Build timed out after {command.timeout} seconds"
        logger.error("%s. See log: %s", error_message, log_path)

        with log_path.open("a") as log_file:
            log_file.write(f"\n# TIMEOUT after {command.timeout} seconds\n")

        raise BuildFailure(
            error_message,
            exit_code=-1,
            output=read_log_tail(log_path),
            log_path=log_path,
            code="build_timeout",
        ) from e

    except OSError as e:
        error_message = f"Failed to execute build: {e}"
        logger.error(error_message)
        raise BuildFailure(
            error_message,
            exit_code=None,
            log_path=log_path,
            code="execution_error",
        ) from e

    finished_at = datetime.now(timezone.utc)

    with log_path.open("a") as log_file:
        log_file.write(f"\n# Finished: {finished_at.isoformat()}\n")
        log_file.write(f"# Exit code: {exit_code}\n")
        duration = (finished_at - started_at).total_seconds()
        log_file.write(f"# Duration: {duration:.1f}s\n")

    if exit_code != 0:
        error_message = f"Build failed with exit code {exit_code}"
        logger.error("%s. See log: %s", error_message, log_path)
        raise BuildFailure(
            error_message,
            exit_code=exit_code,
            output=read_log_tail(log_path),
            log_path=log_path,
        )

    return BuildResult(
        exit_code=exit_code,
        log_path=log_path,
        started_at=started_at,
        finished_at=finished_at,
        command=cmd_str,
    )


__all__ = [
    "OUTPUT_TAIL_LINES",
    "BuildResult",
    "read_log_tail",
    "run_build",
]
