"""External process execution.

This module handles:
- Running external tools (python, 7z, powershell, robocopy)
- Logging the composed command and working directory
- Converting start failures and non-zero exits into ProcessError
"""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

logger = logging.getLogger(__name__)


class ProcessError(Exception):
    """Raised when an external process cannot run or exits non-zero."""

    def __init__(
        self,
        message: str,
        exit_code: int | None = None,
        code: str = "process_error",
    ) -> None:
        super().__init__(message)
        self.exit_code = exit_code
        self.code = code


@dataclass
class ProcessResult:
    """Result of an external process execution.

    Attributes:
        command: The command that was executed, shell-quoted.
        exit_code: Process exit code.
        started_at: Start time.
        finished_at: Finish time.
        stdout: Captured standard output (only when capture was requested).
    """

    command: str
    exit_code: int
    started_at: datetime
    finished_at: datetime
    stdout: str | None = None

    @property
    def success(self) -> bool:
        return self.exit_code == 0

    @property
    def duration(self) -> float:
        return (self.finished_at - self.started_at).total_seconds()


def run_process(
    cmd: Sequence[str | os.PathLike[str]],
    cwd: Path | None = None,
    check: bool = True,
    capture: bool = False,
    env_override: dict[str, str] | None = None,
) -> ProcessResult:
    """Run an external process to completion.

    Output goes straight to the CI log unless ``capture`` is set.

    Args:
        cmd: Command and arguments.
        cwd: Working directory.
        check: Raise ProcessError on a non-zero exit code.
        capture: Capture stdout as text instead of inheriting it.
        env_override: Optional environment variable overrides.

    Returns:
        ProcessResult with exit code and timing.

    Raises:
        ProcessError: If the process cannot start, or exits non-zero with check.
    """
    args = [str(c) for c in cmd]
    cmd_str = shlex.join(args)
    logger.info("Executing: %s", cmd_str)
    if cwd is not None:
        logger.debug("Working directory: %s", cwd)

    env: dict[str, str] | None = None
    if env_override:
        env = dict(os.environ)
        env.update(env_override)

    started_at = datetime.now(timezone.utc)
    try:
        result = subprocess.run(
            args,
            cwd=cwd,
            stdout=subprocess.PIPE if capture else None,
            text=capture,
            env=env,
            check=False,
        )
    except OSError as e:
        raise ProcessError(
            f"Failed to execute {args[0]}: {e}",
            exit_code=None,
            code="execution_error",
        ) from e
    finished_at = datetime.now(timezone.utc)

    process_result = ProcessResult(
        command=cmd_str,
        exit_code=result.returncode,
        started_at=started_at,
        finished_at=finished_at,
        stdout=result.stdout if capture else None,
    )
    logger.debug(
        "%s exited with %d after %.1fs",
        args[0],
        process_result.exit_code,
        process_result.duration,
    )

    if check and not process_result.success:
        raise ProcessError(
            f"{args[0]} exited with code {process_result.exit_code}",
            exit_code=process_result.exit_code,
            code="nonzero_exit",
        )
    return process_result


__all__ = ["ProcessError", "ProcessResult", "run_process"]
