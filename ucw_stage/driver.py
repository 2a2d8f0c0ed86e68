"""Build driver invocation.

This module handles:
- Best-effort installation of the build driver's Python dependencies
- Composing and running `python build.py --ci` for an architecture
- Returning the raw exit code; a non-zero exit is not an error here

No timeout is enforced: the CI job's wall-clock limit ends long builds.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from ucw_stage.process import ProcessError, run_process
from ucw_stage.types import Architecture, Workspace

logger = logging.getLogger(__name__)

BUILD_SCRIPT = "build.py"


class DriverError(Exception):
    """Raised when the build driver cannot be started."""

    def __init__(self, message: str, code: str = "driver_error") -> None:
        super().__init__(message)
        self.code = code


@dataclass
class DriverResult:
    """Result of a build driver run.

    Attributes:
        exit_code: Driver exit code.
        command: The command that was executed.
        started_at: Start time.
        finished_at: Finish time.
    """

    exit_code: int
    command: str
    started_at: datetime
    finished_at: datetime

    @property
    def success(self) -> bool:
        return self.exit_code == 0


def compose_driver_command(
    architecture: Architecture,
    python: str = "python",
) -> list[str]:
    """Compose the build driver command for an architecture."""
    return [python, BUILD_SCRIPT, "--ci", *architecture.driver_flags]


def compose_install_command(pins: list[str], python: str = "python") -> list[str]:
    """Compose the pip command installing the driver's dependencies."""
    return [python, "-m", "pip", "install", *pins]


def install_dependencies(
    workspace: Workspace,
    pins: list[str],
    python: str = "python",
) -> bool:
    """Install driver dependencies, ignoring any failure.

    Returns:
        True if pip succeeded.
    """
    if not pins:
        return True
    try:
        result = run_process(
            compose_install_command(pins, python),
            cwd=workspace.root,
            check=False,
        )
    except ProcessError as e:
        logger.warning("Skipping dependency install: %s", e)
        return False
    if not result.success:
        logger.warning("Dependency install exited with code %d", result.exit_code)
    return result.success


def run_build_driver(
    architecture: Architecture,
    workspace: Workspace,
    python: str = "python",
    dependency_pins: list[str] | None = None,
) -> DriverResult:
    """Run the build driver until it exits.

    Args:
        architecture: Target architecture.
        workspace: Workspace locations.
        python: Interpreter used to run build.py.
        dependency_pins: Packages installed first, best effort.

    Returns:
        DriverResult with the raw exit code.

    Raises:
        DriverError: If the driver cannot be started.
    """
    if dependency_pins:
        install_dependencies(workspace, dependency_pins, python)

    cmd = compose_driver_command(architecture, python)
    try:
        result = run_process(cmd, cwd=workspace.root, check=False)
    except ProcessError as e:
        raise DriverError(f"Failed to start build driver: {e}") from e

    if result.success:
        logger.info("Build driver finished in %.0fs", result.duration)
    else:
        logger.warning(
            "Build driver exited with code %d after %.0fs",
            result.exit_code,
            result.duration,
        )

    return DriverResult(
        exit_code=result.exit_code,
        command=result.command,
        started_at=result.started_at,
        finished_at=result.finished_at,
    )


__all__ = [
    "BUILD_SCRIPT",
    "DriverError",
    "DriverResult",
    "compose_driver_command",
    "compose_install_command",
    "install_dependencies",
    "run_build_driver",
]
