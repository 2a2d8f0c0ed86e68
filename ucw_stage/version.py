"""File version lookup for the built entry-point executable."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Literal

from ucw_stage.process import ProcessError, run_process

logger = logging.getLogger(__name__)

UNKNOWN_VERSION = "unknown"


class VersionQueryError(Exception):
    """Raised when the file version of an executable cannot be read."""

    def __init__(self, message: str, code: str = "version_query_failed") -> None:
        super().__init__(message)
        self.code = code


def _quote_literal(value: str) -> str:
    """Quote a PowerShell verbatim string; nothing inside is expanded."""
    return "'" + value.replace("'", "''") + "'"


def compose_version_query(powershell: str, executable: Path) -> list[str]:
    """Compose the PowerShell command printing an executable's FileVersion."""
    path = _quote_literal(str(executable))
    return [
        powershell,
        "-NoProfile",
        "-Command",
        f"(Get-Item -LiteralPath {path}).VersionInfo.FileVersion",
    ]


def query_file_version(executable: Path, powershell: str = "powershell") -> str:
    """Read the embedded FileVersion of an executable.

    Args:
        executable: Path to the executable.
        powershell: PowerShell executable.

    Returns:
        The version string, stripped.

    Raises:
        VersionQueryError: If PowerShell fails or prints nothing.
    """
    try:
        result = run_process(
            compose_version_query(powershell, executable),
            capture=True,
            check=True,
        )
    except ProcessError as e:
        raise VersionQueryError(
            f"Failed to query version of {executable.name}: {e}"
        ) from e

    version = (result.stdout or "").strip()
    if not version:
        raise VersionQueryError(
            f"No file version embedded in {executable.name}",
            code="version_missing",
        )
    return version


def resolve_version(
    executable: Path,
    powershell: str = "powershell",
    on_error: Literal["unknown", "fail"] = "unknown",
) -> str:
    """Query the version, applying the configured failure policy.

    Raises:
        VersionQueryError: If the query fails and on_error is "fail".
    """
    try:
        version = query_file_version(executable, powershell=powershell)
    except VersionQueryError as e:
        if on_error == "fail":
            raise
        logger.error("%s; using '%s'", e, UNKNOWN_VERSION)
        version = UNKNOWN_VERSION
    logger.info("Detected version: %s", version)
    return version


__all__ = [
    "UNKNOWN_VERSION",
    "VersionQueryError",
    "compose_version_query",
    "query_file_version",
    "resolve_version",
]
