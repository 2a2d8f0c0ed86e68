"""7-Zip archiver wrapper.

Snapshots and portable packages are zip archives produced by the 7z
command-line tool; this module composes its `a` and `x` commands.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from ucw_stage.process import ProcessError, ProcessResult, run_process

logger = logging.getLogger(__name__)


class ArchiverError(Exception):
    """Raised when compression or extraction fails."""

    def __init__(
        self,
        message: str,
        exit_code: int | None = None,
        code: str = "archiver_error",
    ) -> None:
        super().__init__(message)
        self.exit_code = exit_code
        self.code = code


def compose_compress_command(
    executable: str,
    archive_path: Path,
    sources: list[Path],
    level: int,
    extra_switches: list[str] | None = None,
) -> list[str]:
    """Compose a `7z a -tzip` command.

    Args:
        executable: 7z executable.
        archive_path: Archive to create or update.
        sources: Files or directories to add.
        level: Compression level for -mx.
        extra_switches: Additional switches such as -mmt=on.

    Returns:
        Command as list of strings.
    """
    cmd = [executable, "a", "-tzip", str(archive_path)]
    cmd.extend(str(s) for s in sources)
    cmd.append(f"-mx={level}")
    if extra_switches:
        cmd.extend(extra_switches)
    return cmd


def compose_extract_command(
    executable: str,
    archive_path: Path,
    dest_dir: Path,
) -> list[str]:
    """Compose a `7z x` command that overwrites existing files."""
    return [executable, "x", str(archive_path), f"-o{dest_dir}", "-y"]


@dataclass
class SevenZip:
    """Thin wrapper over the 7z executable."""

    executable: str = "7z"

    def compress(
        self,
        archive_path: Path,
        sources: list[Path],
        level: int = 5,
        extra_switches: list[str] | None = None,
        check: bool = True,
    ) -> ProcessResult:
        """Compress sources into a zip archive.

        Args:
            archive_path: Archive to create.
            sources: Files or directories to add.
            level: Compression level.
            extra_switches: Additional 7z switches.
            check: Raise ArchiverError on a non-zero exit code.

        Returns:
            ProcessResult of the 7z run.

        Raises:
            ArchiverError: If 7z cannot run, or exits non-zero with check.
        """
        cmd = compose_compress_command(
            self.executable, archive_path, sources, level, extra_switches
        )
        logger.info("Compressing %d path(s) into %s", len(sources), archive_path)
        try:
            result = run_process(cmd, check=False)
        except ProcessError as e:
            raise ArchiverError(str(e), code="archiver_unavailable") from e
        if check and not result.success:
            raise ArchiverError(
                f"7z failed to create {archive_path.name} (exit code {result.exit_code})",
                exit_code=result.exit_code,
                code="compress_failed",
            )
        return result

    def extract(self, archive_path: Path, dest_dir: Path) -> ProcessResult:
        """Extract an archive into dest_dir.

        Raises:
            ArchiverError: If 7z cannot run or exits non-zero.
        """
        cmd = compose_extract_command(self.executable, archive_path, dest_dir)
        logger.info("Extracting %s to %s", archive_path.name, dest_dir)
        try:
            result = run_process(cmd, check=False)
        except ProcessError as e:
            raise ArchiverError(str(e), code="archiver_unavailable") from e
        if not result.success:
            raise ArchiverError(
                f"7z failed to extract {archive_path.name} (exit code {result.exit_code})",
                exit_code=result.exit_code,
                code="extract_failed",
            )
        return result


__all__ = [
    "ArchiverError",
    "SevenZip",
    "compose_compress_command",
    "compose_extract_command",
]
