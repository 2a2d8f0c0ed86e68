"""Snapshotting an unfinished build for the next stage."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from pathlib import Path

from ucw_stage.archiver import ArchiverError, SevenZip
from ucw_stage.types import Workspace

logger = logging.getLogger(__name__)


def create_snapshot(
    workspace: Workspace,
    archiver: SevenZip,
    grace_period: float = 5.0,
    archive_level: int = 3,
    sleep: Callable[[float], None] = time.sleep,
) -> Path:
    """Compress the in-progress source tree into the snapshot archive.

    The archiver's exit code is ignored: files still locked by the build
    are skipped and the snapshot is kept regardless.

    Args:
        workspace: Workspace locations.
        archiver: Archiver used to compress the tree.
        grace_period: Seconds to wait for file handles to close.
        archive_level: 7z compression level.
        sleep: Sleep function.

    Returns:
        Path to the snapshot archive (which may be incomplete or absent).
    """
    archive = workspace.snapshot_archive
    if grace_period > 0:
        logger.info("Waiting %.0fs before snapshotting", grace_period)
        sleep(grace_period)

    # 7z `a` adds to an existing archive
    archive.unlink(missing_ok=True)
    try:
        result = archiver.compress(
            archive,
            [workspace.source_dir],
            level=archive_level,
            extra_switches=["-mtc=on"],
            check=False,
        )
    except ArchiverError as e:
        logger.warning("Snapshot compression failed: %s", e)
        return archive

    if not result.success:
        logger.warning(
            "Snapshot compression exited with code %d; keeping partial snapshot",
            result.exit_code,
        )
    if not archive.exists():
        logger.warning("Snapshot archive %s was not created", archive)
    return archive


__all__ = ["create_snapshot"]
