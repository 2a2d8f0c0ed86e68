"""Restoring an in-progress build from a snapshot artifact."""

from __future__ import annotations

import logging

from ucw_stage.archiver import ArchiverError, SevenZip
from ucw_stage.artifacts.store import ArtifactStore, ArtifactStoreError
from ucw_stage.types import BuildConfiguration, Workspace

logger = logging.getLogger(__name__)


class ResumeError(Exception):
    """Raised when a snapshot cannot be restored."""

    def __init__(self, message: str, code: str = "resume_failed") -> None:
        super().__init__(message)
        self.code = code


def restore_snapshot(
    config: BuildConfiguration,
    workspace: Workspace,
    store: ArtifactStore,
    archiver: SevenZip,
) -> bool:
    """Restore the snapshot for the configured architecture, if requested.

    The snapshot artifact is downloaded into the build directory, extracted
    in place and the downloaded archive removed.

    Args:
        config: Stage configuration.
        workspace: Workspace locations.
        store: Artifact store holding the snapshot.
        archiver: Archiver used to extract it.

    Returns:
        True if a snapshot was restored, False if none was requested.

    Raises:
        ResumeError: If the snapshot is missing or cannot be extracted.
    """
    if not config.from_artifact:
        return False

    name = config.architecture.snapshot_artifact_name
    build_dir = workspace.build_dir
    archive = workspace.restored_snapshot_archive
    logger.info("Restoring snapshot %s into %s", name, build_dir)

    try:
        artifact = store.get(name)
        logger.debug("Found snapshot %s (id %d)", name, artifact.artifact_id)
        store.download(name, build_dir)
    except ArtifactStoreError as e:
        raise ResumeError(f"Cannot fetch snapshot {name}: {e}") from e

    if not archive.is_file():
        raise ResumeError(
            f"Snapshot {name} does not contain {archive.name}",
            code="snapshot_missing",
        )

    try:
        archiver.extract(archive, build_dir)
    except ArchiverError as e:
        raise ResumeError(f"Cannot extract snapshot {name}: {e}") from e

    archive.unlink()
    logger.info("Restored snapshot %s", name)
    return True


__all__ = ["ResumeError", "restore_snapshot"]
