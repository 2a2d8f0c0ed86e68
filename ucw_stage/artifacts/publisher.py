"""Artifact publishing with delete-then-upload and bounded retries.

Upload failures never fail the stage: after the last attempt the failure is
logged and reported in the returned PublishResult.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from ucw_stage.artifacts.store import ArtifactStore, ArtifactStoreError

logger = logging.getLogger(__name__)

DEFAULT_ATTEMPTS = 5
DEFAULT_RETRY_DELAY = 10.0


@dataclass
class PublishResult:
    """Outcome of a publish call.

    Attributes:
        name: Artifact name.
        success: Whether an upload attempt succeeded.
        attempts: Number of upload attempts made.
        artifact_id: Id assigned by the store on success.
        error: Message of the last failure, if any.
    """

    name: str
    success: bool
    attempts: int
    artifact_id: int | None = None
    error: str | None = None


def delete_existing(store: ArtifactStore, name: str) -> bool:
    """Delete an artifact, ignoring every failure.

    Returns:
        True if an artifact was deleted.
    """
    try:
        store.delete(name)
    except Exception as e:  # the artifact usually does not exist
        logger.debug("Ignoring delete failure for %s: %s", name, e)
        return False
    return True


def publish_artifact(
    store: ArtifactStore,
    name: str,
    archive_path: Path,
    retention_days: int = 1,
    compression_level: int = 0,
    attempts: int = DEFAULT_ATTEMPTS,
    retry_delay: float = DEFAULT_RETRY_DELAY,
    sleep: Callable[[float], None] = time.sleep,
) -> PublishResult:
    """Replace the artifact ``name`` with a single archive.

    Args:
        store: Artifact store.
        name: Artifact name.
        archive_path: Archive file to upload.
        retention_days: Artifact retention.
        compression_level: Compression of the upload container.
        attempts: Total upload attempts.
        retry_delay: Seconds slept after each failed attempt.
        sleep: Sleep function.

    Returns:
        PublishResult; never raises for store failures.
    """
    last_error: str | None = None
    for attempt in range(1, attempts + 1):
        # a failed attempt may have left a partially created artifact
        if delete_existing(store, name):
            logger.info("Removed previous artifact %s", name)
        try:
            stored = store.upload(
                name,
                [archive_path],
                archive_path.parent,
                retention_days=retention_days,
                compression_level=compression_level,
            )
        except (ArtifactStoreError, OSError) as e:
            last_error = str(e)
            logger.warning(
                "Upload artifact %s failed (attempt %d/%d): %s",
                name,
                attempt,
                attempts,
                e,
            )
            sleep(retry_delay)
            continue

        logger.info("Artifact uploaded: %s", name)
        return PublishResult(
            name=name,
            success=True,
            attempts=attempt,
            artifact_id=stored.artifact_id,
        )

    logger.error(
        "Giving up on artifact %s after %d attempts: %s", name, attempts, last_error
    )
    return PublishResult(name=name, success=False, attempts=attempts, error=last_error)


__all__ = [
    "DEFAULT_ATTEMPTS",
    "DEFAULT_RETRY_DELAY",
    "PublishResult",
    "delete_existing",
    "publish_artifact",
]
