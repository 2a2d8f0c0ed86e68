"""Stage orchestration.

This module provides the high-level stage API:
- run_stage(): restore, build, then package or snapshot, then publish
- ignore_interrupts(): keep running external processes alive on SIGINT
"""

from __future__ import annotations

import logging
import signal
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from ucw_stage.archiver import SevenZip
from ucw_stage.artifacts.publisher import PublishResult, publish_artifact
from ucw_stage.artifacts.store import ArtifactStore
from ucw_stage.config import Settings
from ucw_stage.driver import DriverResult, run_build_driver
from ucw_stage.packager import create_portable_package, locate_build_output
from ucw_stage.resume import restore_snapshot
from ucw_stage.snapshot import create_snapshot
from ucw_stage.types import BuildConfiguration, PortablePackage

logger = logging.getLogger(__name__)


@dataclass
class StageResult:
    """Outcome of one stage invocation.

    Attributes:
        finished: Value of the `finished` step output.
        restored: Whether a snapshot was restored first.
        driver: Build driver result (None if the build was already finished).
        package: Portable package (successful builds only).
        publish: Artifact publish result, if anything was published.
    """

    finished: bool
    restored: bool = False
    driver: DriverResult | None = None
    package: PortablePackage | None = None
    publish: PublishResult | None = None

    @property
    def exit_code(self) -> int | None:
        """Build driver exit code, or None if the driver did not run."""
        return self.driver.exit_code if self.driver is not None else None


def ignore_interrupts() -> None:
    """Install a SIGINT handler that does nothing.

    The runner interrupts the step when the job times out; the current
    external process keeps writing until the job is killed.
    """
    signal.signal(signal.SIGINT, lambda signum, frame: None)


def run_stage(
    config: BuildConfiguration,
    settings: Settings,
    store: ArtifactStore,
    archiver: SevenZip | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> StageResult:
    """Run one stage of the resumable build.

    Args:
        config: Stage inputs.
        settings: Stage settings.
        store: Artifact store.
        archiver: Archiver (defaults to the configured 7z).
        sleep: Sleep function used for grace periods and retry backoff.

    Returns:
        StageResult; `finished` is True only when the build completed.

    Raises:
        ResumeError: If a requested snapshot cannot be restored.
        DriverError: If the build driver cannot be started.
        BuildOutputNotFoundError: If a finished build has no output.
        VersionQueryError: If the version query fails under the "fail" policy.
        PackagingError: If the portable layout cannot be assembled.
        ArchiverError: If the portable archive cannot be created.
    """
    logger.info(
        "finished: %s, artifact: %s, arch: %s",
        config.finished,
        config.from_artifact,
        config.architecture.value,
    )
    if config.finished:
        return StageResult(finished=True)

    workspace = settings.workspace
    if archiver is None:
        archiver = SevenZip(settings.archiver)

    restored = restore_snapshot(config, workspace, store, archiver)

    driver = run_build_driver(
        config.architecture,
        workspace,
        python=settings.python_executable,
        dependency_pins=settings.dependency_pins,
    )

    def publish(name: str, archive_path: Path) -> PublishResult:
        return publish_artifact(
            store,
            name,
            archive_path,
            retention_days=settings.retention_days,
            compression_level=settings.compression_level,
            attempts=settings.upload_attempts,
            retry_delay=settings.upload_retry_delay,
            sleep=sleep,
        )

    if driver.success:
        build_dir = locate_build_output(workspace)
        package = create_portable_package(
            build_dir,
            config.architecture,
            archiver,
            powershell=settings.powershell,
            on_version_query_error=settings.on_version_query_error,
            copy_strategy=settings.copy_strategy,
            robocopy=settings.robocopy,
            write_git_metadata=settings.write_git_metadata,
            retain_uncompressed_package=settings.retain_uncompressed_package,
            archive_level=settings.package_archive_level,
        )
        published = publish(
            config.architecture.package_artifact_name, package.archive_path
        )
        return StageResult(
            finished=True,
            restored=restored,
            driver=driver,
            package=package,
            publish=published,
        )

    snapshot = create_snapshot(
        workspace,
        archiver,
        grace_period=settings.snapshot_grace_period,
        archive_level=settings.snapshot_archive_level,
        sleep=sleep,
    )
    published = publish(config.architecture.snapshot_artifact_name, snapshot)
    return StageResult(
        finished=False,
        restored=restored,
        driver=driver,
        publish=published,
    )


__all__ = ["StageResult", "ignore_interrupts", "run_stage"]
