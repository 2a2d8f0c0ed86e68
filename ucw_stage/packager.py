"""Portable package assembly.

This module handles:
- Locating the build output directory that holds chrome.exe
- Laying out chromePortable-<arch>/ (entry point at the root, everything
  else under a version-named directory, an empty UserData directory)
- Rendering README.txt and the optional git metadata files
- Compressing the package next to the build output
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Literal

from ucw_stage.archiver import SevenZip
from ucw_stage.process import ProcessError, run_process
from ucw_stage.types import (
    ENTRY_POINT_NAME,
    PORTABLE_DIR_PREFIX,
    USER_DATA_DIR_NAME,
    Architecture,
    PortablePackage,
    Workspace,
)
from ucw_stage.version import resolve_version

logger = logging.getLogger(__name__)

ARCHIVE_PREFIX = "ungoogled-chromium-"
ARCHIVE_SUFFIX = "-portable.zip"
PROJECT_URL = "https://github.com/ungoogled-software/ungoogled-chromium-windows"

# Robocopy exit codes at or above this value indicate failure
ROBOCOPY_FAILURE_THRESHOLD = 8

GITIGNORE_TEMPLATE = f"""# Ignore user data
{USER_DATA_DIR_NAME}/*
!{USER_DATA_DIR_NAME}/.gitkeep
"""


class BuildOutputNotFoundError(Exception):
    """Raised when no build output directory contains the entry point."""

    def __init__(self, out_dir: Path, code: str = "build_output_not_found") -> None:
        super().__init__(
            f"Build output not found: no {ENTRY_POINT_NAME} under {out_dir}"
        )
        self.out_dir = out_dir
        self.code = code


class PackagingError(Exception):
    """Raised when the portable layout cannot be assembled."""

    def __init__(self, message: str, code: str = "packaging_error") -> None:
        super().__init__(message)
        self.code = code


def locate_build_output(workspace: Workspace) -> Path:
    """Find the build output directory.

    Candidate directories are probed in order; if none holds the entry
    point, the workspace glob is searched.

    Raises:
        BuildOutputNotFoundError: If no directory holds the entry point.
    """
    for candidate in workspace.candidate_output_dirs():
        if (candidate / ENTRY_POINT_NAME).is_file():
            logger.info("Found build directory: %s", candidate)
            return candidate

    if workspace.out_dir.is_dir():
        matches = sorted(workspace.out_dir.glob(workspace.output_glob))
        if matches:
            found = matches[0].parent
            logger.info("Found build directory via glob: %s", found)
            return found

    raise BuildOutputNotFoundError(workspace.out_dir)


def package_dir_name(arch_tag: str) -> str:
    return f"{PORTABLE_DIR_PREFIX}{arch_tag}"


def archive_name(version: str, arch_tag: str) -> str:
    """Return the portable archive filename."""
    return f"{ARCHIVE_PREFIX}{version}-{arch_tag}{ARCHIVE_SUFFIX}"


def is_previous_package(name: str) -> bool:
    """Whether a build output entry was produced by an earlier packaging run."""
    if name.startswith(PORTABLE_DIR_PREFIX):
        return True
    return name.startswith(ARCHIVE_PREFIX) and name.endswith(ARCHIVE_SUFFIX)


def render_readme(version: str, arch_tag: str) -> str:
    """Render README.txt for a portable package."""
    root = package_dir_name(arch_tag)
    return f"""Ungoogled Chromium Portable {version} ({arch_tag})

=======================================================
PORTABLE VERSION - NO INSTALLATION REQUIRED
=======================================================

STRUCTURE:
----------
{root}/
  ├── {ENTRY_POINT_NAME}          <- Run this file
  ├── {version}/         <- Browser binaries
  │   ├── chrome.dll
  │   ├── Locales/
  │   ├── *.pak
  │   └── ...
  └── {USER_DATA_DIR_NAME}/           <- Your profile (created on first run)
      ├── Default/
      └── ...

FEATURES:
---------
* Fully Portable       - Copy folder anywhere
* Symmetric Encryption - Cookies/passwords work on any PC
* Auto User Data Path  - No --user-data-dir needed
* No Machine Binding   - No --disable-machine-id needed
* No DPAPI Dependency  - Transfer between Windows PCs freely

USAGE:
------
1. Extract this archive
2. Run {ENTRY_POINT_NAME}
3. Your data is automatically saved to the {USER_DATA_DIR_NAME} folder
4. To move to another PC: copy the entire folder

NOTES:
------
- First run fills the {USER_DATA_DIR_NAME} folder automatically
- All your settings, extensions and cookies are in {USER_DATA_DIR_NAME}
- Safe to delete the {USER_DATA_DIR_NAME} folder to start fresh
- Version {version} files are in the {version} subfolder

For more info: {PROJECT_URL}
"""


def _copy_entries(build_dir: Path, version_dir: Path) -> list[str]:
    """Copy build output entries into version_dir with shutil."""
    copied: list[str] = []
    for src in sorted(build_dir.iterdir()):
        if src.name == ENTRY_POINT_NAME or is_previous_package(src.name):
            continue
        dest = version_dir / src.name
        try:
            if src.is_dir():
                shutil.copytree(src, dest)
            else:
                shutil.copy2(src, dest)
        except OSError as e:
            raise PackagingError(
                f"Failed to copy {src.name}: {e}", code="copy_failed"
            ) from e
        copied.append(src.name)
    return copied


def _mirror_entries(build_dir: Path, version_dir: Path, robocopy: str) -> list[str]:
    """Mirror build output entries into version_dir with robocopy."""
    cmd = [
        robocopy,
        str(build_dir),
        str(version_dir),
        "/E",
        "/XF",
        ENTRY_POINT_NAME,
        f"{ARCHIVE_PREFIX}*{ARCHIVE_SUFFIX}",
        "/XD",
        f"{PORTABLE_DIR_PREFIX}*",
        "/NFL",
        "/NDL",
        "/NP",
    ]
    try:
        result = run_process(cmd, check=False)
    except ProcessError as e:
        raise PackagingError(str(e), code="copy_failed") from e
    if result.exit_code >= ROBOCOPY_FAILURE_THRESHOLD:
        raise PackagingError(
            f"robocopy failed with exit code {result.exit_code}",
            code="copy_failed",
        )
    return sorted(
        p.name
        for p in build_dir.iterdir()
        if p.name != ENTRY_POINT_NAME and not is_previous_package(p.name)
    )


def create_portable_package(
    build_dir: Path,
    architecture: Architecture,
    archiver: SevenZip,
    powershell: str = "powershell",
    on_version_query_error: Literal["unknown", "fail"] = "unknown",
    copy_strategy: Literal["copytree", "robocopy"] = "copytree",
    robocopy: str = "robocopy",
    write_git_metadata: bool = True,
    retain_uncompressed_package: bool = False,
    archive_level: int = 5,
) -> PortablePackage:
    """Assemble and compress the portable package for a build output.

    Args:
        build_dir: Build output directory containing the entry point.
        architecture: Target architecture.
        archiver: Archiver used to compress the package.
        powershell: PowerShell executable used for the version query.
        on_version_query_error: "unknown" to substitute a placeholder
            version, "fail" to propagate the query failure.
        copy_strategy: "copytree" or "robocopy".
        robocopy: Robocopy executable.
        write_git_metadata: Write .gitignore and UserData/.gitkeep.
        retain_uncompressed_package: Keep the package directory after
            compression.
        archive_level: 7z compression level.

    Returns:
        PortablePackage describing the archive.

    Raises:
        BuildOutputNotFoundError: If build_dir lacks the entry point.
        VersionQueryError: If the version query fails and policy is "fail".
        PackagingError: If the layout cannot be written or copying fails.
        ArchiverError: If compression fails.
    """
    entry_point = build_dir / ENTRY_POINT_NAME
    if not entry_point.is_file():
        raise BuildOutputNotFoundError(build_dir)

    arch_tag = architecture.package_tag
    package_root = build_dir / package_dir_name(arch_tag)
    logger.info("Creating portable structure in %s", package_root)

    version = resolve_version(
        entry_point, powershell=powershell, on_error=on_version_query_error
    )

    version_dir = package_root / version
    user_data_dir = package_root / USER_DATA_DIR_NAME
    try:
        if package_root.exists():
            logger.debug("Removing stale package directory %s", package_root)
            shutil.rmtree(package_root)
        version_dir.mkdir(parents=True)
        user_data_dir.mkdir()
    except OSError as e:
        raise PackagingError(
            f"Failed to prepare {package_root.name}: {e}", code="write_failed"
        ) from e

    try:
        shutil.copy2(entry_point, package_root / ENTRY_POINT_NAME)
    except OSError as e:
        raise PackagingError(
            f"Failed to copy {ENTRY_POINT_NAME}: {e}", code="copy_failed"
        ) from e
    if copy_strategy == "robocopy":
        copied = _mirror_entries(build_dir, version_dir, robocopy)
    else:
        copied = _copy_entries(build_dir, version_dir)
    logger.info("Copied %d entries into %s", len(copied), version_dir.name)

    archive_path = build_dir / archive_name(version, arch_tag)
    try:
        (package_root / "README.txt").write_text(
            render_readme(version, arch_tag), encoding="utf-8"
        )
        if write_git_metadata:
            (package_root / ".gitignore").write_text(GITIGNORE_TEMPLATE, encoding="utf-8")
            (user_data_dir / ".gitkeep").write_text("", encoding="utf-8")
        # 7z `a` adds to an existing archive
        archive_path.unlink(missing_ok=True)
    except OSError as e:
        raise PackagingError(
            f"Failed to write {package_root.name}: {e}", code="write_failed"
        ) from e

    logger.info("Creating archive: %s", archive_path.name)
    archiver.compress(
        archive_path,
        [package_root],
        level=archive_level,
        extra_switches=["-mmt=on"],
    )

    if not retain_uncompressed_package:
        # the archive is complete at this point
        try:
            shutil.rmtree(package_root)
        except OSError as e:
            logger.warning("Cannot remove %s: %s", package_root, e)

    logger.info("Portable package created: %s", archive_path.name)
    return PortablePackage(
        archive_path=archive_path,
        package_root=package_root,
        version=version,
        arch_tag=arch_tag,
        copied_entries=copied,
        retained=retain_uncompressed_package,
    )


__all__ = [
    "ARCHIVE_PREFIX",
    "ARCHIVE_SUFFIX",
    "BuildOutputNotFoundError",
    "GITIGNORE_TEMPLATE",
    "PackagingError",
    "archive_name",
    "create_portable_package",
    "is_previous_package",
    "locate_build_output",
    "package_dir_name",
    "render_readme",
]
