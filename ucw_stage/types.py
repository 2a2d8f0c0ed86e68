"""Shared type definitions for ucw_stage.

This module contains the enums and dataclasses shared across the stage
components to avoid circular imports.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

ENTRY_POINT_NAME = "chrome.exe"
PORTABLE_DIR_PREFIX = "chromePortable-"
USER_DATA_DIR_NAME = "UserData"
SNAPSHOT_ARCHIVE_NAME = "artifacts.zip"


class Architecture(str, Enum):
    """Target architecture of a stage."""

    DEFAULT = "default"
    X86 = "x86"
    ARM = "arm"

    @classmethod
    def from_flags(cls, x86: bool = False, arm: bool = False) -> Architecture:
        """Resolve the architecture from the boolean step inputs.

        x86 takes precedence when both flags are set.
        """
        if x86:
            return cls.X86
        if arm:
            return cls.ARM
        return cls.DEFAULT

    @property
    def package_tag(self) -> str:
        """Tag used in the portable directory and archive names."""
        return {"default": "x64", "x86": "x86", "arm": "arm64"}[self.value]

    @property
    def name_suffix(self) -> str:
        """Suffix appended to artifact names (empty for the default build)."""
        return "" if self is Architecture.DEFAULT else f"-{self.value}"

    @property
    def snapshot_artifact_name(self) -> str:
        """Artifact name used for resumable build snapshots."""
        return f"build-artifact{self.name_suffix}"

    @property
    def package_artifact_name(self) -> str:
        """Artifact name used for the final portable package."""
        return f"chromium{self.name_suffix}"

    @property
    def driver_flags(self) -> list[str]:
        """Extra flags passed to the build driver."""
        return [] if self is Architecture.DEFAULT else [f"--{self.value}"]


@dataclass(frozen=True)
class BuildConfiguration:
    """Per-invocation inputs of a stage. Never mutated."""

    finished: bool
    from_artifact: bool
    architecture: Architecture = Architecture.DEFAULT

    @classmethod
    def from_inputs(
        cls,
        finished: bool,
        from_artifact: bool,
        x86: bool = False,
        arm: bool = False,
    ) -> BuildConfiguration:
        """Build a configuration from the raw CI step inputs."""
        return cls(
            finished=finished,
            from_artifact=from_artifact,
            architecture=Architecture.from_flags(x86=x86, arm=arm),
        )


@dataclass(frozen=True)
class Workspace:
    """Filesystem locations shared between stage invocations.

    Attributes:
        root: Checkout of the Windows build repository (holds build.py).
        output_candidates: Output directory names under ``out`` probed in order.
        output_glob: Glob (relative to ``out``) used when no candidate matches.
    """

    root: Path
    output_candidates: tuple[str, ...] = ("Default", "Release")
    output_glob: str = f"*/{ENTRY_POINT_NAME}"

    @property
    def build_dir(self) -> Path:
        return self.root / "build"

    @property
    def source_dir(self) -> Path:
        return self.build_dir / "src"

    @property
    def out_dir(self) -> Path:
        return self.source_dir / "out"

    @property
    def snapshot_archive(self) -> Path:
        """Where a new snapshot is written before upload."""
        return self.root / SNAPSHOT_ARCHIVE_NAME

    @property
    def restored_snapshot_archive(self) -> Path:
        """Where a downloaded snapshot lands before extraction."""
        return self.build_dir / SNAPSHOT_ARCHIVE_NAME

    def candidate_output_dirs(self) -> list[Path]:
        """Return the candidate build output directories in probe order."""
        return [self.out_dir / name for name in self.output_candidates]


@dataclass
class PortablePackage:
    """Result of packaging a build output directory."""

    archive_path: Path
    package_root: Path
    version: str
    arch_tag: str
    copied_entries: list[str] = field(default_factory=list)
    retained: bool = False


__all__ = [
    "ENTRY_POINT_NAME",
    "PORTABLE_DIR_PREFIX",
    "SNAPSHOT_ARCHIVE_NAME",
    "USER_DATA_DIR_NAME",
    "Architecture",
    "BuildConfiguration",
    "PortablePackage",
    "Workspace",
]
