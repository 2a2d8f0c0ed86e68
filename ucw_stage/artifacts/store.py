"""Artifact store interface.

Artifacts are named blobs kept by the CI platform and are the only channel
between stage invocations. Stores expose get/download/delete/upload by name.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)


class ArtifactStoreError(Exception):
    """Raised when an artifact store operation fails."""

    def __init__(self, message: str, code: str = "artifact_store_error") -> None:
        super().__init__(message)
        self.code = code


class ArtifactNotFoundError(ArtifactStoreError):
    """Raised when no artifact exists under a name."""

    def __init__(self, name: str, code: str = "artifact_not_found") -> None:
        super().__init__(f"Artifact not found: {name}", code=code)
        self.name = name


@dataclass
class StoredArtifact:
    """An artifact as known to the store."""

    name: str
    artifact_id: int
    size_bytes: int
    created_at: datetime | None = None


class ArtifactStore(Protocol):
    """Operations the stage needs from an artifact store."""

    def get(self, name: str) -> StoredArtifact:
        """Return the latest artifact named ``name``."""
        ...

    def download(self, name: str, dest_dir: Path) -> Path:
        """Download artifact files into dest_dir and return dest_dir."""
        ...

    def delete(self, name: str) -> None:
        """Delete the artifact named ``name``."""
        ...

    def upload(
        self,
        name: str,
        files: list[Path],
        root_dir: Path,
        retention_days: int = 1,
        compression_level: int = 0,
    ) -> StoredArtifact:
        """Upload files (stored relative to root_dir) under ``name``."""
        ...


@dataclass
class InMemoryArtifactStore:
    """Artifact store kept in process memory.

    Used for tests and local dry runs of a stage.
    """

    artifacts: dict[str, StoredArtifact] = field(default_factory=dict)
    contents: dict[str, dict[str, bytes]] = field(default_factory=dict)
    _next_id: int = 1

    def get(self, name: str) -> StoredArtifact:
        try:
            return self.artifacts[name]
        except KeyError:
            raise ArtifactNotFoundError(name) from None

    def download(self, name: str, dest_dir: Path) -> Path:
        self.get(name)
        dest_dir.mkdir(parents=True, exist_ok=True)
        for relative_path, data in self.contents[name].items():
            target = dest_dir / relative_path
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        logger.info("Downloaded artifact %s to %s", name, dest_dir)
        return dest_dir

    def delete(self, name: str) -> None:
        self.get(name)
        del self.artifacts[name]
        del self.contents[name]
        logger.info("Deleted artifact %s", name)

    def upload(
        self,
        name: str,
        files: list[Path],
        root_dir: Path,
        retention_days: int = 1,
        compression_level: int = 0,
    ) -> StoredArtifact:
        if name in self.artifacts:
            raise ArtifactStoreError(
                f"Artifact already exists: {name}", code="artifact_conflict"
            )
        payload: dict[str, bytes] = {}
        for path in files:
            try:
                relative_path = path.relative_to(root_dir).as_posix()
            except ValueError:
                raise ArtifactStoreError(
                    f"{path} is not under root directory {root_dir}",
                    code="invalid_path",
                ) from None
            payload[relative_path] = path.read_bytes()

        artifact = StoredArtifact(
            name=name,
            artifact_id=self._next_id,
            size_bytes=sum(len(b) for b in payload.values()),
            created_at=datetime.now(timezone.utc),
        )
        self._next_id += 1
        self.artifacts[name] = artifact
        self.contents[name] = payload
        logger.info("Uploaded artifact %s (%d bytes)", name, artifact.size_bytes)
        return artifact


__all__ = [
    "ArtifactNotFoundError",
    "ArtifactStore",
    "ArtifactStoreError",
    "InMemoryArtifactStore",
    "StoredArtifact",
]
