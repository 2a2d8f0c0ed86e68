"""Artifact transport between stage invocations.

This module handles:
- The artifact store interface and an in-memory store
- The GitHub Actions artifact service client
- Publishing with delete-then-upload and bounded retries
"""

from ucw_stage.artifacts.publisher import PublishResult, publish_artifact
from ucw_stage.artifacts.store import (
    ArtifactNotFoundError,
    ArtifactStore,
    ArtifactStoreError,
    InMemoryArtifactStore,
    StoredArtifact,
)

__all__ = [
    "ArtifactNotFoundError",
    "ArtifactStore",
    "ArtifactStoreError",
    "InMemoryArtifactStore",
    "PublishResult",
    "StoredArtifact",
    "publish_artifact",
]
