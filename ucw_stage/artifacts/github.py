"""GitHub Actions artifact store.

This module handles:
- Talking to the Actions results service (artifact API v4, Twirp/JSON)
- Zipping and uploading files to the signed blob URL in blocks
- Downloading and unzipping an artifact into a directory
- Deleting artifacts by name

The runtime token and results URL are provided to every job step as
ACTIONS_RUNTIME_TOKEN and ACTIONS_RESULTS_URL.
"""

from __future__ import annotations

import base64
import hashlib
import json
import logging
import os
import tempfile
import zipfile
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import httpx

from ucw_stage.artifacts.store import (
    ArtifactNotFoundError,
    ArtifactStoreError,
    StoredArtifact,
)

logger = logging.getLogger(__name__)

ARTIFACT_SERVICE_PATH = "twirp/github.actions.results.api.v1.ArtifactService"
ARTIFACT_VERSION = 4
RESULTS_SCOPE_PREFIX = "Actions.Results:"

# Azure block blob chunk size (bytes)
UPLOAD_BLOCK_SIZE = 8 * 1024 * 1024  # 8 MiB

# Chunk size for downloads (bytes)
DOWNLOAD_CHUNK_SIZE = 64 * 1024  # 64 KB


def parse_backend_ids(token: str) -> tuple[str, str]:
    """Extract the workflow run and job backend ids from a runtime token.

    The token is a JWT whose ``scp`` claim contains a scope of the form
    ``Actions.Results:<workflow_run_backend_id>:<workflow_job_run_backend_id>``.

    Args:
        token: ACTIONS_RUNTIME_TOKEN value.

    Returns:
        Tuple of (workflow_run_backend_id, workflow_job_run_backend_id).

    Raises:
        ArtifactStoreError: If the token cannot be decoded or lacks the scope.
    """
    parts = token.split(".")
    if len(parts) != 3:
        raise ArtifactStoreError("Runtime token is not a JWT", code="invalid_token")

    payload = parts[1] + "=" * (-len(parts[1]) % 4)
    try:
        claims = json.loads(base64.urlsafe_b64decode(payload))
    except ValueError as e:
        raise ArtifactStoreError(
            f"Cannot decode runtime token: {e}", code="invalid_token"
        ) from e

    for scope in str(claims.get("scp", "")).split():
        if not scope.startswith(RESULTS_SCOPE_PREFIX):
            continue
        fields = scope.split(":")
        if len(fields) != 3:
            break
        return fields[1], fields[2]

    raise ArtifactStoreError(
        "Runtime token has no Actions.Results scope", code="invalid_token"
    )


def _block_id(index: int) -> str:
    return base64.b64encode(f"{index:08d}".encode()).decode()


def _block_list_xml(block_ids: list[str]) -> str:
    entries = "".join(f"<Latest>{b}</Latest>" for b in block_ids)
    return f'<?xml version="1.0" encoding="utf-8"?><BlockList>{entries}</BlockList>'


def zip_files(
    files: list[Path],
    root_dir: Path,
    dest_path: Path,
    compression_level: int = 0,
) -> Path:
    """Write files into a zip container with paths relative to root_dir.

    Level 0 stores entries uncompressed.

    Raises:
        ArtifactStoreError: If a file is not under root_dir.
    """
    if compression_level == 0:
        options: dict[str, Any] = {"compression": zipfile.ZIP_STORED}
    else:
        options = {
            "compression": zipfile.ZIP_DEFLATED,
            "compresslevel": compression_level,
        }

    with zipfile.ZipFile(dest_path, "w", allowZip64=True, **options) as zf:
        for path in files:
            try:
                arcname = path.relative_to(root_dir).as_posix()
            except ValueError:
                raise ArtifactStoreError(
                    f"{path} is not under root directory {root_dir}",
                    code="invalid_path",
                ) from None
            zf.write(path, arcname)
    return dest_path


@dataclass
class GitHubArtifactStore:
    """Artifact store backed by the GitHub Actions results service."""

    client: httpx.Client
    results_url: str
    token: str
    timeout: float = 600.0
    run_backend_id: str = field(init=False)
    job_backend_id: str = field(init=False)

    def __post_init__(self) -> None:
        self.run_backend_id, self.job_backend_id = parse_backend_ids(self.token)

    @classmethod
    def from_env(
        cls,
        client: httpx.Client,
        environ: Mapping[str, str] | None = None,
        timeout: float = 600.0,
    ) -> GitHubArtifactStore:
        """Create a store from the runner-provided environment.

        Raises:
            ArtifactStoreError: If the runtime variables are missing.
        """
        env = os.environ if environ is None else environ
        token = env.get("ACTIONS_RUNTIME_TOKEN")
        results_url = env.get("ACTIONS_RESULTS_URL")
        if not token or not results_url:
            raise ArtifactStoreError(
                "ACTIONS_RUNTIME_TOKEN and ACTIONS_RESULTS_URL must be set",
                code="missing_runtime",
            )
        return cls(client=client, results_url=results_url, token=token, timeout=timeout)

    def _scope(self) -> dict[str, str]:
        return {
            "workflow_run_backend_id": self.run_backend_id,
            "workflow_job_run_backend_id": self.job_backend_id,
        }

    def _call(self, method: str, body: dict[str, Any], name: str) -> dict[str, Any]:
        """Invoke a Twirp method of the artifact service."""
        url = f"{self.results_url.rstrip('/')}/{ARTIFACT_SERVICE_PATH}/{method}"
        logger.debug("Calling %s for artifact %s", method, name)
        try:
            response = self.client.post(
                url,
                json=body,
                headers={
                    "Authorization": f"Bearer {self.token}",
                    "Content-Type": "application/json",
                },
                timeout=self.timeout,
            )
            response.raise_for_status()
            return response.json()

        except ValueError as e:
            raise ArtifactStoreError(
                f"{method} returned a non-JSON body for {name}: {e}",
                code="bad_response",
            ) from e
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 404:
                raise ArtifactNotFoundError(name) from e
            raise ArtifactStoreError(
                f"{method} failed for {name}: {e.response.status_code} {e.response.text}",
                code="http_error",
            ) from e
        except httpx.TimeoutException as e:
            raise ArtifactStoreError(
                f"Timeout calling {method} for {name}",
                code="timeout",
            ) from e
        except httpx.RequestError as e:
            raise ArtifactStoreError(
                f"Network error calling {method} for {name}: {e}",
                code="network_error",
            ) from e

    def get(self, name: str) -> StoredArtifact:
        data = self._call(
            "ListArtifacts",
            {**self._scope(), "name_filter": {"value": name}},
            name,
        )
        matches = [a for a in data.get("artifacts", []) if a.get("name") == name]
        if not matches:
            raise ArtifactNotFoundError(name)

        latest = max(matches, key=lambda a: int(a.get("database_id", 0)))
        return StoredArtifact(
            name=name,
            artifact_id=int(latest["database_id"]),
            size_bytes=int(latest.get("size", 0)),
        )

    def download(self, name: str, dest_dir: Path) -> Path:
        data = self._call(
            "GetSignedArtifactURL", {**self._scope(), "name": name}, name
        )
        signed_url = data.get("signed_url")
        if not signed_url:
            raise ArtifactNotFoundError(name)

        dest_dir.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(
            dir=dest_dir, suffix=".download", delete=False
        ) as tmp_file:
            tmp_path = Path(tmp_file.name)

        try:
            with self.client.stream("GET", signed_url, timeout=self.timeout) as response:
                response.raise_for_status()
                with tmp_path.open("wb") as f:
                    for chunk in response.iter_bytes(DOWNLOAD_CHUNK_SIZE):
                        f.write(chunk)

            with zipfile.ZipFile(tmp_path) as zf:
                zf.extractall(dest_dir)

        except httpx.HTTPStatusError as e:
            raise ArtifactStoreError(
                f"HTTP error downloading {name}: {e.response.status_code}",
                code="http_error",
            ) from e
        except httpx.RequestError as e:
            raise ArtifactStoreError(
                f"Network error downloading {name}: {e}",
                code="network_error",
            ) from e
        except zipfile.BadZipFile as e:
            raise ArtifactStoreError(
                f"Artifact {name} is not a valid zip container: {e}",
                code="bad_container",
            ) from e
        finally:
            tmp_path.unlink(missing_ok=True)

        logger.info("Downloaded artifact %s to %s", name, dest_dir)
        return dest_dir

    def delete(self, name: str) -> None:
        data = self._call("DeleteArtifact", {**self._scope(), "name": name}, name)
        if not data.get("ok", False):
            raise ArtifactStoreError(
                f"Service refused to delete {name}", code="delete_rejected"
            )
        logger.info("Deleted artifact %s (id %s)", name, data.get("artifact_id"))

    def _upload_blob(self, signed_url: str, container: Path, name: str) -> tuple[int, str]:
        """Upload the container as block blob blocks and commit them.

        Returns:
            Tuple of (size in bytes, sha256 hex digest).
        """
        sha256 = hashlib.sha256()
        size = 0
        block_ids: list[str] = []
        try:
            with container.open("rb") as f:
                while chunk := f.read(UPLOAD_BLOCK_SIZE):
                    block_id = _block_id(len(block_ids))
                    response = self.client.put(
                        signed_url,
                        params={"comp": "block", "blockid": block_id},
                        content=chunk,
                        timeout=self.timeout,
                    )
                    response.raise_for_status()
                    block_ids.append(block_id)
                    sha256.update(chunk)
                    size += len(chunk)

            response = self.client.put(
                signed_url,
                params={"comp": "blocklist"},
                content=_block_list_xml(block_ids).encode(),
                headers={"x-ms-blob-content-type": "application/zip"},
                timeout=self.timeout,
            )
            response.raise_for_status()

        except httpx.HTTPStatusError as e:
            raise ArtifactStoreError(
                f"Blob upload failed for {name}: {e.response.status_code}",
                code="http_error",
            ) from e
        except httpx.TimeoutException as e:
            raise ArtifactStoreError(
                f"Timeout uploading {name}", code="timeout"
            ) from e
        except httpx.RequestError as e:
            raise ArtifactStoreError(
                f"Network error uploading {name}: {e}", code="network_error"
            ) from e

        logger.debug("Uploaded %d block(s) for %s", len(block_ids), name)
        return size, sha256.hexdigest()

    def upload(
        self,
        name: str,
        files: list[Path],
        root_dir: Path,
        retention_days: int = 1,
        compression_level: int = 0,
    ) -> StoredArtifact:
        """Upload files as one artifact.

        The zip container is written before the artifact is created, so a
        missing or unreadable file never leaves an empty artifact behind.
        """
        with tempfile.TemporaryDirectory() as tmp_dir:
            container = zip_files(
                files,
                root_dir,
                Path(tmp_dir) / f"{name}.zip",
                compression_level=compression_level,
            )

            expires_at = datetime.now(timezone.utc) + timedelta(days=retention_days)
            created = self._call(
                "CreateArtifact",
                {
                    **self._scope(),
                    "name": name,
                    "version": ARTIFACT_VERSION,
                    "expires_at": expires_at.strftime("%Y-%m-%dT%H:%M:%SZ"),
                },
                name,
            )
            signed_url = created.get("signed_upload_url")
            if not created.get("ok", False) or not signed_url:
                raise ArtifactStoreError(
                    f"Service refused to create artifact {name}",
                    code="create_rejected",
                )

            size, digest = self._upload_blob(signed_url, container, name)

        finalized = self._call(
            "FinalizeArtifact",
            {
                **self._scope(),
                "name": name,
                "size": str(size),
                "hash": {"value": f"sha256:{digest}"},
            },
            name,
        )
        if not finalized.get("ok", False):
            raise ArtifactStoreError(
                f"Service refused to finalize artifact {name}",
                code="finalize_rejected",
            )

        artifact_id = int(finalized.get("artifact_id", 0))
        logger.info("Uploaded artifact %s (id %d, %d bytes)", name, artifact_id, size)
        return StoredArtifact(name=name, artifact_id=artifact_id, size_bytes=size)


__all__ = [
    "ARTIFACT_SERVICE_PATH",
    "GitHubArtifactStore",
    "parse_backend_ids",
    "zip_files",
]
