"""Shared fixtures for ucw_stage tests."""

import base64
import io
import json
import zipfile
from datetime import datetime, timezone
from pathlib import Path

import httpx
import pytest
import respx

from ucw_stage.archiver import ArchiverError, SevenZip
from ucw_stage.artifacts.github import ARTIFACT_SERVICE_PATH, GitHubArtifactStore
from ucw_stage.artifacts.store import InMemoryArtifactStore
from ucw_stage.config import Settings
from ucw_stage.process import ProcessResult
from ucw_stage.types import Workspace


def make_process_result(exit_code: int = 0, stdout: str | None = None) -> ProcessResult:
    now = datetime.now(timezone.utc)
    return ProcessResult(
        command="fake",
        exit_code=exit_code,
        started_at=now,
        finished_at=now,
        stdout=stdout,
    )


class FakeArchiver(SevenZip):
    """Archiver writing real zip files with zipfile instead of running 7z."""

    def __init__(self, compress_exit_code: int = 0) -> None:
        super().__init__("7z")
        self.compress_exit_code = compress_exit_code
        self.calls: list[tuple[str, Path, list[Path]]] = []

    def compress(
        self,
        archive_path,
        sources,
        level=5,
        extra_switches=None,
        check=True,
    ):
        self.calls.append(("a", archive_path, list(sources)))
        with zipfile.ZipFile(archive_path, "w") as zf:
            for source in sources:
                if source.is_dir():
                    zf.write(source, source.name)
                    for path in sorted(source.rglob("*")):
                        zf.write(path, path.relative_to(source.parent).as_posix())
                else:
                    zf.write(source, source.name)
        if check and self.compress_exit_code != 0:
            raise ArchiverError("fake 7z failed", exit_code=self.compress_exit_code)
        return make_process_result(self.compress_exit_code)

    def extract(self, archive_path, dest_dir):
        self.calls.append(("x", archive_path, [dest_dir]))
        with zipfile.ZipFile(archive_path) as zf:
            zf.extractall(dest_dir)
        return make_process_result(0)


@pytest.fixture
def process_result():
    """Factory for ProcessResult instances."""
    return make_process_result


@pytest.fixture
def fake_archiver() -> FakeArchiver:
    return FakeArchiver()


@pytest.fixture
def memory_store() -> InMemoryArtifactStore:
    return InMemoryArtifactStore()


@pytest.fixture
def workspace(tmp_path) -> Workspace:
    """Workspace rooted in a temporary directory with an empty source tree."""
    ws = Workspace(root=tmp_path / "ungoogled-chromium-windows")
    ws.source_dir.mkdir(parents=True)
    return ws


@pytest.fixture
def settings(workspace) -> Settings:
    """Settings pointing at the temporary workspace."""
    return Settings(
        workspace_root=workspace.root,
        upload_retry_delay=0,
        snapshot_grace_period=0,
    )


@pytest.fixture
def build_output(workspace) -> Path:
    """Build output directory with chrome.exe and three other entries."""
    out = workspace.out_dir / "Default"
    out.mkdir(parents=True)
    (out / "chrome.exe").write_bytes(b"MZ-chrome")
    (out / "chrome.dll").write_bytes(b"MZ-dll")
    (out / "resources.pak").write_bytes(b"pak")
    locales = out / "Locales"
    locales.mkdir()
    (locales / "en-US.pak").write_bytes(b"en")
    return out


@pytest.fixture
def failing_archiver() -> FakeArchiver:
    """Archiver whose compress step exits with code 2."""
    return FakeArchiver(compress_exit_code=2)


RESULTS_URL = "https://results.example.com/"
BLOB_URL = "https://blob.example.com/container/artifact.zip?sv=2023&sig=abc"


def _runtime_token() -> str:
    def encode(data: dict) -> str:
        return base64.urlsafe_b64encode(json.dumps(data).encode()).decode().rstrip("=")

    scp = "Actions.Results:run-123:job-456"
    return f"{encode({'alg': 'RS256'})}.{encode({'scp': scp})}.signature"


class FakeResultsService:
    """Stateful artifact service: one artifact per name, 409 on duplicates.

    Attributes:
        artifacts: Names of existing (created, possibly unfinalized) artifacts.
        uploads: Uploaded blob containers by artifact name.
        failing_blob_puts: Number of upcoming blob PUTs answered with 503.
        create_body: Body returned for CreateArtifact instead of the default.
        delete_calls: Number of DeleteArtifact calls.
    """

    def __init__(self) -> None:
        self.artifacts: set[str] = set()
        self.uploads: dict[str, bytes] = {}
        self.failing_blob_puts = 0
        self.create_body: bytes | None = None
        self.delete_calls = 0
        self._pending: str | None = None

    def create(self, request: httpx.Request) -> httpx.Response:
        if self.create_body is not None:
            return httpx.Response(200, content=self.create_body)
        name = json.loads(request.content)["name"]
        if name in self.artifacts:
            return httpx.Response(
                409, json={"code": "already_exists", "msg": "artifact already exists"}
            )
        self.artifacts.add(name)
        self._pending = name
        return httpx.Response(200, json={"ok": True, "signed_upload_url": BLOB_URL})

    def delete(self, request: httpx.Request) -> httpx.Response:
        self.delete_calls += 1
        name = json.loads(request.content)["name"]
        if name not in self.artifacts:
            return httpx.Response(404, json={"code": "not_found", "msg": "not found"})
        self.artifacts.discard(name)
        self.uploads.pop(name, None)
        return httpx.Response(200, json={"ok": True, "artifact_id": "1"})

    def put_blob(self, request: httpx.Request) -> httpx.Response:
        if self.failing_blob_puts > 0:
            self.failing_blob_puts -= 1
            return httpx.Response(503)
        if request.url.params.get("comp") == "block" and self._pending:
            self.uploads[self._pending] = request.content
        return httpx.Response(201)

    def finalize(self, request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"ok": True, "artifact_id": "90"})

    def uploaded_names(self, name: str) -> list[str]:
        """File names inside the uploaded container of an artifact."""
        with zipfile.ZipFile(io.BytesIO(self.uploads[name])) as zf:
            return zf.namelist()


@pytest.fixture
def results_service():
    """Artifact service and blob storage mocked with respx."""
    service = FakeResultsService()
    base = f"https://results.example.com/{ARTIFACT_SERVICE_PATH}"
    with respx.mock(assert_all_called=False) as router:
        router.post(f"{base}/CreateArtifact").mock(side_effect=service.create)
        router.post(f"{base}/DeleteArtifact").mock(side_effect=service.delete)
        router.post(f"{base}/FinalizeArtifact").mock(side_effect=service.finalize)
        router.put(url__startswith="https://blob.example.com/").mock(
            side_effect=service.put_blob
        )
        yield service


@pytest.fixture
def github_store(results_service):
    """GitHub artifact store talking to the mocked service."""
    with httpx.Client() as client:
        yield GitHubArtifactStore(
            client=client, results_url=RESULTS_URL, token=_runtime_token()
        )
