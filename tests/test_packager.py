"""Tests for packager module.

The version query is patched and the archiver writes real zip files, so the
produced package layout can be inspected.
"""

import zipfile
from pathlib import Path
from unittest.mock import patch

import pytest

from ucw_stage.archiver import ArchiverError
from ucw_stage.packager import (
    GITIGNORE_TEMPLATE,
    BuildOutputNotFoundError,
    PackagingError,
    archive_name,
    create_portable_package,
    is_previous_package,
    locate_build_output,
    render_readme,
)
from ucw_stage.types import Architecture
from ucw_stage.version import VersionQueryError


@pytest.fixture
def version_100():
    with patch("ucw_stage.version.query_file_version", return_value="100.0.1") as mock:
        yield mock


def _tree(root: Path) -> set[str]:
    return {p.relative_to(root).as_posix() for p in root.rglob("*")}


class TestLocateBuildOutput:
    """Tests for locate_build_output function."""

    def test_prefers_default(self, workspace, build_output):
        release = workspace.out_dir / "Release"
        release.mkdir()
        (release / "chrome.exe").write_bytes(b"MZ")
        assert locate_build_output(workspace) == build_output

    def test_release_candidate(self, workspace):
        release = workspace.out_dir / "Release"
        release.mkdir(parents=True)
        (release / "chrome.exe").write_bytes(b"MZ")
        assert locate_build_output(workspace) == release

    def test_glob_fallback(self, workspace):
        custom = workspace.out_dir / "Official"
        custom.mkdir(parents=True)
        (custom / "chrome.exe").write_bytes(b"MZ")
        (workspace.out_dir / "Default").mkdir()
        assert locate_build_output(workspace) == custom

    def test_not_found(self, workspace):
        (workspace.out_dir / "Default").mkdir(parents=True)
        with pytest.raises(BuildOutputNotFoundError, match="Build output not found"):
            locate_build_output(workspace)

    def test_no_out_dir(self, workspace):
        with pytest.raises(BuildOutputNotFoundError) as exc_info:
            locate_build_output(workspace)
        assert exc_info.value.code == "build_output_not_found"


class TestNames:
    """Tests for naming helpers."""

    def test_archive_name(self):
        assert archive_name("100.0.1", "x64") == "ungoogled-chromium-100.0.1-x64-portable.zip"
        assert archive_name("100.0.1", "arm64") == "ungoogled-chromium-100.0.1-arm64-portable.zip"

    def test_is_previous_package(self):
        assert is_previous_package("chromePortable-x64")
        assert is_previous_package("ungoogled-chromium-1.2-x86-portable.zip")
        assert not is_previous_package("chrome.dll")
        assert not is_previous_package("ungoogled-chromium.pdb")

    def test_readme_mentions_version_and_arch(self):
        readme = render_readme("100.0.1", "arm64")
        assert readme.startswith("Ungoogled Chromium Portable 100.0.1 (arm64)")
        assert "chromePortable-arm64/" in readme
        assert "Version 100.0.1 files are in the 100.0.1 subfolder" in readme


class TestCreatePortablePackage:
    """Tests for create_portable_package function."""

    def test_layout(self, build_output, fake_archiver, version_100):
        result = create_portable_package(
            build_output,
            Architecture.DEFAULT,
            fake_archiver,
            retain_uncompressed_package=True,
        )

        root = build_output / "chromePortable-x64"
        assert result.package_root == root
        assert result.version == "100.0.1"
        assert result.arch_tag == "x64"
        assert sorted(result.copied_entries) == ["Locales", "chrome.dll", "resources.pak"]
        assert _tree(root) == {
            "chrome.exe",
            "README.txt",
            ".gitignore",
            "UserData",
            "UserData/.gitkeep",
            "100.0.1",
            "100.0.1/chrome.dll",
            "100.0.1/resources.pak",
            "100.0.1/Locales",
            "100.0.1/Locales/en-US.pak",
        }
        assert (root / "chrome.exe").read_bytes() == b"MZ-chrome"
        assert (root / ".gitignore").read_text() == GITIGNORE_TEMPLATE
        assert (root / "UserData" / ".gitkeep").read_text() == ""

    def test_archive_contents(self, build_output, fake_archiver, version_100):
        result = create_portable_package(build_output, Architecture.DEFAULT, fake_archiver)

        assert result.archive_path == build_output / "ungoogled-chromium-100.0.1-x64-portable.zip"
        with zipfile.ZipFile(result.archive_path) as zf:
            names = set(zf.namelist())
        assert "chromePortable-x64/chrome.exe" in names
        assert "chromePortable-x64/100.0.1/Locales/en-US.pak" in names

    def test_removes_uncompressed_by_default(self, build_output, fake_archiver, version_100):
        result = create_portable_package(build_output, Architecture.DEFAULT, fake_archiver)
        assert not result.retained
        assert not result.package_root.exists()
        assert result.archive_path.exists()

    def test_without_git_metadata(self, build_output, fake_archiver, version_100):
        result = create_portable_package(
            build_output,
            Architecture.X86,
            fake_archiver,
            write_git_metadata=False,
            retain_uncompressed_package=True,
        )
        root = result.package_root
        assert root.name == "chromePortable-x86"
        assert not (root / ".gitignore").exists()
        assert list((root / "UserData").iterdir()) == []

    def test_arm_uses_arm64_tag(self, build_output, fake_archiver, version_100):
        result = create_portable_package(build_output, Architecture.ARM, fake_archiver)
        assert result.archive_path.name == "ungoogled-chromium-100.0.1-arm64-portable.zip"

    def test_repeated_runs_do_not_nest(self, build_output, fake_archiver, version_100):
        create_portable_package(
            build_output,
            Architecture.DEFAULT,
            fake_archiver,
            retain_uncompressed_package=True,
        )
        create_portable_package(
            build_output, Architecture.X86, fake_archiver, retain_uncompressed_package=True
        )
        result = create_portable_package(
            build_output,
            Architecture.DEFAULT,
            fake_archiver,
            retain_uncompressed_package=True,
        )

        version_dir = result.package_root / "100.0.1"
        assert sorted(p.name for p in version_dir.iterdir()) == [
            "Locales",
            "chrome.dll",
            "resources.pak",
        ]
        assert not any("chromePortable" in p for p in _tree(result.package_root))

    def test_unknown_version_used_consistently(self, build_output, fake_archiver):
        with patch(
            "ucw_stage.version.query_file_version",
            side_effect=VersionQueryError("powershell failed"),
        ):
            result = create_portable_package(
                build_output,
                Architecture.DEFAULT,
                fake_archiver,
                on_version_query_error="unknown",
                retain_uncompressed_package=True,
            )

        assert result.version == "unknown"
        assert result.archive_path.name == "ungoogled-chromium-unknown-x64-portable.zip"
        assert (result.package_root / "unknown" / "chrome.dll").exists()
        readme = (result.package_root / "README.txt").read_text(encoding="utf-8")
        assert "Ungoogled Chromium Portable unknown (x64)" in readme

    def test_version_failure_propagates(self, build_output, fake_archiver):
        with patch(
            "ucw_stage.version.query_file_version",
            side_effect=VersionQueryError("powershell failed"),
        ):
            with pytest.raises(VersionQueryError):
                create_portable_package(
                    build_output,
                    Architecture.DEFAULT,
                    fake_archiver,
                    on_version_query_error="fail",
                )

        assert not (build_output / "chromePortable-x64").exists()
        assert fake_archiver.calls == []

    def test_missing_entry_point(self, tmp_path, fake_archiver):
        with pytest.raises(BuildOutputNotFoundError):
            create_portable_package(tmp_path, Architecture.DEFAULT, fake_archiver)

    def test_compression_failure_raises(self, build_output, failing_archiver, version_100):
        with pytest.raises(ArchiverError):
            create_portable_package(build_output, Architecture.DEFAULT, failing_archiver)

    def test_copy_failure_raises(self, build_output, fake_archiver, version_100):
        with patch("ucw_stage.packager.shutil.copy2", side_effect=PermissionError("locked")):
            with pytest.raises(PackagingError) as exc_info:
                create_portable_package(build_output, Architecture.DEFAULT, fake_archiver)
        assert exc_info.value.code == "copy_failed"

    def test_write_failure_raises(self, build_output, fake_archiver, version_100):
        with patch(
            "ucw_stage.packager.Path.write_text", side_effect=PermissionError("read-only")
        ):
            with pytest.raises(PackagingError) as exc_info:
                create_portable_package(build_output, Architecture.DEFAULT, fake_archiver)
        assert exc_info.value.code == "write_failed"
        assert fake_archiver.calls == []

    def test_prepare_failure_raises(self, build_output, fake_archiver, version_100):
        with patch("ucw_stage.packager.Path.mkdir", side_effect=OSError("disk full")):
            with pytest.raises(PackagingError) as exc_info:
                create_portable_package(build_output, Architecture.DEFAULT, fake_archiver)
        assert exc_info.value.code == "write_failed"

    def test_cleanup_failure_keeps_archive(self, build_output, fake_archiver, version_100):
        with patch(
            "ucw_stage.packager.shutil.rmtree", side_effect=PermissionError("in use")
        ):
            result = create_portable_package(build_output, Architecture.DEFAULT, fake_archiver)

        assert result.archive_path.exists()
        assert result.package_root.exists()


class TestRobocopyStrategy:
    """Tests for the robocopy copy strategy."""

    def test_mirror_command(self, build_output, fake_archiver, version_100, process_result):
        with patch(
            "ucw_stage.packager.run_process", return_value=process_result(1)
        ) as mock_run:
            result = create_portable_package(
                build_output,
                Architecture.DEFAULT,
                fake_archiver,
                copy_strategy="robocopy",
                robocopy="robocopy.exe",
            )

        cmd = mock_run.call_args.args[0]
        assert cmd[0] == "robocopy.exe"
        assert cmd[1] == str(build_output)
        assert cmd[2] == str(build_output / "chromePortable-x64" / "100.0.1")
        assert "/E" in cmd
        assert cmd[cmd.index("/XF") + 1] == "chrome.exe"
        assert cmd[cmd.index("/XD") + 1] == "chromePortable-*"
        assert sorted(result.copied_entries) == ["Locales", "chrome.dll", "resources.pak"]

    def test_failure_exit_code(self, build_output, fake_archiver, version_100, process_result):
        with patch("ucw_stage.packager.run_process", return_value=process_result(8)):
            with pytest.raises(PackagingError, match="robocopy"):
                create_portable_package(
                    build_output,
                    Architecture.DEFAULT,
                    fake_archiver,
                    copy_strategy="robocopy",
                )
