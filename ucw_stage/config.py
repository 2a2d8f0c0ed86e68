"""Configuration settings for ucw_stage.

Uses pydantic-settings for config parsing from environment variables
and defaults. Configuration precedence: CLI flags > settings file > env
vars > defaults.
"""

from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from ucw_stage.types import Workspace


def _default_workspace_root() -> Path:
    """Return the default checkout location on the Windows runners."""
    return Path("C:/ungoogled-chromium-windows")


class Settings(BaseSettings):
    """Stage settings.

    Settings are loaded from environment variables with the UCW_STAGE_ prefix.
    CLI flags and an optional YAML settings file can override these.
    """

    model_config = SettingsConfigDict(
        env_prefix="UCW_STAGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Paths
    workspace_root: Path = Field(
        default_factory=_default_workspace_root,
        description="Checkout of the Windows build repository",
    )

    # External tools
    python_executable: str = Field(
        default="python",
        description="Interpreter used to run build.py",
    )
    archiver: str = Field(
        default="7z",
        description="7-Zip executable used to compress and extract archives",
    )
    powershell: str = Field(
        default="powershell",
        description="PowerShell executable used to query file versions",
    )
    robocopy: str = Field(
        default="robocopy",
        description="Robocopy executable used by the robocopy copy strategy",
    )
    dependency_pins: list[str] = Field(
        default_factory=lambda: ["httplib2==0.22.0"],
        description="Packages installed (best effort) before running the build",
    )

    # Artifact publishing
    upload_attempts: int = Field(
        default=5,
        ge=1,
        le=20,
        description="Total upload attempts per artifact",
    )
    upload_retry_delay: float = Field(
        default=10.0,
        ge=0,
        description="Seconds to wait between upload attempts",
    )
    retention_days: int = Field(
        default=1,
        ge=1,
        le=90,
        description="Artifact retention in days",
    )
    compression_level: int = Field(
        default=0,
        ge=0,
        le=9,
        description="Compression level of the uploaded artifact container",
    )
    http_timeout: float = Field(
        default=600.0,
        ge=1,
        description="Timeout for artifact service requests in seconds",
    )

    # Snapshots
    snapshot_grace_period: float = Field(
        default=5.0,
        ge=0,
        description="Seconds to wait for file handles to close before snapshotting",
    )
    snapshot_archive_level: int = Field(
        default=3,
        ge=0,
        le=9,
        description="7-Zip -mx level for build snapshots",
    )

    # Packaging
    package_archive_level: int = Field(
        default=5,
        ge=0,
        le=9,
        description="7-Zip -mx level for portable packages",
    )
    on_version_query_error: Literal["unknown", "fail"] = Field(
        default="unknown",
        description="Use 'unknown' as version or fail when the version query fails",
    )
    retain_uncompressed_package: bool = Field(
        default=False,
        description="Keep the portable directory next to its archive",
    )
    copy_strategy: Literal["copytree", "robocopy"] = Field(
        default="copytree",
        description="How build output is copied into the portable directory",
    )
    write_git_metadata: bool = Field(
        default=True,
        description="Write .gitignore and UserData/.gitkeep into the package",
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )

    @property
    def workspace(self) -> Workspace:
        """Workspace rooted at the configured checkout."""
        return Workspace(root=self.workspace_root)


def get_settings() -> Settings:
    """Get the application settings singleton.

    Returns:
        Settings instance loaded from environment.
    """
    return Settings()


def load_settings_file(path: Path) -> dict[str, Any]:
    """Load settings overrides from a YAML file.

    Args:
        path: Path to the YAML file.

    Returns:
        Mapping of setting names to values.

    Raises:
        FileNotFoundError: If the file does not exist.
        yaml.YAMLError: If the file is not valid YAML.
        ValueError: If the file does not contain a mapping.
    """
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"Expected a YAML mapping, got {type(data).__name__}")
    return data


def load_settings(
    settings_file: Path | None = None,
    **overrides: Any,
) -> Settings:
    """Build settings from env, an optional YAML file and explicit overrides.

    Overrides whose value is None are ignored so unset CLI flags fall through.

    Args:
        settings_file: Optional YAML settings file.
        **overrides: Explicit values (usually from CLI flags).

    Returns:
        Settings instance.
    """
    data: dict[str, Any] = {}
    if settings_file is not None:
        data.update(load_settings_file(settings_file))
    data.update({k: v for k, v in overrides.items() if v is not None})
    return Settings(**data)


def print_settings_json(settings: Settings | None = None) -> str:
    """Render effective settings as JSON.

    Args:
        settings: Optional settings instance; uses default if not provided.

    Returns:
        JSON string of effective settings.
    """
    if settings is None:
        settings = get_settings()
    return settings.model_dump_json(indent=2)


__all__ = [
    "Settings",
    "get_settings",
    "load_settings",
    "load_settings_file",
    "print_settings_json",
]
