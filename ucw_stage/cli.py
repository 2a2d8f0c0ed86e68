"""Thin CLI wrapper for ucw_stage.

This module provides the command-line interface using Typer.
All business logic is delegated to core modules.
"""

import logging
from pathlib import Path
from typing import Annotated, Any, NoReturn

import httpx
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from ucw_stage import __version__, actions
from ucw_stage.archiver import ArchiverError, SevenZip
from ucw_stage.artifacts.github import GitHubArtifactStore
from ucw_stage.artifacts.store import ArtifactStore, ArtifactStoreError
from ucw_stage.config import Settings, load_settings, print_settings_json
from ucw_stage.driver import DriverError
from ucw_stage.packager import (
    BuildOutputNotFoundError,
    PackagingError,
    create_portable_package,
)
from ucw_stage.process import ProcessError
from ucw_stage.resume import ResumeError
from ucw_stage.stage import ignore_interrupts, run_stage
from ucw_stage.types import Architecture, BuildConfiguration
from ucw_stage.version import VersionQueryError

app = typer.Typer(
    name="ucw-stage",
    help="ungoogled-chromium Windows build stage - resume, build, package, snapshot",
    no_args_is_help=True,
)
console = Console()

STAGE_ERRORS = (
    ResumeError,
    DriverError,
    BuildOutputNotFoundError,
    VersionQueryError,
    PackagingError,
    ArchiverError,
    ArtifactStoreError,
    ProcessError,
)

SettingsFileOption = Annotated[
    Path | None,
    typer.Option("--settings-file", help="YAML file with setting overrides"),
]
WorkspaceOption = Annotated[
    Path | None,
    typer.Option("--workspace-root", help="Checkout of the Windows build repository"),
]


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"ucw-stage version {__version__}")
        raise typer.Exit()


def configure_logging(level: str) -> None:
    """Route log records through rich at the given level."""
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(show_path=False, rich_tracebacks=True)],
        force=True,
    )


def create_store(client: httpx.Client, settings: Settings) -> ArtifactStore:
    """Create the artifact store for this runner."""
    return GitHubArtifactStore.from_env(client, timeout=settings.http_timeout)


def _fail(message: str) -> NoReturn:
    console.print(f"[red]{escape(message)}[/red]")
    actions.error(message)
    raise typer.Exit(code=1)


def _load_settings(settings_file: Path | None, **overrides: Any) -> Settings:
    try:
        return load_settings(settings_file, **overrides)
    except Exception as e:
        _fail(f"Invalid settings: {e}")


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """ungoogled-chromium Windows build stage - resume, build, package, snapshot."""


@app.command()
def run(
    finished: Annotated[
        bool | None,
        typer.Option(
            "--finished/--not-finished",
            help="Build already finished (default: step input 'finished')",
        ),
    ] = None,
    from_artifact: Annotated[
        bool | None,
        typer.Option(
            "--from-artifact/--fresh",
            help="Restore the snapshot first (default: step input 'from_artifact')",
        ),
    ] = None,
    x86: Annotated[
        bool | None,
        typer.Option("--x86/--no-x86", help="Build for x86 (default: step input 'x86')"),
    ] = None,
    arm: Annotated[
        bool | None,
        typer.Option("--arm/--no-arm", help="Build for arm64 (default: step input 'arm')"),
    ] = None,
    settings_file: SettingsFileOption = None,
    workspace_root: WorkspaceOption = None,
) -> None:
    """Run one build stage and set the 'finished' step output."""
    settings = _load_settings(settings_file, workspace_root=workspace_root)
    configure_logging(settings.log_level)

    try:
        config = BuildConfiguration.from_inputs(
            finished=(
                finished
                if finished is not None
                else actions.get_boolean_input("finished", required=True)
            ),
            from_artifact=(
                from_artifact
                if from_artifact is not None
                else actions.get_boolean_input("from_artifact", required=True)
            ),
            x86=x86 if x86 is not None else actions.get_boolean_input("x86"),
            arm=arm if arm is not None else actions.get_boolean_input("arm"),
        )
    except actions.InputError as e:
        _fail(str(e))

    ignore_interrupts()

    if config.finished:
        console.print("[green]Build already finished[/green]")
        actions.set_output("finished", True)
        return

    with httpx.Client() as client:
        try:
            store = create_store(client, settings)
            result = run_stage(config, settings, store)
        except STAGE_ERRORS as e:
            _fail(str(e))
        except Exception as e:
            _fail(f"Stage failed: {e}")

    if result.publish is not None and not result.publish.success:
        actions.warning(
            f"Artifact {result.publish.name} was not uploaded: {result.publish.error}"
        )

    actions.set_output("finished", result.finished)
    if result.finished and result.package is not None:
        console.print(
            f"[green]Portable package created:[/green] {result.package.archive_path.name}"
        )
    elif not result.finished:
        console.print("[yellow]Build not finished; snapshot saved for next stage[/yellow]")


@app.command()
def package(
    build_dir: Annotated[
        Path,
        typer.Argument(help="Build output directory containing chrome.exe"),
    ],
    arch: Annotated[
        Architecture,
        typer.Option("--arch", "-a", help="Target architecture"),
    ] = Architecture.DEFAULT,
    retain: Annotated[
        bool | None,
        typer.Option(
            "--retain/--no-retain",
            help="Keep the uncompressed portable directory",
        ),
    ] = None,
    settings_file: SettingsFileOption = None,
) -> None:
    """Package an existing build output directory without uploading it."""
    settings = _load_settings(settings_file, retain_uncompressed_package=retain)
    configure_logging(settings.log_level)

    try:
        result = create_portable_package(
            build_dir,
            arch,
            SevenZip(settings.archiver),
            powershell=settings.powershell,
            on_version_query_error=settings.on_version_query_error,
            copy_strategy=settings.copy_strategy,
            robocopy=settings.robocopy,
            write_git_metadata=settings.write_git_metadata,
            retain_uncompressed_package=settings.retain_uncompressed_package,
            archive_level=settings.package_archive_level,
        )
    except STAGE_ERRORS as e:
        _fail(str(e))
    except Exception as e:
        _fail(f"Packaging failed: {e}")

    console.print(f"[bold]Version:[/bold] {result.version}")
    console.print(f"[bold]Entries:[/bold] {len(result.copied_entries)}")
    console.print(f"[green]{result.archive_path}[/green]")


@app.command()
def names(
    arch: Annotated[
        Architecture,
        typer.Option("--arch", "-a", help="Target architecture"),
    ] = Architecture.DEFAULT,
) -> None:
    """Show the names derived from an architecture."""
    console.print(f"  Package tag:        {arch.package_tag}")
    console.print(f"  Snapshot artifact:  {arch.snapshot_artifact_name}")
    console.print(f"  Package artifact:   {arch.package_artifact_name}")
    flags = " ".join(arch.driver_flags) or "(none)"
    console.print(f"  Driver flags:       {flags}")


@app.command()
def config(
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
    settings_file: SettingsFileOption = None,
) -> None:
    """Show effective configuration."""
    settings = _load_settings(settings_file)
    if json_output:
        console.print(print_settings_json(settings))
        return

    workspace = settings.workspace
    console.print("[bold]Effective Configuration:[/bold]")
    console.print()
    console.print("[bold]Paths:[/bold]")
    console.print(f"  Workspace root:      {workspace.root}")
    console.print(f"  Source directory:    {workspace.source_dir}")
    console.print(f"  Snapshot archive:    {workspace.snapshot_archive}")
    console.print()
    console.print("[bold]Tools:[/bold]")
    console.print(f"  Python:              {settings.python_executable}")
    console.print(f"  Archiver:            {settings.archiver}")
    console.print(f"  PowerShell:          {settings.powershell}")
    console.print(f"  Robocopy:            {settings.robocopy}")
    console.print()
    console.print("[bold]Artifacts:[/bold]")
    console.print(f"  Upload attempts:     {settings.upload_attempts}")
    console.print(f"  Retry delay:         {settings.upload_retry_delay}")
    console.print(f"  Retention days:      {settings.retention_days}")
    console.print(f"  Compression level:   {settings.compression_level}")
    console.print()
    console.print("[bold]Packaging:[/bold]")
    console.print(f"  Version query error: {settings.on_version_query_error}")
    console.print(f"  Retain package dir:  {settings.retain_uncompressed_package}")
    console.print(f"  Copy strategy:       {settings.copy_strategy}")
    console.print(f"  Git metadata:        {settings.write_git_metadata}")
    console.print()
    console.print(f"  Log level:           {settings.log_level}")


if __name__ == "__main__":
    app()
