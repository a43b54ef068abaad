# SPDX-License-Identifier: Apache-2.0.
# Copyright (c) 2024 - 2026 Waldiez and contributors.

"""Command line interface module."""

# pylint: disable=unused-argument
import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Callable, List, Optional, Tuple

import typer
from typer.core import TyperGroup

from ._common import format_size, try_do
from ._logging import LogLevel, get_log_level, setup_logging
from ._version import __version__
from .compression import select_plan
from .config import Settings
from .confirm import Confirmer, TerminalConfirmer
from .docker import ComposeProject, ContainerRuntime
from .errors import InvalidParameter, OpsError
from .formats import (
    DATABASE_FORMATS,
    VOLUME_FORMATS,
    ArtifactFormat,
    describe_listing,
    list_artifacts,
)
from .resolver import TargetResolver
from .restorer import DatabaseImport, VolumeRestore
from .runner import CommandRunner
from .writer import DatabaseExport, VolumeBackup

APP_NAME = "sentry-ops"
APP_HELP = "Back up, restore, export and import Sentry self-hosted data"

LOG = logging.getLogger(__name__)

USAGE_ERROR = 2


class OpsGroup(TyperGroup):
    """Command group reporting usage errors with exit code 1."""

    def main(self, *args: Any, **kwargs: Any) -> Any:
        """Run the group, turning usage errors (exit 2) into exit 1."""
        try:
            return super().main(*args, **kwargs)
        except SystemExit as error:
            if error.code == USAGE_ERROR:
                raise SystemExit(1) from error
            raise


app = typer.Typer(
    cls=OpsGroup,
    name=APP_NAME,
    help=APP_HELP,
    context_settings={"help_option_names": ["-h", "--help"]},
    add_completion=False,
    no_args_is_help=False,
    invoke_without_command=True,
    add_help_option=True,
    pretty_exceptions_short=True,
)


class ListKind(str, Enum):
    """Which artifacts to list."""

    ALL = "all"
    VOLUMES = "volumes"
    EXPORTS = "exports"


@dataclass
class Operations:
    """The wired components for one invocation."""

    settings: Settings
    runtime: ContainerRuntime
    compose: ComposeProject
    resolver: TargetResolver
    confirmer: Confirmer
    backup: VolumeBackup

    @classmethod
    def create(cls, settings: Settings) -> "Operations":
        """Wire the components from the settings.

        Parameters
        ----------
        settings : Settings
            The effective settings.

        Returns
        -------
        Operations
            The components.
        """
        runner = CommandRunner()
        runtime = ContainerRuntime(runner, settings.docker)
        compose = ComposeProject(runner, settings.project_dir, settings.docker)
        confirmer = TerminalConfirmer()
        return cls(
            settings=settings,
            runtime=runtime,
            compose=compose,
            resolver=TargetResolver(runtime, compose, settings),
            confirmer=confirmer,
            backup=VolumeBackup(runtime, confirmer, settings),
        )


def _listing(
    directory: Path, formats: Tuple[ArtifactFormat, ...]
) -> List[str]:
    return describe_listing(directory, list_artifacts(directory, formats))


def _run(action: str, what: Callable[[], str]) -> None:
    """Run an operation, turning errors into log lines and an exit code."""

    def _what() -> int:
        summary = what()
        if summary:
            typer.secho(summary, fg=typer.colors.GREEN)
        return 0

    def on_interrupt() -> None:
        LOG.warning("%s interrupted by user", action)

    def on_error(error: Exception) -> None:
        if isinstance(error, OpsError):
            LOG.error("%s failed: %s", action, error.message)
            for line in error.remediation:
                LOG.error("%s", line)
            return
        LOG.error(
            "%s failed: %s",
            action,
            error,
            exc_info=LOG.isEnabledFor(logging.DEBUG),
        )

    code = try_do(_what, on_interrupt=on_interrupt, on_error=on_error)
    if code:
        raise typer.Exit(code)


def _settings(ctx: typer.Context) -> Settings:
    project_dir: Optional[Path] = ctx.obj
    return Settings.load(project_dir)


def _command_help(ctx: typer.Context, value: bool) -> None:
    if value and not ctx.resilient_parsing:
        typer.echo(ctx.get_help())
        raise typer.Exit(1)


def _help_option() -> Any:
    return typer.Option(
        False,
        "-h",
        "--help",
        is_eager=True,
        callback=_command_help,
        help="Show this message and exit.",
    )


@app.callback()
def callback(
    ctx: typer.Context,
    log_level: LogLevel = typer.Option(
        default=get_log_level(),
        help="The log level",
        case_sensitive=False,
    ),
    project_dir: Optional[Path] = typer.Option(
        None,
        "--project-dir",
        help="The docker compose project directory",
        show_default=False,
    ),
    version: bool = typer.Option(
        False,
        "--version",
        help="Show the version and exit",
    ),
) -> None:
    """Sentry self-hosted operations."""
    if version:
        typer.echo(f"{APP_NAME} {__version__}")
        raise typer.Exit()
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit()
    setup_logging(log_level.value)
    ctx.obj = project_dir


@app.command(add_help_option=False)
def export(
    ctx: typer.Context,
    show_help: bool = _help_option(),
    service_name: Optional[str] = typer.Argument(
        None, help="The PostgreSQL service in docker compose"
    ),
) -> None:
    """Export a PostgreSQL database into a compressed dump."""

    def what() -> str:
        if not service_name:
            raise InvalidParameter(
                "Service name is required",
                ["Usage: sentry-ops export <service_name>"],
            )
        settings = _settings(ctx)
        ops = Operations.create(settings)
        target = ops.resolver.resolve_database(service_name)
        artifact = DatabaseExport(ops.compose, settings).export(
            target, settings.export_dir
        )
        LOG.info(
            "To import: sentry-ops import %s %s", artifact.name, service_name
        )
        return (
            f"Export completed: {artifact.path} "
            f"({format_size(artifact.size_bytes)})"
        )

    _run("Export", what)


@app.command("import", add_help_option=False)
def import_(
    ctx: typer.Context,
    show_help: bool = _help_option(),
    export_file: Optional[str] = typer.Argument(
        None, help="The .dump or .sql file (path or name in the export dir)"
    ),
    service_name: Optional[str] = typer.Argument(
        None, help="The PostgreSQL service in docker compose"
    ),
) -> None:
    """Import a database export, replacing the current database."""

    def what() -> str:
        settings = _settings(ctx)
        if not export_file or not service_name:
            raise InvalidParameter(
                "Export file and service name are required",
                ["Usage: sentry-ops import <export_file> <service_name>"]
                + _listing(settings.export_dir, DATABASE_FORMATS),
            )
        ops = Operations.create(settings)
        importer = DatabaseImport(
            ops.compose,
            ops.runtime,
            ops.resolver,
            ops.confirmer,
            ops.backup,
            settings,
        )
        record = importer.import_dump(export_file, service_name)
        return f"Import completed, log saved to: {record.path}"

    _run("Import", what)


@app.command(add_help_option=False)
def backup(
    ctx: typer.Context,
    show_help: bool = _help_option(),
    volume_name: Optional[str] = typer.Argument(
        None, help="The docker volume to back up"
    ),
    level: Optional[int] = typer.Option(
        None,
        "-l",
        "--level",
        help="zstd compression level (1-9)",
        show_default=False,
    ),
    threads: Optional[int] = typer.Option(
        None,
        "-t",
        "--threads",
        help="Compression threads (default: number of CPUs)",
        show_default=False,
    ),
) -> None:
    """Back up a docker volume into a zstd compressed archive."""

    def what() -> str:
        if not volume_name:
            raise InvalidParameter(
                "Volume name is required",
                [
                    "Usage: sentry-ops backup <volume_name> "
                    "[--level N] [--threads N]"
                ],
            )
        settings = _settings(ctx)
        plan = select_plan(
            settings.compression_level if level is None else level,
            settings.threads if threads is None else threads,
        )
        ops = Operations.create(settings)
        target = ops.resolver.resolve_volume(volume_name)
        artifact = ops.backup.backup(target, plan, settings.backup_dir)
        LOG.info(
            "To restore: sentry-ops restore %s %s", volume_name, artifact.name
        )
        return (
            f"Backup completed: {artifact.path} "
            f"({format_size(artifact.size_bytes)})"
        )

    _run("Backup", what)


@app.command(add_help_option=False)
def restore(
    ctx: typer.Context,
    show_help: bool = _help_option(),
    volume_name: Optional[str] = typer.Argument(
        None, help="The docker volume to restore into"
    ),
    backup_file: Optional[str] = typer.Argument(
        None, help="The archive (path or name in the backup dir)"
    ),
) -> None:
    """Restore a docker volume, replacing its current data."""

    def what() -> str:
        settings = _settings(ctx)
        if not volume_name or not backup_file:
            raise InvalidParameter(
                "Volume name and backup file are required",
                ["Usage: sentry-ops restore <volume_name> <backup_file>"]
                + _listing(settings.backup_dir, VOLUME_FORMATS),
            )
        ops = Operations.create(settings)
        restorer = VolumeRestore(
            ops.runtime, ops.confirmer, ops.backup, settings
        )
        record = restorer.restore(backup_file, volume_name)
        return (
            f"Restore completed: {record.get('Files Restored')} files "
            f"restored into {volume_name}"
        )

    _run("Restore", what)


@app.command("list", add_help_option=False)
def list_(
    ctx: typer.Context,
    show_help: bool = _help_option(),
    kind: ListKind = typer.Argument(
        ListKind.ALL, help="Which artifacts to list", case_sensitive=False
    ),
) -> None:
    """List the available backups and exports."""

    def what() -> str:
        settings = _settings(ctx)
        lines: List[str] = []
        if kind in (ListKind.ALL, ListKind.VOLUMES):
            lines += _listing(settings.backup_dir, VOLUME_FORMATS)
        if kind in (ListKind.ALL, ListKind.EXPORTS):
            lines += _listing(settings.export_dir, DATABASE_FORMATS)
        for line in lines:
            typer.echo(line)
        return ""

    _run("List", what)


if __name__ == "__main__":
    app()
