# SPDX-License-Identifier: Apache-2.0.
# Copyright (c) 2024 - 2026 Waldiez and contributors.

"""Write backup artifacts and their metadata sidecars."""

from __future__ import annotations

import logging
import shlex
import time
from datetime import datetime
from pathlib import Path
from typing import Callable

from ._common import (
    ensure_dir,
    format_size,
    local_now,
    sha256_file,
    timestamp,
)
from .compression import CompressionPlan
from .config import Settings
from .confirm import Confirmer
from .docker import ComposeProject, ContainerRuntime, Mount
from .errors import BackupFailed, ConfirmationDeclined, OpsError
from .formats import ArtifactFormat, artifact_name, metadata_path_for
from .models import Artifact, DatabaseTarget, OperationRecord, VolumeTarget

LOG = logging.getLogger(__name__)

SOURCE_MOUNT = "/source"
BACKUP_MOUNT = "/backup"

# schema + data, large objects, no ownership/privileges
EXPORT_FLAGS = (
    "--verbose",
    "--no-owner",
    "--no-privileges",
    "--clean",
    "--if-exists",
    "--create",
    "--format=custom",
    "--compress=9",
    "--blobs",
)

TOP_TABLES_SQL = """
SELECT
    schemaname,
    tablename,
    pg_size_pretty(pg_total_relation_size(schemaname||'.'||tablename)) as size,
    pg_total_relation_size(schemaname||'.'||tablename) as size_bytes
FROM pg_tables
WHERE schemaname = 'public'
ORDER BY size_bytes DESC
LIMIT 5;"""
TABLE_COUNT_SQL = (
    "SELECT count(*) FROM information_schema.tables "
    "WHERE table_schema = 'public';"
)
VERSION_SQL = "SELECT version();"


def ensure_package(package: str | None) -> str:
    """Get a shell snippet installing a package in an alpine helper.

    Parameters
    ----------
    package : str | None
        The package (also the binary name) to install, if any.

    Returns
    -------
    str
        The snippet, ending with ``&&`` (empty when nothing to install).
    """
    if not package:
        return ""
    pkg = shlex.quote(package)
    return f"(command -v {pkg} >/dev/null || apk add --no-cache {pkg}) && "


def query(compose: ComposeProject, target: DatabaseTarget, sql: str) -> str:
    """Run a single-value SQL query with psql inside the service.

    Parameters
    ----------
    compose : ComposeProject
        The compose project.
    target : DatabaseTarget
        The database.
    sql : str
        The query.

    Returns
    -------
    str
        The trimmed output, or "Unknown" on failure.
    """
    result = compose.exec(
        target.service,
        [
            "psql",
            "-U",
            target.user,
            "-d",
            target.database,
            "-t",
            "-A",
            "-c",
            sql,
        ],
        env=target.env(),
        check=False,
    )
    value = " ".join(result.stdout.split()) if result.ok else ""
    return value or "Unknown"


def ensure_new(path: Path) -> None:
    """Refuse to replace an existing artifact or its metadata.

    Parameters
    ----------
    path : Path
        The artifact about to be written.

    Raises
    ------
    BackupFailed
        If the artifact or its sidecar already exists.
    """
    if path.exists() or metadata_path_for(path).exists():
        raise BackupFailed(
            f"Artifact already exists: {path}",
            ["Artifacts are never overwritten, run the command again"],
        )


class VolumeBackup:
    """Stream a volume through compression into a timestamped archive.

    Parameters
    ----------
    runtime : ContainerRuntime
        The container runtime adapter.
    confirmer : Confirmer
        The confirmation gate.
    settings : Settings
        The effective settings.
    now : Callable[[], datetime]
        Clock for the artifact timestamp.
    clock : Callable[[], float]
        Monotonic clock for durations.
    """

    # pylint: disable=too-many-arguments
    def __init__(
        self,
        runtime: ContainerRuntime,
        confirmer: Confirmer,
        settings: Settings,
        now: Callable[[], datetime] = local_now,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.runtime = runtime
        self.confirmer = confirmer
        self.settings = settings
        self._now = now
        self._clock = clock

    def build_script(self, plan: CompressionPlan, file_name: str) -> str:
        """Get the helper container script for a backup.

        Parameters
        ----------
        plan : CompressionPlan
            The compression plan.
        file_name : str
            The artifact name inside the backup mount.

        Returns
        -------
        str
            The ``sh -c`` script.
        """
        compress = " ".join(plan.compress_command())
        out = shlex.quote(f"{BACKUP_MOUNT}/{file_name}")
        return (
            f"set -o pipefail && cd {SOURCE_MOUNT} && "
            f"{ensure_package(plan.package)}"
            f"tar -cf - . | {compress} > {out}"
        )

    def backup(
        self,
        target: VolumeTarget,
        plan: CompressionPlan,
        destination_dir: Path,
        *,
        prefix: str | None = None,
        confirm_in_use: bool = True,
    ) -> Artifact:
        """Back up a volume.

        Parameters
        ----------
        target : VolumeTarget
            The resolved volume.
        plan : CompressionPlan
            The compression plan.
        destination_dir : Path
            Where to write the artifact and its metadata.
        prefix : str | None
            Artifact name prefix, defaults to ``<volume>_volume``.
        confirm_in_use : bool
            Ask before backing up a volume with running consumers.

        Returns
        -------
        Artifact
            The written artifact.

        Raises
        ------
        ConfirmationDeclined
            If the operator declines backing up an in-use volume.
        BackupFailed
            If the pipeline fails (no partial artifact is left behind).
        """
        if target.in_use and confirm_in_use:
            LOG.warning(
                "The following containers are currently using %s:",
                target.name,
            )
            for consumer in target.consumers:
                LOG.warning("  %s", consumer)
            LOG.warning(
                "For consistent backups, consider stopping these "
                "containers first"
            )
            if not self.confirmer.confirm(
                "Continue with backup while containers are running?"
            ):
                raise ConfirmationDeclined("Backup cancelled by user")

        ensure_dir(destination_dir)
        destination_dir = destination_dir.resolve()
        created = self._now()
        file_name = artifact_name(
            prefix or f"{target.name}_volume",
            created,
            ArtifactFormat.TAR_ZST,
        )
        path = destination_dir / file_name
        ensure_new(path)
        script = self.build_script(plan, file_name)
        mounts = [
            Mount(target.name, SOURCE_MOUNT, read_only=True),
            Mount(str(destination_dir), BACKUP_MOUNT),
        ]
        container_name = f"sentry-volume-backup-{timestamp(created)}"
        LOG.info("Backing up volume %s with %s", target.name, plan.describe())
        LOG.info("Backup file: %s", path)

        started = self._clock()
        try:
            self.runtime.run_helper(
                self.settings.helper_image,
                mounts,
                script,
                name=container_name,
            )
            if not path.is_file():
                raise BackupFailed(f"Backup file was not created: {path}")
        except (OpsError, OSError) as error:
            path.unlink(missing_ok=True)
            raise BackupFailed(
                f"Volume backup of {target.name} failed: {error}"
            ) from error
        elapsed = self._clock() - started

        size = path.stat().st_size
        consumers = ", ".join(c.name for c in target.consumers)
        command = " ".join(
            self.runtime.helper_command(
                self.settings.helper_image, mounts, script
            )
        )
        record = (
            OperationRecord()
            .add("Backup Timestamp", timestamp(created))
            .add("Volume Name", target.name)
            .add("Original Volume Size", target.size)
            .add("Volume Mountpoint", target.mountpoint)
            .add("Backup File Size", format_size(size))
            .add("Backup Time", f"{elapsed:.0f} seconds")
            .add("Compression Method", plan.method)
            .add("Compression Level", plan.level)
            .add("Threads Used", plan.threads)
            .add("Docker Image", self.settings.helper_image)
            .add("Containers Using Volume", consumers)
            .add("Docker Version", self.runtime.version())
            .add("Checksum (SHA256)", sha256_file(path))
            .add(
                "Backup Method",
                "Docker volume mount with parallel compression",
            )
            .add("Backup Command", command)
        )
        metadata_path = record.write(metadata_path_for(path))
        LOG.info(
            "Volume backup completed: %s (%s in %.0f seconds)",
            path.name,
            format_size(size),
            elapsed,
        )
        LOG.info("Metadata saved to: %s", metadata_path)
        return Artifact(
            path=path,
            created=created,
            size_bytes=size,
            method=plan.method,
            level=plan.level,
            threads=plan.threads,
            description={
                "Original Volume Size": target.size,
                "Containers Using Volume": consumers,
            },
            metadata_path=metadata_path,
        )


class DatabaseExport:
    """Export a PostgreSQL database into a custom-format dump.

    Parameters
    ----------
    compose : ComposeProject
        The compose project adapter.
    settings : Settings
        The effective settings.
    now : Callable[[], datetime]
        Clock for the artifact timestamp.
    clock : Callable[[], float]
        Monotonic clock for durations.
    """

    def __init__(
        self,
        compose: ComposeProject,
        settings: Settings,
        now: Callable[[], datetime] = local_now,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.compose = compose
        self.settings = settings
        self._now = now
        self._clock = clock

    def dump_command(self, target: DatabaseTarget, out: str) -> list[str]:
        """Get the ``pg_dump`` invocation writing to ``out``."""
        return [
            "pg_dump",
            "-U",
            target.user,
            "-d",
            target.database,
            *EXPORT_FLAGS,
            f"--file={out}",
        ]

    def count_objects(self, target: DatabaseTarget, dump: str) -> int | None:
        """List a dump's table of contents and count its entries.

        Parameters
        ----------
        target : DatabaseTarget
            The database service holding the dump.
        dump : str
            The dump path inside the container.

        Returns
        -------
        int | None
            The number of objects, None if the listing failed.
        """
        result = self.compose.exec(
            target.service, ["pg_restore", "--list", dump], check=False
        )
        if not result.ok:
            return None
        return sum(1 for line in result.lines() if not line.startswith(";"))

    def log_statistics(self, target: DatabaseTarget) -> tuple[str, str]:
        """Log the database size, table count and largest tables.

        Parameters
        ----------
        target : DatabaseTarget
            The database.

        Returns
        -------
        tuple[str, str]
            The pretty database size and the public table count.
        """
        db_size = query(
            self.compose,
            target,
            f"SELECT pg_size_pretty(pg_database_size('{target.database}'));",
        )
        LOG.info("Database size: %s", db_size)
        table_count = query(self.compose, target, TABLE_COUNT_SQL)
        LOG.info("Number of tables: %s", table_count)
        top = self.compose.exec(
            target.service,
            [
                "psql",
                "-U",
                target.user,
                "-d",
                target.database,
                "-c",
                TOP_TABLES_SQL,
            ],
            env=target.env(),
            check=False,
        )
        if top.ok:
            LOG.info("Top 5 largest tables:")
            for line in top.stdout.rstrip().splitlines():
                LOG.info("  %s", line)
        return db_size, table_count

    def app_version(self) -> str:
        """Get the application version from the web service."""
        try:
            result = self.compose.exec(
                self.settings.web_service, ["sentry", "--version"], check=False
            )
        except OpsError:
            return "Unable to determine"
        return result.stdout.strip() if result.ok else "Unable to determine"

    def export(
        self, target: DatabaseTarget, destination_dir: Path
    ) -> Artifact:
        """Export a database.

        Parameters
        ----------
        target : DatabaseTarget
            The resolved, ready database.
        destination_dir : Path
            Where to write the dump and its metadata.

        Returns
        -------
        Artifact
            The written dump.

        Raises
        ------
        BackupFailed
            If dumping or copying fails (no partial dump is left behind).
        """
        ensure_dir(destination_dir)
        created = self._now()
        file_name = artifact_name(
            self.settings.export_prefix, created, ArtifactFormat.DUMP
        )
        path = destination_dir.resolve() / file_name
        ensure_new(path)
        tmp = f"/tmp/{file_name}"  # nosemgrep # nosec
        LOG.info("Export file: %s", path)

        db_size, _ = self.log_statistics(target)
        LOG.info("Exporting database (this may take a while)...")
        started = self._clock()
        objects: int | None = None
        try:
            self.compose.exec(
                target.service,
                self.dump_command(target, tmp),
                env=target.env(),
                capture=False,
            )
            self.compose.copy_from(target.service, tmp, path)
            if not path.is_file():
                raise BackupFailed(f"Export file was not created: {path}")
            LOG.info("Verifying export file integrity...")
            objects = self.count_objects(target, tmp)
        except (OpsError, OSError) as error:
            path.unlink(missing_ok=True)
            raise BackupFailed(
                f"Database export of {target.service} failed: {error}"
            ) from error
        finally:
            self.compose.exec(
                target.service, ["rm", "-f", tmp], check=False
            )
        elapsed = self._clock() - started

        if objects is None:
            LOG.warning("Could not verify export file integrity")
        else:
            LOG.info("Export contains %d database objects", objects)
        size = path.stat().st_size
        object_count = "Unknown" if objects is None else str(objects)
        pg_version = query(self.compose, target, VERSION_SQL)
        command = " ".join(self.dump_command(target, tmp)[:-1])
        record = (
            OperationRecord()
            .add("Export Timestamp", timestamp(created))
            .add("Database Name", target.database)
            .add("Database User", target.user)
            .add("Original Database Size", db_size)
            .add("Export File Size", format_size(size))
            .add("Export Time", f"{elapsed:.0f} seconds")
            .add("Database Objects", object_count)
            .add("PostgreSQL Version", pg_version)
            .add("Sentry Version", self.app_version())
            .add("Checksum (SHA256)", sha256_file(path))
            .add("Export Command", command)
        )
        metadata_path = record.write(metadata_path_for(path))
        LOG.info(
            "Database export completed: %s (%s)", path.name, format_size(size)
        )
        LOG.info("Metadata saved to: %s", metadata_path)
        return Artifact(
            path=path,
            created=created,
            size_bytes=size,
            method="pg_dump custom",
            level=9,
            description={
                "Original Database Size": db_size,
                "Database Objects": object_count,
            },
            metadata_path=metadata_path,
        )
