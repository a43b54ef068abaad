# SPDX-License-Identifier: Apache-2.0.
# Copyright (c) 2024 - 2026 Waldiez and contributors.

"""Restore volumes and import databases from backup artifacts.

Both flows follow the same order: validate the artifact (format and
checksum) before inspecting the target, ask the operator twice (stop the
consumers, then replace the data), take a mandatory backup of whatever
is about to be destroyed, and only then replace and replay. A failure
after the destructive part began raises
:class:`~sentry_ops.errors.RestoreFailed` with manual rollback steps
that name the kept pre-destroy backup.
"""

from __future__ import annotations

import logging
import shlex
import time
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterable

from ._common import format_size, local_now, sha256_file, timestamp
from .compression import select_plan
from .config import Settings
from .confirm import Confirmer
from .docker import ComposeProject, ContainerRuntime, Mount
from .errors import (
    ArtifactNotFound,
    BackupFailed,
    ConfirmationDeclined,
    OpsError,
    RestoreFailed,
    TargetBusy,
)
from .formats import (
    DATABASE_FORMATS,
    IMPORT_LOG_PREFIX,
    RESTORE_LOG_PREFIX,
    VOLUME_FORMATS,
    ArtifactFormat,
    describe_listing,
    detect_format,
    list_artifacts,
    log_name,
    metadata_path_for,
    parse_metadata,
)
from .models import Artifact, DatabaseTarget, OperationRecord, VolumeTarget
from .resolver import TargetResolver
from .writer import (
    TABLE_COUNT_SQL,
    VERSION_SQL,
    VolumeBackup,
    ensure_package,
    query,
)

LOG = logging.getLogger(__name__)

TARGET_MOUNT = "/target"
BACKUP_MOUNT = "/backup"
CHECK_MOUNT = "/check"
RESTORE_DUMP = "/tmp/restore.dump"  # nosemgrep # nosec
CHECKSUM_FIELD = "Checksum (SHA256)"
PRE_IMPORT_PREFIX = "postgres_volume_backup"

RESTORE_FLAGS = (
    "--verbose",
    "--clean",
    "--if-exists",
    "--no-owner",
    "--no-privileges",
)


def resolve_artifact(
    name: str | Path,
    default_dir: Path,
    formats: Iterable[ArtifactFormat],
) -> Path:
    """Find an artifact by path, or by name in the default directory.

    Parameters
    ----------
    name : str | Path
        The path or file name given by the operator.
    default_dir : Path
        The directory to look in when ``name`` is not an existing path.
    formats : Iterable[ArtifactFormat]
        The formats to list when the artifact is missing.

    Returns
    -------
    Path
        The resolved artifact path.

    Raises
    ------
    ArtifactNotFound
        If neither location holds the file.
    """
    candidate = Path(name).expanduser()
    if candidate.is_file():
        return candidate.resolve()
    in_default = default_dir / candidate.name
    if in_default.is_file():
        return in_default.resolve()
    formats = tuple(formats)
    raise ArtifactNotFound(
        f"Backup file not found: {name}",
        describe_listing(default_dir, list_artifacts(default_dir, formats)),
    )


def verify_checksum(path: Path) -> bool:
    """Compare an artifact with the checksum recorded in its sidecar.

    Parameters
    ----------
    path : Path
        The artifact.

    Returns
    -------
    bool
        True if verified, False if no checksum was recorded.

    Raises
    ------
    RestoreFailed
        If the recorded checksum does not match.
    """
    expected = parse_metadata(metadata_path_for(path)).get(CHECKSUM_FIELD)
    if not expected:
        LOG.debug("No checksum recorded for %s", path.name)
        return False
    actual = sha256_file(path)
    if actual != expected:
        raise RestoreFailed(
            f"Checksum mismatch for {path.name}",
            [
                f"Expected: {expected}",
                f"Actual:   {actual}",
                "The file may be corrupted or incomplete.",
            ],
        )
    LOG.info("Checksum verified for %s", path.name)
    return True


def show_metadata(path: Path) -> None:
    """Log the sidecar of an artifact, if it has one."""
    metadata_path = metadata_path_for(path)
    if not metadata_path.is_file():
        LOG.info("No metadata found for %s", path.name)
        return
    LOG.info("Backup information:")
    for line in metadata_path.read_text(encoding="utf-8").splitlines():
        LOG.info("  %s", line)


def extract_script(fmt: ArtifactFormat, file_name: str) -> str:
    """Get the helper script extracting an archive into the target mount.

    Parameters
    ----------
    fmt : ArtifactFormat
        The archive format.
    file_name : str
        The archive name inside the backup mount.

    Returns
    -------
    str
        The ``sh -c`` script.
    """
    decode = " ".join(fmt.decode_command())
    src = shlex.quote(f"{BACKUP_MOUNT}/{file_name}")
    return (
        f"set -o pipefail && cd {TARGET_MOUNT} && "
        f"{ensure_package(fmt.decoder_package)}"
        f"{decode} {src} | tar -xf -"
    )


def rollback_steps(
    volume: str, backup: Artifact | None, image: str
) -> list[str]:
    """Get the manual steps that put a pre-destroy backup back in place.

    Parameters
    ----------
    volume : str
        The volume to roll back.
    backup : Artifact | None
        The pre-destroy backup, if one was taken.
    image : str
        The helper image.

    Returns
    -------
    list[str]
        The remediation lines.
    """
    if backup is None:
        return [
            f"No backup of {volume} was taken (the volume did not exist)."
        ]
    script = extract_script(ArtifactFormat.TAR_ZST, backup.name)
    return [
        f"The previous data is kept in: {backup.path}",
        "To roll back, run:",
        f"  sentry-ops restore {volume} {backup.path}",
        "or manually:",
        f"  docker volume rm {volume}",
        f"  docker volume create {volume}",
        f"  docker run --rm -v {volume}:{TARGET_MOUNT} "
        f"-v {backup.path.parent}:{BACKUP_MOUNT}:ro {image} "
        f"sh -c {shlex.quote(script)}",
    ]


class VolumeRestore:
    """Replace a volume's content with a backup archive.

    Parameters
    ----------
    runtime : ContainerRuntime
        The container runtime adapter.
    confirmer : Confirmer
        The confirmation gate.
    backup : VolumeBackup
        Used for the mandatory pre-destroy backup.
    settings : Settings
        The effective settings.
    now : Callable[[], datetime]
        Clock for the restore log name.
    clock : Callable[[], float]
        Monotonic clock for durations.
    """

    # pylint: disable=too-many-arguments
    def __init__(
        self,
        runtime: ContainerRuntime,
        confirmer: Confirmer,
        backup: VolumeBackup,
        settings: Settings,
        now: Callable[[], datetime] = local_now,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.runtime = runtime
        self.confirmer = confirmer
        self.backup = backup
        self.settings = settings
        self._now = now
        self._clock = clock

    def count_files(self, volume: str) -> int:
        """Count the regular files in a volume."""
        result = self.runtime.run_helper(
            self.settings.helper_image,
            [Mount(volume, CHECK_MOUNT, read_only=True)],
            f"find {CHECK_MOUNT} -type f | wc -l",
        )
        try:
            return int(result.stdout.strip() or 0)
        except ValueError:
            return 0

    def _confirm_stop(self, volume: str) -> list[str]:
        consumers = self.runtime.consumers(volume)
        if not consumers:
            return []
        LOG.warning("The following containers are using %s:", volume)
        for consumer in consumers:
            LOG.warning("  %s", consumer)
        names = [consumer.name for consumer in consumers]
        if not self.confirmer.confirm("Stop these containers now?"):
            raise TargetBusy(volume, names)
        return names

    # pylint: disable=too-many-locals
    def restore(self, artifact: str | Path, volume: str) -> OperationRecord:
        """Restore a volume from a backup archive.

        Parameters
        ----------
        artifact : str | Path
            The archive path, or its name in the backup directory.
        volume : str
            The volume to replace (created if it does not exist).

        Returns
        -------
        OperationRecord
            The written restore log.

        Raises
        ------
        UnsupportedFormat
            If the archive is not a ``.tar.zst``/``.tar.gz`` file.
        ArtifactNotFound
            If the archive does not exist.
        TargetBusy
            If containers use the volume and the operator keeps them.
        ConfirmationDeclined
            If the operator declines replacing the data.
        RestoreFailed
            If the restore fails after the old data was backed up.
        """
        fmt = detect_format(artifact, VOLUME_FORMATS)
        path = resolve_artifact(
            artifact, self.settings.backup_dir, VOLUME_FORMATS
        )
        verify_checksum(path)
        show_metadata(path)
        self.runtime.ensure_available()
        exists = self.runtime.volume_exists(volume)
        to_stop: list[str] = []
        if exists:
            to_stop = self._confirm_stop(volume)
        else:
            LOG.info("Volume %s does not exist, it will be created", volume)

        LOG.warning("This will completely replace the current volume data")
        if not self.confirmer.confirm(
            f"Replace all data in volume {volume} with {path.name}?"
        ):
            raise ConfirmationDeclined("Restore cancelled by user")

        if to_stop:
            LOG.info("Stopping containers: %s", " ".join(to_stop))
            self.runtime.stop_containers(to_stop)
        started = self._clock()
        pre_restore: Artifact | None = None
        if exists:
            LOG.info("Creating backup of current volume...")
            pre_restore = self.backup.backup(
                VolumeTarget(
                    name=volume,
                    mountpoint=self.runtime.volume_mountpoint(volume),
                    size=self.runtime.volume_size(volume),
                ),
                select_plan(
                    self.settings.compression_level, self.settings.threads
                ),
                self.settings.backup_dir,
                prefix=f"{volume}_pre_restore",
                confirm_in_use=False,
            )
        try:
            if exists:
                self.runtime.remove_volume(volume)
            self.runtime.create_volume(volume)
            LOG.info("Extracting %s (%s)", path.name, fmt.label)
            self.runtime.run_helper(
                self.settings.helper_image,
                [
                    Mount(volume, TARGET_MOUNT),
                    Mount(str(path.parent), BACKUP_MOUNT, read_only=True),
                ],
                extract_script(fmt, path.name),
            )
            files = self.count_files(volume)
        except (OpsError, OSError) as error:
            raise RestoreFailed(
                f"Restore of volume {volume} failed: {error}",
                rollback_steps(
                    volume, pre_restore, self.settings.helper_image
                ),
                rollback_artifact=pre_restore.path if pre_restore else None,
            ) from error
        elapsed = self._clock() - started

        finished = self._now()
        record = (
            OperationRecord()
            .add("Restore Timestamp", timestamp(finished))
            .add("Volume Name", volume)
            .add("Backup File Used", path)
            .add("Backup Format", fmt.label)
            .add("Backup File Size", format_size(path.stat().st_size))
            .add(
                "Pre-restore Backup",
                pre_restore.path if pre_restore else "None",
            )
            .add("Files Restored", files)
            .add("Restore Time", f"{elapsed:.0f} seconds")
        )
        self.settings.backup_dir.mkdir(parents=True, exist_ok=True)
        record.write(
            self.settings.backup_dir / log_name(RESTORE_LOG_PREFIX, finished)
        )
        LOG.info(
            "Volume %s restored: %d files in %.0f seconds",
            volume,
            files,
            elapsed,
        )
        return record


class DatabaseImport:
    """Replace a PostgreSQL database with an export.

    Parameters
    ----------
    compose : ComposeProject
        The compose project adapter.
    runtime : ContainerRuntime
        The container runtime adapter.
    resolver : TargetResolver
        Used for the service checks and readiness polling.
    confirmer : Confirmer
        The confirmation gate.
    backup : VolumeBackup
        Used for the mandatory backup of the database volume.
    settings : Settings
        The effective settings.
    now : Callable[[], datetime]
        Clock for the import log name.
    clock : Callable[[], float]
        Monotonic clock for durations.
    """

    # pylint: disable=too-many-arguments
    def __init__(
        self,
        compose: ComposeProject,
        runtime: ContainerRuntime,
        resolver: TargetResolver,
        confirmer: Confirmer,
        backup: VolumeBackup,
        settings: Settings,
        now: Callable[[], datetime] = local_now,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.compose = compose
        self.runtime = runtime
        self.resolver = resolver
        self.confirmer = confirmer
        self.backup = backup
        self.settings = settings
        self._now = now
        self._clock = clock

    def replay(
        self, target: DatabaseTarget, path: Path, fmt: ArtifactFormat
    ) -> None:
        """Load an export into the database.

        ``.dump`` files are copied into the container and restored with
        ``pg_restore``; ``.sql`` files are fed to ``psql`` on stdin and stop
        at the first failing statement.
        """
        if fmt is ArtifactFormat.SQL:
            LOG.info("Importing SQL file...")
            self.compose.exec(
                target.service,
                [
                    "psql",
                    "-v",
                    "ON_ERROR_STOP=1",
                    "-U",
                    target.user,
                    "-d",
                    target.database,
                ],
                env=target.env(),
                capture=False,
                stdin_path=path,
            )
            return
        LOG.info("Importing compressed dump file...")
        self.compose.copy_to(target.service, path, RESTORE_DUMP)
        try:
            self.compose.exec(
                target.service,
                [
                    "pg_restore",
                    "-U",
                    target.user,
                    "-d",
                    target.database,
                    *RESTORE_FLAGS,
                    RESTORE_DUMP,
                ],
                env=target.env(),
                capture=False,
            )
        finally:
            self.compose.exec(
                target.service, ["rm", "-f", RESTORE_DUMP], check=False
            )

    def _stop_services(self, target: DatabaseTarget) -> None:
        running = self.compose.running_services()
        if not running:
            return
        LOG.warning("The following services are running:")
        for service in running:
            LOG.warning("  %s", service)
        if not self.confirmer.confirm("Stop all running services now?"):
            raise TargetBusy(target.volume, running)

    def _backup_volume(self, target: DatabaseTarget) -> Artifact | None:
        if not self.runtime.volume_exists(target.volume):
            LOG.info(
                "Volume %s does not exist, skipping backup", target.volume
            )
            return None
        LOG.info("Backing up volume %s...", target.volume)
        try:
            return self.backup.backup(
                VolumeTarget(
                    name=target.volume,
                    mountpoint=self.runtime.volume_mountpoint(target.volume),
                    size=self.runtime.volume_size(target.volume),
                ),
                select_plan(
                    self.settings.compression_level, self.settings.threads
                ),
                self.settings.backup_dir,
                prefix=PRE_IMPORT_PREFIX,
                confirm_in_use=False,
            )
        except BackupFailed as error:
            raise RestoreFailed(
                f"Backup of {target.volume} failed, nothing was changed",
                ["Start the services again with: docker compose up -d"],
            ) from error

    # pylint: disable=too-many-locals
    def import_dump(
        self, artifact: str | Path, service: str
    ) -> OperationRecord:
        """Import an export into a compose service's database.

        Parameters
        ----------
        artifact : str | Path
            The export path, or its name in the export directory.
        service : str
            The compose service running PostgreSQL.

        Returns
        -------
        OperationRecord
            The written import log.

        Raises
        ------
        UnsupportedFormat
            If the export is not a ``.dump``/``.sql`` file.
        ArtifactNotFound
            If the export does not exist.
        TargetNotFound
            If the service is not part of the compose project.
        TargetBusy
            If the operator keeps the running services.
        ConfirmationDeclined
            If the operator declines replacing the database.
        RestoreFailed
            If the import fails after the volume was backed up.
        """
        fmt = detect_format(artifact, DATABASE_FORMATS)
        path = resolve_artifact(
            artifact, self.settings.export_dir, DATABASE_FORMATS
        )
        verify_checksum(path)
        self.resolver.require_service(service)
        target = self.resolver.database_target(service)
        LOG.info("Import file: %s (%s)", path.name, fmt.label)
        show_metadata(path)
        self._stop_services(target)

        LOG.warning(
            "This will completely replace the current database "
            "(volume %s)",
            target.volume,
        )
        if not self.confirmer.confirm("Continue with database import?"):
            raise ConfirmationDeclined("Import cancelled by user")

        started = self._clock()
        LOG.info("Stopping all services...")
        self.compose.down()
        volume_backup = self._backup_volume(target)
        try:
            if volume_backup is not None:
                self.runtime.remove_volume(target.volume)
            self.runtime.create_volume(target.volume)
            LOG.info("Starting PostgreSQL container (%s)...", service)
            self.compose.up(service)
            self.resolver.wait_ready(target)
            self.replay(target, path, fmt)
            LOG.info("Verifying import...")
            db_size = query(
                self.compose,
                target,
                "SELECT pg_size_pretty("
                f"pg_database_size('{target.database}'));",
            )
            tables = query(self.compose, target, TABLE_COUNT_SQL)
            pg_version = query(self.compose, target, VERSION_SQL)
        except (OpsError, OSError) as error:
            raise RestoreFailed(
                f"Database import into {service} failed: {error}",
                ["First stop the services: docker compose down"]
                + rollback_steps(
                    target.volume, volume_backup, self.settings.helper_image
                )
                + ["Then start the services: docker compose up -d"],
                rollback_artifact=(
                    volume_backup.path if volume_backup else None
                ),
            ) from error
        elapsed = self._clock() - started

        finished = self._now()
        record = (
            OperationRecord()
            .add("Import Timestamp", timestamp(finished))
            .add("Export File Used", path)
            .add("Export Format", fmt.label)
            .add(
                "Volume Backup",
                volume_backup.path if volume_backup else "None",
            )
            .add("Imported Database Size", db_size)
            .add("Number of Tables", tables)
            .add("PostgreSQL Version", pg_version)
            .add("Import Time", f"{elapsed:.0f} seconds")
        )
        self.settings.export_dir.mkdir(parents=True, exist_ok=True)
        record.write(
            self.settings.export_dir / log_name(IMPORT_LOG_PREFIX, finished)
        )
        LOG.info("Database import completed in %.0f seconds", elapsed)
        LOG.info("Imported database size: %s, tables: %s", db_size, tables)
        LOG.info("Start the remaining services with: docker compose up -d")
        return record
