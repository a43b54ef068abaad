# SPDX-License-Identifier: Apache-2.0.
# Copyright (c) 2024 - 2026 Waldiez and contributors.

# pylint: disable=missing-return-doc,missing-param-doc
"""Test sentry_ops.writer.*."""

from pathlib import Path

import pytest
from conftest import FIXED_NOW, FakeRunner, copy_out, write_archive

from sentry_ops._common import sha256_file
from sentry_ops.compression import select_plan
from sentry_ops.config import Settings
from sentry_ops.confirm import ScriptedConfirmer
from sentry_ops.docker import ComposeProject, ContainerRuntime
from sentry_ops.errors import BackupFailed, ConfirmationDeclined
from sentry_ops.formats import parse_metadata
from sentry_ops.models import Consumer, DatabaseTarget, VolumeTarget
from sentry_ops.writer import DatabaseExport, VolumeBackup

PG_LIST = """;
; Archive created at 2024-05-17 14:30:05 UTC
;     dbname: postgres
;
3; 2615 2200 SCHEMA - public postgres
215; 1259 16386 TABLE public sentry_project postgres
216; 1259 16390 TABLE public sentry_organization postgres
"""


def make_backup(
    runner: FakeRunner, settings: Settings, confirmer: ScriptedConfirmer
) -> VolumeBackup:
    """Build a volume backup over a fake runner."""
    return VolumeBackup(
        ContainerRuntime(runner),
        confirmer,
        settings,
        now=lambda: FIXED_NOW,
        clock=lambda: 0.0,
    )


def test_backup_demo_volume(
    fake_runner: FakeRunner, settings: Settings, tmp_path: Path
) -> None:
    """Test backing up with level 9 and two threads."""
    fake_runner.on("run", "--rm", effect=write_archive(b"zstd-bytes"))
    destination = tmp_path / "volume_backups"
    artifact = make_backup(fake_runner, settings, ScriptedConfirmer()).backup(
        VolumeTarget("demo-vol", size="1.2GB"),
        select_plan(9, 2),
        destination,
    )
    assert artifact.name == "demo-vol_volume_20240517_143005.tar.zst"
    assert artifact.path == destination.resolve() / artifact.name
    assert artifact.path.read_bytes() == b"zstd-bytes"
    assert artifact.level == 9
    assert artifact.threads == 2

    helper = next(a for a in fake_runner.history if "run" in a)
    assert "demo-vol:/source:ro" in helper
    assert "sentry-volume-backup-20240517_143005" in helper
    assert "tar -cf - . | zstd -9 -T2 > " in helper[-1]

    assert artifact.metadata_path is not None
    metadata = parse_metadata(artifact.metadata_path)
    assert artifact.metadata_path.name == (
        "demo-vol_volume_20240517_143005_metadata.txt"
    )
    assert metadata["Compression Level"] == "9"
    assert metadata["Threads Used"] == "2"
    assert metadata["Volume Name"] == "demo-vol"
    assert metadata["Original Volume Size"] == "1.2GB"
    assert metadata["Checksum (SHA256)"] == sha256_file(artifact.path)


def test_backup_failure_removes_partial(
    fake_runner: FakeRunner, settings: Settings, tmp_path: Path
) -> None:
    """Test that a failed pipeline leaves no artifact behind."""
    fake_runner.on(
        "run",
        "--rm",
        returncode=1,
        stderr="zstd: error 70 : Write error",
        effect=write_archive(b"partial"),
    )
    destination = tmp_path / "volume_backups"
    with pytest.raises(BackupFailed) as exc_info:
        make_backup(fake_runner, settings, ScriptedConfirmer()).backup(
            VolumeTarget("demo-vol"), select_plan(3, 1), destination
        )
    assert "demo-vol" in exc_info.value.message
    assert not list(destination.iterdir())


def test_backup_missing_output(
    fake_runner: FakeRunner, settings: Settings, tmp_path: Path
) -> None:
    """Test a helper that exits cleanly without writing the archive."""
    with pytest.raises(BackupFailed):
        make_backup(fake_runner, settings, ScriptedConfirmer()).backup(
            VolumeTarget("demo-vol"), select_plan(3, 1), tmp_path / "out"
        )


def test_backup_in_use_declined(
    fake_runner: FakeRunner, settings: Settings, tmp_path: Path
) -> None:
    """Test declining to back up a volume in use."""
    confirmer = ScriptedConfirmer(["n"])
    target = VolumeTarget("demo-vol", consumers=(Consumer("web", "Up"),))
    with pytest.raises(ConfirmationDeclined):
        make_backup(fake_runner, settings, confirmer).backup(
            target, select_plan(3, 1), tmp_path / "out"
        )
    assert confirmer.prompts == [
        "Continue with backup while containers are running?"
    ]
    assert not fake_runner.history
    assert not (tmp_path / "out").exists()


def test_backup_in_use_accepted(
    fake_runner: FakeRunner, settings: Settings, tmp_path: Path
) -> None:
    """Test backing up a volume in use after confirmation."""
    fake_runner.on("run", "--rm", effect=write_archive())
    target = VolumeTarget("demo-vol", consumers=(Consumer("web", "Up"),))
    artifact = make_backup(
        fake_runner, settings, ScriptedConfirmer(["y"])
    ).backup(target, select_plan(3, 1), tmp_path / "out")
    assert artifact.path.is_file()
    assert artifact.description["Containers Using Volume"] == "web"


def make_export(runner: FakeRunner, settings: Settings) -> DatabaseExport:
    """Build a database export over a fake runner."""
    return DatabaseExport(
        ComposeProject(runner, settings.project_dir),
        settings,
        now=lambda: FIXED_NOW,
        clock=lambda: 0.0,
    )


def test_export(
    fake_runner: FakeRunner, settings: Settings, tmp_path: Path
) -> None:
    """Test exporting a database into a custom format dump."""
    fake_runner.on("-t", "-A", stdout=" 42 MB\n")
    fake_runner.on("cp", effect=copy_out(b"PGDMP-data"))
    fake_runner.on("pg_restore", "--list", stdout=PG_LIST)
    fake_runner.on("sentry", "--version", stdout="sentry, version 24.5.0\n")
    target = DatabaseTarget("postgres", password="secret")
    artifact = make_export(fake_runner, settings).export(
        target, tmp_path / "db_backup"
    )
    assert artifact.name == "sentry_db_export_20240517_143005.dump"
    assert artifact.path.read_bytes() == b"PGDMP-data"

    dump = next(a for a in fake_runner.history if "pg_dump" in a)
    for flag in (
        "--format=custom",
        "--compress=9",
        "--blobs",
        "--no-owner",
        "--no-privileges",
        "--clean",
        "--if-exists",
        "--create",
    ):
        assert flag in dump
    assert "PGPASSWORD=secret" in dump
    tmp = "/tmp/sentry_db_export_20240517_143005.dump"
    assert f"--file={tmp}" in dump
    assert fake_runner.issued("rm", "-f", tmp)

    assert artifact.metadata_path is not None
    metadata = parse_metadata(artifact.metadata_path)
    assert metadata["Database Objects"] == "3"
    assert metadata["Original Database Size"] == "42 MB"
    assert metadata["Sentry Version"] == "sentry, version 24.5.0"
    assert metadata["Checksum (SHA256)"] == sha256_file(artifact.path)
    assert "secret" not in artifact.metadata_path.read_text(encoding="utf-8")


def test_export_failure_cleans_up(
    fake_runner: FakeRunner, settings: Settings, tmp_path: Path
) -> None:
    """Test that a failed dump leaves no artifact behind."""
    fake_runner.on("pg_dump", returncode=1, stderr="pg_dump: error")
    destination = tmp_path / "db_backup"
    with pytest.raises(BackupFailed):
        make_export(fake_runner, settings).export(
            DatabaseTarget("postgres"), destination
        )
    assert not list(destination.iterdir())
    assert fake_runner.issued("rm", "-f")
    assert not fake_runner.issued("cp")


def test_export_unverified(
    fake_runner: FakeRunner, settings: Settings, tmp_path: Path
) -> None:
    """Test that a failed integrity listing is only a warning."""
    fake_runner.on("cp", effect=copy_out())
    fake_runner.on("pg_restore", "--list", returncode=1)
    fake_runner.on("sentry", "--version", returncode=1)
    artifact = make_export(fake_runner, settings).export(
        DatabaseTarget("postgres"), tmp_path / "db_backup"
    )
    assert artifact.metadata_path is not None
    metadata = parse_metadata(artifact.metadata_path)
    assert metadata["Database Objects"] == "Unknown"
    assert metadata["Sentry Version"] == "Unable to determine"


def test_backup_never_overwrites(
    fake_runner: FakeRunner, settings: Settings, tmp_path: Path
) -> None:
    """Test a second backup of a volume within the same second."""
    fake_runner.on("run", "--rm", effect=write_archive(b"second"))
    destination = tmp_path / "volume_backups"
    destination.mkdir()
    existing = destination / "demo-vol_volume_20240517_143005.tar.zst"
    existing.write_bytes(b"first")
    with pytest.raises(BackupFailed) as exc_info:
        make_backup(fake_runner, settings, ScriptedConfirmer()).backup(
            VolumeTarget("demo-vol"), select_plan(3, 1), destination
        )
    assert "already exists" in exc_info.value.message
    assert existing.read_bytes() == b"first"
    assert not fake_runner.issued("run", "--rm")


def test_export_never_overwrites(
    fake_runner: FakeRunner, settings: Settings, tmp_path: Path
) -> None:
    """Test an export whose metadata file is already there."""
    destination = tmp_path / "db_backup"
    destination.mkdir()
    sidecar = destination / "sentry_db_export_20240517_143005_metadata.txt"
    sidecar.write_text("Export Timestamp: 20240517_143005\n", encoding="utf-8")
    with pytest.raises(BackupFailed):
        make_export(fake_runner, settings).export(
            DatabaseTarget("postgres"), destination
        )
    assert not fake_runner.issued("pg_dump")
    assert sidecar.read_text(encoding="utf-8").startswith("Export Timestamp")
