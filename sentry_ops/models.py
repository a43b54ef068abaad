# SPDX-License-Identifier: Apache-2.0.
# Copyright (c) 2024 - 2026 Waldiez and contributors.

"""Backup and restore related models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path


@dataclass(frozen=True)
class Consumer:
    """A running container attached to a target."""

    name: str
    status: str = "Unknown"

    def __str__(self) -> str:
        return f"{self.name} ({self.status})"


@dataclass(frozen=True)
class VolumeTarget:
    """A docker volume to back up or restore."""

    name: str
    mountpoint: str = "Unknown"
    size: str = "Unknown"
    consumers: tuple[Consumer, ...] = ()

    @property
    def in_use(self) -> bool:
        """Whether any container currently uses the volume."""
        return bool(self.consumers)


@dataclass(frozen=True)
class DatabaseTarget:
    """A compose service running PostgreSQL."""

    service: str
    database: str = "postgres"
    user: str = "postgres"
    password: str | None = None
    volume: str = "sentry-postgres"

    def env(self) -> dict[str, str] | None:
        """Get the environment to pass to database tools, if any."""
        if self.password:
            return {"PGPASSWORD": self.password}
        return None


@dataclass(frozen=True)
class Artifact:
    """A backup output file, immutable once written."""

    path: Path
    created: datetime
    size_bytes: int
    method: str
    level: int | None = None
    threads: int | None = None
    description: dict[str, str] = field(default_factory=dict)
    metadata_path: Path | None = None

    @property
    def name(self) -> str:
        """The artifact's file name."""
        return self.path.name


@dataclass
class OperationRecord:
    """A sidecar text record describing a completed run.

    Records are written once: :meth:`write` refuses to replace an
    existing file.
    """

    fields: list[tuple[str, str]] = field(default_factory=list)
    path: Path | None = None

    def add(self, key: str, value: object) -> "OperationRecord":
        """Append a ``Key: Value`` line.

        Parameters
        ----------
        key : str
            The field name.
        value : object
            The field value (converted with ``str``).

        Returns
        -------
        OperationRecord
            The record itself, for chaining.
        """
        self.fields.append((key, str(value)))
        return self

    def get(self, key: str, default: str | None = None) -> str | None:
        """Get the value of the first field with the given key."""
        for name, value in self.fields:
            if name == key:
                return value
        return default

    def render(self) -> str:
        """Get the record's text."""
        return "".join(f"{key}: {value}\n" for key, value in self.fields)

    def write(self, path: Path) -> Path:
        """Write the record to a new file.

        Parameters
        ----------
        path : Path
            The destination. It must not exist yet.

        Returns
        -------
        Path
            The written path.

        Raises
        ------
        FileExistsError
            If a record already exists at the path.
        """
        with path.open("x", encoding="utf-8") as f:
            f.write(self.render())
        self.path = path
        return path
