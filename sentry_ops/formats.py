# SPDX-License-Identifier: Apache-2.0.
# Copyright (c) 2024 - 2026 Waldiez and contributors.

"""Artifact formats, naming and discovery."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Iterable

from ._common import format_size, timestamp
from .errors import UnsupportedFormat

METADATA_SUFFIX = "_metadata.txt"
IMPORT_LOG_PREFIX = "import_log"
RESTORE_LOG_PREFIX = "restore_log"


class ArtifactFormat(str, Enum):
    """Supported artifact formats, keyed by file extension."""

    DUMP = "dump"
    SQL = "sql"
    TAR_ZST = "tar.zst"
    TAR_GZ = "tar.gz"

    @property
    def suffix(self) -> str:
        """The file name suffix, including the leading dot."""
        return f".{self.value}"

    @property
    def label(self) -> str:
        """A human-readable description of the format."""
        return _LABELS[self]

    def decode_command(self) -> list[str]:
        """Get the command that turns a volume archive into a tar stream.

        Returns
        -------
        list[str]
            The decoder reading the archive from stdin.

        Raises
        ------
        UnsupportedFormat
            If the format is not a volume archive.
        """
        if self is ArtifactFormat.TAR_ZST:
            return ["zstd", "-d", "-c"]
        if self is ArtifactFormat.TAR_GZ:
            return ["gzip", "-d", "-c"]
        raise UnsupportedFormat(f"{self.label} is not a volume archive")

    @property
    def decoder_package(self) -> str | None:
        """The helper image package providing the decoder, if any."""
        return "zstd" if self is ArtifactFormat.TAR_ZST else None


_LABELS = {
    ArtifactFormat.DUMP: "Compressed dump format",
    ArtifactFormat.SQL: "SQL format",
    ArtifactFormat.TAR_ZST: "zstd volume archive",
    ArtifactFormat.TAR_GZ: "gzip volume archive",
}

VOLUME_FORMATS = (ArtifactFormat.TAR_ZST, ArtifactFormat.TAR_GZ)
DATABASE_FORMATS = (ArtifactFormat.SQL, ArtifactFormat.DUMP)


def detect_format(
    path: Path | str, allowed: Iterable[ArtifactFormat]
) -> ArtifactFormat:
    """Identify an artifact's format from its file name.

    Only the extension is inspected, never the content.

    Parameters
    ----------
    path : Path | str
        The artifact path or name.
    allowed : Iterable[ArtifactFormat]
        The formats accepted by the caller.

    Returns
    -------
    ArtifactFormat
        The detected format.

    Raises
    ------
    UnsupportedFormat
        If the extension is not one of the allowed formats.
    """
    name = Path(path).name
    allowed = tuple(allowed)
    # longest suffix first so that .tar.zst wins over a bare .zst
    for fmt in sorted(allowed, key=lambda f: len(f.value), reverse=True):
        if name.endswith(fmt.suffix) and len(name) > len(fmt.suffix):
            return fmt
    expected = ", ".join(f"*{fmt.suffix}" for fmt in allowed)
    raise UnsupportedFormat(
        f"Unsupported file format: {name}", [f"Expected: {expected}"]
    )


def strip_extension(path: Path) -> str:
    """Get the file name without its (possibly double) extension."""
    for fmt in sorted(ArtifactFormat, key=lambda f: len(f.value), reverse=True):
        if path.name.endswith(fmt.suffix):
            return path.name[: -len(fmt.suffix)]
    return path.stem


def artifact_name(prefix: str, when: datetime, fmt: ArtifactFormat) -> str:
    """Build ``<prefix>_<YYYYMMDD_HHMMSS>.<ext>``.

    Parameters
    ----------
    prefix : str
        The name prefix.
    when : datetime
        The creation time.
    fmt : ArtifactFormat
        The artifact format.

    Returns
    -------
    str
        The file name.
    """
    return f"{prefix}_{timestamp(when)}{fmt.suffix}"


def metadata_path_for(artifact: Path) -> Path:
    """Get the metadata sidecar path for an artifact.

    Parameters
    ----------
    artifact : Path
        The artifact path.

    Returns
    -------
    Path
        The sidecar path (extension stripped, ``_metadata.txt`` appended).
    """
    return artifact.with_name(strip_extension(artifact) + METADATA_SUFFIX)


def log_name(prefix: str, when: datetime) -> str:
    """Build the name of an operation log (e.g. ``import_log_<ts>.txt``)."""
    return f"{prefix}_{timestamp(when)}.txt"


def parse_metadata(path: Path) -> dict[str, str]:
    """Parse a ``Key: Value`` sidecar file.

    Parameters
    ----------
    path : Path
        The sidecar path.

    Returns
    -------
    dict[str, str]
        The parsed fields, empty if the file does not exist.
    """
    if not path.is_file():
        return {}
    data: dict[str, str] = {}
    for line in path.read_text(encoding="utf-8").splitlines():
        key, sep, value = line.partition(":")
        if sep and key.strip() and key.strip() not in data:
            data[key.strip()] = value.strip()
    return data


@dataclass(frozen=True)
class ArtifactListing:
    """An artifact found on disk."""

    path: Path
    fmt: ArtifactFormat
    size_bytes: int
    modified: datetime
    metadata: dict[str, str] = field(default_factory=dict)

    def describe(self) -> list[str]:
        """Get the listing lines for this artifact."""
        extra = "" if self.metadata else ", no metadata"
        lines = [
            f"{self.path.name} ({self.fmt.label}{extra}, "
            f"{format_size(self.size_bytes)}, "
            f"{self.modified:%Y-%m-%d %H:%M})"
        ]
        for key in (
            "Export Timestamp",
            "Backup Timestamp",
            "Original Database Size",
            "Original Volume Size",
        ):
            if key in self.metadata:
                lines.append(f"  {key}: {self.metadata[key]}")
        return lines


def list_artifacts(
    directory: Path, formats: Iterable[ArtifactFormat]
) -> dict[ArtifactFormat, list[ArtifactListing]]:
    """List the artifacts in a directory, grouped by format.

    Parameters
    ----------
    directory : Path
        The directory to scan.
    formats : Iterable[ArtifactFormat]
        The formats to look for.

    Returns
    -------
    dict[ArtifactFormat, list[ArtifactListing]]
        Non-empty groups only, each sorted by name.
    """
    groups: dict[ArtifactFormat, list[ArtifactListing]] = {}
    if not directory.is_dir():
        return groups
    formats = tuple(formats)
    for path in sorted(directory.iterdir()):
        if not path.is_file():
            continue
        try:
            fmt = detect_format(path, formats)
        except UnsupportedFormat:
            continue
        stat = path.stat()
        groups.setdefault(fmt, []).append(
            ArtifactListing(
                path=path,
                fmt=fmt,
                size_bytes=stat.st_size,
                modified=datetime.fromtimestamp(stat.st_mtime),
                metadata=parse_metadata(metadata_path_for(path)),
            )
        )
    return groups


def describe_listing(
    directory: Path, groups: dict[ArtifactFormat, list[ArtifactListing]]
) -> list[str]:
    """Render grouped listings as remediation lines.

    Parameters
    ----------
    directory : Path
        The scanned directory.
    groups : dict[ArtifactFormat, list[ArtifactListing]]
        The result of :func:`list_artifacts`.

    Returns
    -------
    list[str]
        The lines to show to the operator.
    """
    if not directory.is_dir():
        return [f"Directory {directory} does not exist"]
    if not groups:
        return [f"No artifacts found in {directory}"]
    lines = [f"Available artifacts in {directory}:"]
    for fmt, listings in groups.items():
        lines.append(f"[{fmt.label}]")
        for listing in listings:
            lines += [f"  {line}" for line in listing.describe()]
    return lines
