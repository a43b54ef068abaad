# SPDX-License-Identifier: Apache-2.0.
# Copyright (c) 2024 - 2026 Waldiez and contributors.

"""Compression tool and parameter selection."""

import os
from dataclasses import dataclass

from .errors import InvalidParameter

MIN_LEVEL = 1
MAX_LEVEL = 9
DEFAULT_LEVEL = 3
FALLBACK_THREADS = 4


def detect_threads() -> int:
    """Get the number of CPUs, or a fallback if it cannot be determined.

    Returns
    -------
    int
        The thread count to use by default.
    """
    return os.cpu_count() or FALLBACK_THREADS


@dataclass(frozen=True)
class CompressionPlan:
    """How a volume archive is compressed and how to decode it."""

    level: int
    threads: int
    method: str = "zstd"
    extension: str = "tar.zst"
    package: str = "zstd"

    def compress_command(self) -> list[str]:
        """Get the compressor invocation (reads stdin, writes stdout)."""
        return [self.method, f"-{self.level}", f"-T{self.threads}"]

    def decompress_command(self) -> list[str]:
        """Get the companion decoder, independent of the level used."""
        return [self.method, "-d", "-c"]

    def describe(self) -> str:
        """Get a one-line summary for logs."""
        return f"{self.method} (level {self.level}, {self.threads} threads)"


def select_plan(
    level: int = DEFAULT_LEVEL, threads: int | None = None
) -> CompressionPlan:
    """Select the compression plan for a backup.

    Parameters
    ----------
    level : int
        The zstd compression level (1-9).
    threads : int | None
        The number of compression threads, defaults to the CPU count.

    Returns
    -------
    CompressionPlan
        The plan.

    Raises
    ------
    InvalidParameter
        If the level or thread count is out of range.
    """
    if not MIN_LEVEL <= level <= MAX_LEVEL:
        raise InvalidParameter(
            f"Compression level must be between {MIN_LEVEL} and "
            f"{MAX_LEVEL}, got {level}"
        )
    if threads is None:
        threads = detect_threads()
    if threads < 1:
        raise InvalidParameter(f"Threads must be greater than 0, got {threads}")
    return CompressionPlan(level=level, threads=threads)
