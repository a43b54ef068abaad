# SPDX-License-Identifier: Apache-2.0.
# Copyright (c) 2024 - 2026 Waldiez and contributors.

"""Backup and restore related utils."""

import hashlib
from datetime import datetime
from pathlib import Path
from typing import Callable

TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"


def local_now() -> datetime:
    """Get the current local datetime.

    Returns
    -------
    datetime
        The current datetime in the local timezone.
    """
    return datetime.now().astimezone()


def timestamp(when: datetime) -> str:
    """Format a datetime the way artifact names embed it.

    Parameters
    ----------
    when : datetime
        The datetime to format.

    Returns
    -------
    str
        The ``YYYYMMDD_HHMMSS`` string.
    """
    return when.strftime(TIMESTAMP_FORMAT)


def format_size(num_bytes: float) -> str:
    """Format bytes into a human-readable string.

    Parameters
    ----------
    num_bytes : float
        The number of bytes.

    Returns
    -------
    str
        The human-readable string.
    """
    for unit in ["B", "KB", "MB", "GB", "TB"]:
        if num_bytes < 1024.0:
            return f"{num_bytes:3.1f} {unit}"
        num_bytes /= 1024.0
    return f"{num_bytes:.1f} PB"


def ensure_dir(path: Path) -> None:
    """Ensure a directory exists.

    Parameters
    ----------
    path : Path
        The directory to create if needed.
    """
    path.mkdir(parents=True, exist_ok=True)


def sha256_file(path: Path) -> str:
    """Get the sha256sum of a file.

    Parameters
    ----------
    path : Path
        The path to get the sha256sum

    Returns
    -------
    str
        The calculated sha256sum.
    """
    h = hashlib.sha256(usedforsecurity=False)
    with path.open("rb") as f:
        for chunk in iter(lambda: f.read(1024 * 1024), b""):
            h.update(chunk)
    return h.hexdigest()


def try_do(
    what: Callable[[], int],
    on_interrupt: Callable[[], None],
    on_error: Callable[[Exception], None],
) -> int:
    """Try calling a callable.

    Parameters
    ----------
    what : Callable[[], int]
        The callable to try.
    on_interrupt : Callable[[], None]
        The handler for a KeyboardInterrupt
    on_error: Callable[[Exception], None]
        The handler for other exceptions.

    Returns
    -------
    int
        The result of the operation.
    """
    try:
        return what()
    except KeyboardInterrupt:
        on_interrupt()
        return 130  # Standard exit code for SIGINT
    except Exception as e:  # pylint: disable=broad-exception-caught
        on_error(e)
        return 1
