# SPDX-License-Identifier: Apache-2.0.
# Copyright (c) 2024 - 2026 Waldiez and contributors.

"""Common configuration constants and functions."""

import os
from pathlib import Path

from dotenv import load_dotenv

ENV_PREFIX = "SENTRY_OPS_"
DOT_ENV_NAME = ".env"

DEFAULT_BACKUP_DIR = "volume_backups"
DEFAULT_EXPORT_DIR = "db_backup"
DEFAULT_HELPER_IMAGE = "alpine:latest"
DEFAULT_DB_USER = "postgres"
DEFAULT_DB_NAME = "postgres"
DEFAULT_POSTGRES_VOLUME = "sentry-postgres"
DEFAULT_WEB_SERVICE = "web"
DEFAULT_EXPORT_PREFIX = "sentry_db_export"
DEFAULT_READINESS_ATTEMPTS = 30
DEFAULT_READINESS_INTERVAL = 2.0


def get_project_dir() -> Path:
    """Get the compose project directory.

    ``SENTRY_OPS_PROJECT_DIR`` wins, otherwise the current directory.

    Returns
    -------
    Path
        The resolved project directory.
    """
    from_env = os.environ.get(f"{ENV_PREFIX}PROJECT_DIR", "").strip()
    if from_env:
        return Path(from_env).expanduser().resolve()
    return Path.cwd().resolve()


def load_dot_env(project_dir: Path) -> bool:
    """Load ``.env`` from the project directory if it exists.

    Already exported variables are not overridden.

    Parameters
    ----------
    project_dir : Path
        The directory to look in.

    Returns
    -------
    bool
        Whether a file was loaded.
    """
    dot_env = project_dir / DOT_ENV_NAME
    if not dot_env.is_file():
        return False
    return load_dotenv(dot_env, override=False)
