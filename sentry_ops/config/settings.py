# SPDX-License-Identifier: Apache-2.0.
# Copyright (c) 2024 - 2026 Waldiez and contributors.

"""Sentry ops settings module.

Environment variables (with prefix SENTRY_OPS_)
-----------------------------------------------
PROJECT_DIR (str) # default: current directory
BACKUP_DIR (str) # default: volume_backups (relative to PROJECT_DIR)
EXPORT_DIR (str) # default: db_backup (relative to PROJECT_DIR)
DOCKER (str) # default: docker
HELPER_IMAGE (str) # default: alpine:latest (must be Alpine based)
DB_USER (str) # default: postgres
DB_NAME (str) # default: postgres
DB_PASSWORD (str) # default: None
POSTGRES_VOLUME (str) # default: sentry-postgres
WEB_SERVICE (str) # default: web
READINESS_ATTEMPTS (int) # default: 30
READINESS_INTERVAL (float) # default: 2.0
COMPRESSION_LEVEL (int) # default: 3
THREADS (int) # default: None (CPU count)

The helper image runs the archive pipelines with busybox `sh`
(`set -o pipefail`) and installs a missing `zstd` with `apk`, so it must
be an Alpine based image. The log level (`SENTRY_OPS_LOG_LEVEL`) is read by
the command line before the settings are loaded.
"""

import logging
from pathlib import Path
from typing import Optional

from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing_extensions import Annotated, Self

from ._common import (
    DEFAULT_BACKUP_DIR,
    DEFAULT_DB_NAME,
    DEFAULT_DB_USER,
    DEFAULT_EXPORT_DIR,
    DEFAULT_EXPORT_PREFIX,
    DEFAULT_HELPER_IMAGE,
    DEFAULT_POSTGRES_VOLUME,
    DEFAULT_READINESS_ATTEMPTS,
    DEFAULT_READINESS_INTERVAL,
    DEFAULT_WEB_SERVICE,
    ENV_PREFIX,
    get_project_dir,
    load_dot_env,
)

LOG = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Settings class."""

    project_dir: Path = Field(default_factory=get_project_dir)
    backup_dir: Path = Path(DEFAULT_BACKUP_DIR)
    export_dir: Path = Path(DEFAULT_EXPORT_DIR)
    docker: str = "docker"
    helper_image: str = DEFAULT_HELPER_IMAGE
    # Database
    db_user: str = DEFAULT_DB_USER
    db_name: str = DEFAULT_DB_NAME
    db_password: Optional[SecretStr] = None
    postgres_volume: str = DEFAULT_POSTGRES_VOLUME
    web_service: str = DEFAULT_WEB_SERVICE
    export_prefix: str = DEFAULT_EXPORT_PREFIX
    # Readiness polling
    readiness_attempts: Annotated[int, Field(ge=1, le=1000)] = (
        DEFAULT_READINESS_ATTEMPTS
    )
    readiness_interval: Annotated[float, Field(ge=0, le=600)] = (
        DEFAULT_READINESS_INTERVAL
    )
    # Compression
    compression_level: Annotated[int, Field(ge=1, le=9)] = 3
    threads: Optional[Annotated[int, Field(ge=1)]] = None

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        env_ignore_empty=True,
        case_sensitive=False,
        extra="ignore",
        cli_parse_args=False,  # we use typer
    )

    @field_validator("helper_image")
    @classmethod
    def validate_helper_image(cls, value: str) -> str:
        """Warn about helper images that are not Alpine based.

        Parameters
        ----------
        value : str
            The helper image

        Returns
        -------
        str
            The image, unchanged
        """
        if "alpine" not in value.lower():
            LOG.warning(
                "Helper image %s does not look Alpine based, the archive "
                "pipelines need busybox sh and apk",
                value,
            )
        return value

    @model_validator(mode="after")
    def resolve_dirs(self) -> Self:
        """Resolve relative directories against the project directory.

        Returns
        -------
        Self
            The settings with absolute directories.
        """
        self.project_dir = self.project_dir.expanduser().resolve()
        if not self.backup_dir.is_absolute():
            self.backup_dir = self.project_dir / self.backup_dir
        if not self.export_dir.is_absolute():
            self.export_dir = self.project_dir / self.export_dir
        return self

    @classmethod
    def load(cls, project_dir: Path | None = None) -> "Settings":
        """Load the settings, reading ``.env`` from the project first.

        Parameters
        ----------
        project_dir : Path | None
            Override the project directory.

        Returns
        -------
        Settings
            The settings instance
        """
        root = project_dir.resolve() if project_dir else get_project_dir()
        if load_dot_env(root):
            LOG.debug("Loaded environment from %s", root / ".env")
        return cls(project_dir=root)

    @property
    def password(self) -> str | None:
        """The plain database password, if any."""
        if self.db_password is None:
            return None
        return self.db_password.get_secret_value() or None
