# SPDX-License-Identifier: Apache-2.0.
# Copyright (c) 2024 - 2026 Waldiez and contributors.

"""Validate backup targets before any operation touches them.

Resolution is read-only. For a volume it checks that the engine is
reachable and that the volume exists, then gathers its mountpoint, size
and consumers. For a database it checks the engine, that the service is
part of the compose project, that it is running, and that PostgreSQL
accepts connections (bounded polling).
"""

from __future__ import annotations

import logging
import time
from typing import Callable

from .config import Settings
from .docker import ComposeProject, ContainerRuntime
from .errors import NotReady, TargetNotFound
from .models import DatabaseTarget, VolumeTarget
from .retry import poll_until

LOG = logging.getLogger(__name__)


class TargetResolver:
    """Resolve volume and database identifiers into targets.

    Parameters
    ----------
    runtime : ContainerRuntime
        The container runtime adapter.
    compose : ComposeProject
        The compose project adapter.
    settings : Settings
        The effective settings.
    sleep : Callable[[float], None]
        The sleep used between readiness checks.
    """

    def __init__(
        self,
        runtime: ContainerRuntime,
        compose: ComposeProject,
        settings: Settings,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.runtime = runtime
        self.compose = compose
        self.settings = settings
        self._sleep = sleep

    def resolve_volume(self, name: str) -> VolumeTarget:
        """Resolve a docker volume.

        Parameters
        ----------
        name : str
            The volume name.

        Returns
        -------
        VolumeTarget
            The volume with its metadata and current consumers.

        Raises
        ------
        TargetNotFound
            If the volume does not exist (lists every existing volume).
        """
        self.runtime.ensure_available()
        if not self.runtime.volume_exists(name):
            raise TargetNotFound("volume", name, self.runtime.list_volumes())
        return VolumeTarget(
            name=name,
            mountpoint=self.runtime.volume_mountpoint(name),
            size=self.runtime.volume_size(name),
            consumers=tuple(self.runtime.consumers(name)),
        )

    def require_service(self, service: str) -> None:
        """Check that a service is part of the compose project.

        Parameters
        ----------
        service : str
            The service name.

        Raises
        ------
        TargetNotFound
            If the service is not configured (lists every service).
        """
        self.runtime.ensure_available()
        services = self.compose.services()
        if service not in services:
            raise TargetNotFound("service", service, services)

    def database_target(self, service: str) -> DatabaseTarget:
        """Build the database descriptor for a service (no checks)."""
        return DatabaseTarget(
            service=service,
            database=self.settings.db_name,
            user=self.settings.db_user,
            password=self.settings.password,
            volume=self.settings.postgres_volume,
        )

    def resolve_database(self, service: str) -> DatabaseTarget:
        """Resolve a running, connection-ready PostgreSQL service.

        Parameters
        ----------
        service : str
            The compose service name.

        Returns
        -------
        DatabaseTarget
            The database descriptor.

        Raises
        ------
        NotReady
            If the service is not running or never accepts connections.
        """
        self.require_service(service)
        if not self.compose.is_running(service):
            raise NotReady(
                f"PostgreSQL container ({service}) is not running",
                remediation=[
                    "Please start the containers with: docker compose up -d"
                ],
            )
        target = self.database_target(service)
        self.wait_ready(target)
        return target

    def is_ready(self, target: DatabaseTarget) -> bool:
        """Run one ``pg_isready`` check inside the service."""
        result = self.compose.exec(
            target.service,
            ["pg_isready", "-U", target.user, "-d", target.database],
            env=target.env(),
            check=False,
        )
        return result.ok

    def wait_ready(self, target: DatabaseTarget) -> int:
        """Poll until PostgreSQL accepts connections.

        Parameters
        ----------
        target : DatabaseTarget
            The database to check.

        Returns
        -------
        int
            The attempt on which the database became ready.

        Raises
        ------
        NotReady
            After ``readiness_attempts`` failed checks.
        """
        LOG.info("Waiting for PostgreSQL (%s) to be ready...", target.service)

        def _on_wait(attempt: int, attempts: int) -> None:
            LOG.info("  Waiting... (%d/%d)", attempt, attempts)

        attempt = poll_until(
            lambda: self.is_ready(target),
            attempts=self.settings.readiness_attempts,
            interval=self.settings.readiness_interval,
            sleep=self._sleep,
            on_wait=_on_wait,
            what=f"PostgreSQL ({target.service})",
        )
        LOG.info("PostgreSQL is ready")
        return attempt
