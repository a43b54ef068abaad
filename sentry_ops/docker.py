# SPDX-License-Identifier: Apache-2.0.
# Copyright (c) 2024 - 2026 Waldiez and contributors.

"""Container runtime related functions."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Sequence

from .errors import CommandFailed, RuntimeUnavailable
from .models import Consumer
from .runner import CommandResult, CommandRunner

LOG = logging.getLogger(__name__)


@dataclass
class Mount:
    """A ``-v`` mount for a helper container."""

    source: str
    target: str
    read_only: bool = False

    def arg(self) -> str:
        """Get the ``source:target[:ro]`` argument."""
        suffix = ":ro" if self.read_only else ""
        return f"{self.source}:{self.target}{suffix}"


class ContainerRuntime:
    """Volume and container operations through the docker CLI.

    Parameters
    ----------
    runner : CommandRunner
        The subprocess runner.
    docker : str
        The docker binary.
    """

    def __init__(self, runner: CommandRunner, docker: str = "docker") -> None:
        self.runner = runner
        self.docker = docker

    def ensure_available(self) -> str:
        """Check that the engine is reachable.

        Returns
        -------
        str
            The client version string (``docker --version``).

        Raises
        ------
        RuntimeUnavailable
            If the binary is missing or the daemon does not answer.
        """
        try:
            self.runner.run(
                [self.docker, "version", "--format", "{{.Server.Version}}"]
            )
        except CommandFailed as error:
            raise RuntimeUnavailable(
                "Docker is not reachable (is the daemon running?)",
                [error.message],
            ) from error
        return self.version()

    def version(self) -> str:
        """Get ``docker --version`` output, or "Unknown"."""
        result = self.runner.run([self.docker, "--version"], check=False)
        return result.stdout.strip() or "Unknown"

    def volume_exists(self, name: str) -> bool:
        """Check if a volume exists.

        Parameters
        ----------
        name : str
            The volume name.

        Returns
        -------
        bool
            True if ``docker volume inspect`` succeeds.
        """
        result = self.runner.run(
            [self.docker, "volume", "inspect", name], check=False
        )
        return result.ok

    def list_volumes(self) -> list[str]:
        """Get the names of all volumes."""
        result = self.runner.run(
            [self.docker, "volume", "ls", "--format", "{{.Name}}"]
        )
        return result.lines()

    def volume_mountpoint(self, name: str) -> str:
        """Get a volume's mountpoint, or "Unknown"."""
        result = self.runner.run(
            [
                self.docker,
                "volume",
                "inspect",
                name,
                "--format",
                "{{ .Mountpoint }}",
            ],
            check=False,
        )
        mountpoint = result.stdout.strip() if result.ok else ""
        return mountpoint or "Unknown"

    def volume_size(self, name: str) -> str:
        """Get a volume's size from ``docker system df -v``, or "Unknown".

        Parameters
        ----------
        name : str
            The volume name.

        Returns
        -------
        str
            The size as reported by docker (e.g. ``1.2GB``).
        """
        result = self.runner.run(
            [self.docker, "system", "df", "-v"], check=False
        )
        if not result.ok:
            return "Unknown"
        in_volumes = False
        for line in result.stdout.splitlines():
            if "usage:" in line:
                # section header, e.g. "Local Volumes space usage:"
                in_volumes = line.startswith("Local Volumes")
                continue
            parts = line.split()
            # VOLUME NAME   LINKS   SIZE
            if in_volumes and len(parts) >= 3 and parts[0] == name:
                return parts[2]
        return "Unknown"

    def consumers(self, volume: str) -> list[Consumer]:
        """Get the running containers that use a volume.

        Parameters
        ----------
        volume : str
            The volume name.

        Returns
        -------
        list[Consumer]
            The containers, with their status.
        """
        result = self.runner.run(
            [
                self.docker,
                "ps",
                "--filter",
                f"volume={volume}",
                "--format",
                "{{.Names}}\t{{.Status}}",
            ],
            check=False,
        )
        if not result.ok:
            return []
        consumers: list[Consumer] = []
        for line in result.lines():
            name, _, status = line.partition("\t")
            consumers.append(
                Consumer(name=name.strip(), status=status.strip() or "Unknown")
            )
        return consumers

    def stop_containers(self, names: Sequence[str]) -> None:
        """Stop containers.

        Parameters
        ----------
        names : Sequence[str]
            The container names.
        """
        if names:
            self.runner.run([self.docker, "stop", *names])

    def remove_volume(self, name: str) -> None:
        """Remove a volume."""
        self.runner.run([self.docker, "volume", "rm", name])

    def create_volume(self, name: str) -> None:
        """Create a volume."""
        self.runner.run([self.docker, "volume", "create", name])

    def run_helper(
        self,
        image: str,
        mounts: Sequence[Mount],
        script: str,
        name: str | None = None,
    ) -> CommandResult:
        """Run a shell script in a disposable helper container.

        Parameters
        ----------
        image : str
            The helper image.
        mounts : Sequence[Mount]
            Volumes and host directories to mount.
        script : str
            The ``sh -c`` script.
        name : str | None
            Optional container name.

        Returns
        -------
        CommandResult
            The result of ``docker run``.
        """
        cmd = self.helper_command(image, mounts, script, name)
        return self.runner.run(cmd)

    def helper_command(
        self,
        image: str,
        mounts: Sequence[Mount],
        script: str,
        name: str | None = None,
    ) -> list[str]:
        """Build the ``docker run --rm`` command for a helper container."""
        cmd = [self.docker, "run", "--rm"]
        for mount in mounts:
            cmd += ["-v", mount.arg()]
        if name:
            cmd += ["--name", name]
        cmd += [image, "sh", "-c", script]
        return cmd


class ComposeProject:
    """Service operations through ``docker compose``.

    Parameters
    ----------
    runner : CommandRunner
        The subprocess runner.
    project_dir : Path
        The directory holding the compose file.
    docker : str
        The docker binary.
    """

    def __init__(
        self, runner: CommandRunner, project_dir: Path, docker: str = "docker"
    ) -> None:
        self.runner = runner
        self.project_dir = project_dir
        self.docker = docker

    def _compose(self, *args: str) -> list[str]:
        return [self.docker, "compose", *args]

    def services(self) -> list[str]:
        """Get the service names from ``docker compose config --services``.

        Raises
        ------
        RuntimeUnavailable
            If the compose configuration cannot be read.
        """
        try:
            result = self.runner.run(
                self._compose("config", "--services"), cwd=self.project_dir
            )
        except CommandFailed as error:
            raise RuntimeUnavailable(
                f"Cannot read the compose configuration in {self.project_dir}",
                [error.message],
            ) from error
        return result.lines()

    def running_services(self) -> list[str]:
        """Get the services that are currently running."""
        result = self.runner.run(
            self._compose("ps", "--status", "running", "--services"),
            cwd=self.project_dir,
            check=False,
        )
        return result.lines() if result.ok else []

    def is_running(self, service: str) -> bool:
        """Check if a service is running."""
        return service in self.running_services()

    # pylint: disable=too-many-arguments
    def exec(
        self,
        service: str,
        args: Sequence[str],
        *,
        env: Mapping[str, str] | None = None,
        check: bool = True,
        capture: bool = True,
        stdin_path: Path | None = None,
    ) -> CommandResult:
        """Execute a command inside a service's container.

        Parameters
        ----------
        service : str
            The service name.
        args : Sequence[str]
            The command and its arguments.
        env : Mapping[str, str] | None
            Environment variables to pass (``-e``).
        check : bool
            Raise on failure.
        capture : bool
            Capture output instead of streaming it.
        stdin_path : Path | None
            A host file to feed on stdin.

        Returns
        -------
        CommandResult
            The result.
        """
        cmd = self._compose("exec", "-T")
        if env:
            for k, v in env.items():
                cmd += ["-e", f"{k}={v}"]
        cmd += [service, *args]
        return self.runner.run(
            cmd,
            check=check,
            capture=capture,
            stdin_path=stdin_path,
            cwd=self.project_dir,
        )

    def copy_from(self, service: str, src_path: str, dst: Path) -> None:
        """Copy a path from a service's container to the host."""
        self.runner.run(
            self._compose("cp", f"{service}:{src_path}", str(dst)),
            cwd=self.project_dir,
        )

    def copy_to(self, service: str, src: Path, dst_path: str) -> None:
        """Copy a host file into a service's container."""
        self.runner.run(
            self._compose("cp", str(src), f"{service}:{dst_path}"),
            cwd=self.project_dir,
        )

    def down(self) -> None:
        """Stop and remove all the project's containers."""
        self.runner.run(self._compose("down"), cwd=self.project_dir)

    def up(self, *services: str) -> None:
        """Start services in the background."""
        self.runner.run(
            self._compose("up", "-d", *services), cwd=self.project_dir
        )
