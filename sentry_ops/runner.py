# SPDX-License-Identifier: Apache-2.0.
# Copyright (c) 2024 - 2026 Waldiez and contributors.

"""Subprocess invocation with structured results.

All external effects (container CLI, database tools, archivers) go
through :class:`CommandRunner`. It returns a :class:`CommandResult`
instead of a bare exit code and raises typed errors:

- :class:`~sentry_ops.errors.RuntimeUnavailable` when the executable
  cannot be found,
- :class:`~sentry_ops.errors.CommandFailed` on a non-zero exit when
  ``check`` is set.
"""

from __future__ import annotations

import logging
import os
import subprocess
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Sequence

from .errors import CommandFailed, RuntimeUnavailable

LOG = logging.getLogger(__name__)

SENSITIVE_TOKENS = (
    "PGPASSWORD=",
    "POSTGRES_PASSWORD=",
)
REDACT_FOLLOWING_FLAGS = {
    "--password",
    "-W",
}
REDACTED = "***REDACTED***"


def redact(cmd: Sequence[str]) -> str:
    """Redact sensitive data in a command.

    Parameters
    ----------
    cmd : Sequence[str]
        The command to check.

    Returns
    -------
    str
        The string with sensitive data redacted.
    """
    parts = [str(part) for part in cmd]
    i = 0
    while i < len(parts):
        p = parts[i]
        for tok in SENSITIVE_TOKENS:
            if tok in p:
                parts[i] = p.split(tok, 1)[0] + tok + REDACTED
        if p in REDACT_FOLLOWING_FLAGS and i + 1 < len(parts):
            parts[i + 1] = REDACTED
            i += 2
            continue
        i += 1
    return " ".join(parts)


@dataclass(frozen=True)
class CommandResult:
    """The outcome of one external command."""

    args: tuple[str, ...]
    returncode: int
    stdout: str = ""
    stderr: str = ""
    duration: float = 0.0

    @property
    def ok(self) -> bool:
        """Whether the command exited with status zero."""
        return self.returncode == 0

    def lines(self) -> list[str]:
        """Get the non-empty, stripped lines of stdout.

        Returns
        -------
        list[str]
            The stdout lines.
        """
        return [ln.strip() for ln in self.stdout.splitlines() if ln.strip()]


@dataclass
class CommandRunner:
    """Run external commands and capture their outcome.

    Attributes
    ----------
    history : list[tuple[str, ...]]
        Every command issued through this runner, in order.
    """

    history: list[tuple[str, ...]] = field(default_factory=list)

    # pylint: disable=too-many-arguments
    def run(
        self,
        cmd: Sequence[str],
        *,
        check: bool = True,
        capture: bool = True,
        env: Mapping[str, str] | None = None,
        stdin_path: Path | None = None,
        cwd: Path | None = None,
    ) -> CommandResult:
        """Run a command.

        Parameters
        ----------
        cmd : Sequence[str]
            The command and the arguments.
        check : bool
            Raise on a non-zero exit status.
        capture : bool
            Capture stdout/stderr instead of inheriting the terminal.
        env : Mapping[str, str] | None
            Extra environment variables for the child process.
        stdin_path : Path | None
            A file to feed to the command's stdin.
        cwd : Path | None
            The cwd to use for the command.

        Returns
        -------
        CommandResult
            The structured result.

        Raises
        ------
        RuntimeUnavailable
            If the executable is not found.
        CommandFailed
            If ``check`` is set and the command fails.
        """
        args = tuple(str(part) for part in cmd)
        self.history.append(args)
        cmd_str = redact(args)
        LOG.debug("Running: %s", cmd_str)
        child_env = {**os.environ, **env} if env else None
        started = time.monotonic()
        try:
            if stdin_path is not None:
                with stdin_path.open("rb") as stdin:
                    completed = self._call(args, capture, child_env, cwd, stdin)
            else:
                completed = self._call(args, capture, child_env, cwd, None)
        except FileNotFoundError as error:
            raise RuntimeUnavailable(
                f"'{args[0]}' is not installed or not in PATH"
            ) from error
        result = CommandResult(
            args=args,
            returncode=completed.returncode,
            stdout=_decode(completed.stdout),
            stderr=_decode(completed.stderr),
            duration=time.monotonic() - started,
        )
        LOG.debug(
            "Exit code %d after %.2fs", result.returncode, result.duration
        )
        if check and not result.ok:
            raise CommandFailed(result, cmd_str)
        return result

    @staticmethod
    def _call(
        args: tuple[str, ...],
        capture: bool,
        env: Mapping[str, str] | None,
        cwd: Path | None,
        stdin: object,
    ) -> "subprocess.CompletedProcess[bytes]":
        return subprocess.run(  # nosemgrep # nosec
            args,
            stdin=stdin,  # type: ignore[arg-type]
            stdout=subprocess.PIPE if capture else None,
            stderr=subprocess.PIPE if capture else None,
            env=env,
            cwd=str(cwd) if cwd else None,
            check=False,
        )


def _decode(raw: bytes | None) -> str:
    if not raw:
        return ""
    return raw.decode(encoding="utf-8", errors="replace")
