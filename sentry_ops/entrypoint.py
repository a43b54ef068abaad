# SPDX-License-Identifier: Apache-2.0.
# Copyright (c) 2024 - 2026 Waldiez and contributors.

"""Container entrypoint for the Sentry image.

Environment variables
---------------------
SENTRY_DEBUG_STRACE
    Trace the command with strace instead of starting an init system:
    ``full`` (verbose, to /tmp/strace.log), ``file`` (filtered, to
    /tmp/strace.log) or any other non-empty value (filtered, to stdout).
SENTRY_INIT_SYSTEM
    ``s6`` (default) or ``tini``. Unknown values fall back to s6.
"""

from __future__ import annotations

import logging
import os
import re
import subprocess
import sys
from pathlib import Path
from typing import Iterable, Mapping, Sequence

from ._logging import get_log_level, setup_logging

LOG = logging.getLogger(__name__)

CA_CERT_DIR = Path("/usr/local/share/ca-certificates")
CA_CERT_SUFFIXES = (".crt", ".pem", ".cer")
SENTRY_COMMANDS = Path("/sentry-commands.txt")
DEPRECATED_REQUIREMENTS = Path("/etc/sentry/requirements.txt")

STRACE_BASE = ("strace", "-fvttTyy", "-s", "256")
STRACE_LOG = "/tmp/strace.log"  # nosemgrep # nosec
STRACE_FILTER = (
    "trace=!read,write,poll,select,epoll_wait,futex,"
    "clock_gettime,gettimeofday"
)
S6_ENV = {
    "S6_KEEP_ENV": "1",
    "S6_BEHAVIOUR_IF_STAGE2_FAILS": "2",
}

_WORD = re.compile(r"^[A-Za-z0-9]+$")


def load_commands(path: Path = SENTRY_COMMANDS) -> set[str]:
    """Read the known ``sentry`` subcommands, one per line.

    Parameters
    ----------
    path : Path
        The commands file.

    Returns
    -------
    set[str]
        The commands, empty if the file does not exist.
    """
    if not path.is_file():
        return set()
    return {
        line.strip()
        for line in path.read_text(encoding="utf-8").splitlines()
        if line.strip()
    }


def normalize_args(argv: Sequence[str], commands: Iterable[str]) -> list[str]:
    """Prepend ``sentry`` to flags and to known subcommands.

    Parameters
    ----------
    argv : Sequence[str]
        The container command.
    commands : Iterable[str]
        The known subcommands.

    Returns
    -------
    list[str]
        The command to run.
    """
    args = list(argv)
    if args and args[0].startswith("-"):
        args.insert(0, "sentry")
    if args and _WORD.match(args[0]) and args[0] in set(commands):
        args.insert(0, "sentry")
    return args


def strace_options(mode: str | None) -> list[str] | None:
    """Get the strace options for a ``SENTRY_DEBUG_STRACE`` value.

    Parameters
    ----------
    mode : str | None
        The mode, unset or empty disables tracing.

    Returns
    -------
    list[str] | None
        The options, or None when tracing is disabled.
    """
    if not mode:
        return None
    if mode == "full":
        return ["-f", "-v", "-s", "1024", "-o", STRACE_LOG]
    if mode == "file":
        return ["-f", "-e", STRACE_FILTER, "-o", STRACE_LOG]
    return ["-f", "-e", STRACE_FILTER]


def build_command(
    argv: Sequence[str],
    env: Mapping[str, str],
    commands: Iterable[str] = (),
) -> tuple[list[str], dict[str, str]]:
    """Build the command and environment to exec.

    Parameters
    ----------
    argv : Sequence[str]
        The container command.
    env : Mapping[str, str]
        The current environment.
    commands : Iterable[str]
        The known ``sentry`` subcommands.

    Returns
    -------
    tuple[list[str], dict[str, str]]
        The full command and the environment for it.
    """
    args = normalize_args(argv, commands)
    child_env = dict(env)
    mode = env.get("SENTRY_DEBUG_STRACE")
    options = strace_options(mode)
    if options is not None:
        LOG.info("Strace debugging enabled (mode: %s)", mode)
        return [*STRACE_BASE, *options, *args], child_env
    init_system = env.get("SENTRY_INIT_SYSTEM") or "s6"
    if init_system == "tini":
        LOG.info("Using tini as init system")
        return ["tini", "-s", "--", *args], child_env
    if init_system != "s6":
        LOG.warning(
            "Unknown init system '%s', falling back to s6", init_system
        )
    else:
        LOG.info("Using s6-overlay as init system")
    child_env.update(S6_ENV)
    return ["/init", *args], child_env


def update_ca_certificates(cert_dir: Path = CA_CERT_DIR) -> bool:
    """Run ``update-ca-certificates`` if custom certificates exist.

    Parameters
    ----------
    cert_dir : Path
        The custom certificates directory.

    Returns
    -------
    bool
        Whether the update ran.
    """
    if not cert_dir.is_dir():
        return False
    certs = [
        path
        for path in cert_dir.rglob("*")
        if path.is_file() and path.suffix in CA_CERT_SUFFIXES
    ]
    if not certs:
        LOG.info(
            "No custom certificate files found, "
            "skipping CA certificate update"
        )
        return False
    LOG.info(
        "Found %d custom certificate file(s), updating CA certificates...",
        len(certs),
    )
    subprocess.run(  # nosemgrep # nosec
        ["update-ca-certificates"], check=True
    )
    return True


def warn_deprecated(requirements: Path = DEPRECATED_REQUIREMENTS) -> None:
    """Warn about the no longer supported requirements file."""
    if requirements.exists():
        LOG.warning(
            "sentry/requirements.txt is deprecated, use "
            "sentry/enhance-image.sh - see "
            "https://develop.sentry.dev/self-hosted/#enhance-sentry-image"
        )


def main() -> None:
    """Prepare the container and exec the command."""
    setup_logging(get_log_level([]))
    update_ca_certificates()
    warn_deprecated()
    cmd, env = build_command(sys.argv[1:], os.environ, load_commands())
    LOG.info("Starting process: %s", " ".join(cmd))
    os.execvpe(cmd[0], cmd, env)  # nosemgrep # nosec


if __name__ == "__main__":
    main()
