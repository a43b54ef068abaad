# SPDX-License-Identifier: Apache-2.0.
# Copyright (c) 2024 - 2026 Waldiez and contributors.
# pylint: disable=missing-return-doc,missing-yield-doc,missing-param-doc
"""Shared fixtures for tests."""

import os
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable, Dict, Generator, List, Optional, Tuple
from unittest.mock import patch

import pytest

from sentry_ops.config import ENV_PREFIX, Settings
from sentry_ops.errors import CommandFailed
from sentry_ops.runner import CommandResult, CommandRunner, redact

FIXED_NOW = datetime(2024, 5, 17, 14, 30, 5)

Effect = Callable[[Tuple[str, ...]], None]


@dataclass
class Rule:
    """A programmed response for commands containing all the tokens."""

    tokens: Tuple[str, ...]
    returncode: int = 0
    stdout: str = ""
    stderr: str = ""
    effect: Optional[Effect] = None
    script: Optional[str] = None

    def matches(self, args: Tuple[str, ...]) -> bool:
        """Check the tokens and the (optional) last argument snippet."""
        if self.script is not None and (
            not args or self.script not in args[-1]
        ):
            return False
        return all(token in args for token in self.tokens)


@dataclass
class Call:
    """A recorded command with the options it was run with."""

    args: Tuple[str, ...]
    env: Optional[Dict[str, str]] = None
    stdin_path: Optional[Path] = None
    cwd: Optional[Path] = None


class FakeRunner(CommandRunner):
    """A command runner that replays programmed results.

    Rules are checked newest first, so a test can override a default
    response by registering a more specific one later. Commands with no
    matching rule succeed with empty output.
    """

    def __init__(self) -> None:
        super().__init__()
        self.rules: List[Rule] = []
        self.calls: List[Call] = []

    def on(
        self,
        *tokens: str,
        returncode: int = 0,
        stdout: str = "",
        stderr: str = "",
        effect: Optional[Effect] = None,
        script: Optional[str] = None,
    ) -> "FakeRunner":
        """Program the result of the commands containing the tokens.

        ``script`` must be part of the last argument (e.g. the ``sh -c``
        script of a helper container).
        """
        self.rules.append(
            Rule(tokens, returncode, stdout, stderr, effect, script)
        )
        return self

    # pylint: disable=too-many-arguments
    def run(  # type: ignore[override]
        self,
        cmd,
        *,
        check=True,
        capture=True,
        env=None,
        stdin_path=None,
        cwd=None,
    ) -> CommandResult:
        args = tuple(str(part) for part in cmd)
        self.history.append(args)
        self.calls.append(
            Call(args, dict(env) if env else None, stdin_path, cwd)
        )
        rule = next(
            (rule for rule in reversed(self.rules) if rule.matches(args)),
            Rule(()),
        )
        if rule.effect is not None:
            rule.effect(args)
        result = CommandResult(
            args=args,
            returncode=rule.returncode,
            stdout=rule.stdout,
            stderr=rule.stderr,
        )
        if check and not result.ok:
            raise CommandFailed(result, redact(args))
        return result

    def commands(self) -> List[str]:
        """Get the issued commands as strings."""
        return [" ".join(args) for args in self.history]

    def issued(self, *tokens: str) -> bool:
        """Check if any issued command contains all the tokens."""
        rule = Rule(tokens)
        return any(rule.matches(args) for args in self.history)


def host_dir_for(args: Tuple[str, ...], container_path: str) -> Path:
    """Get the host directory mounted at a container path."""
    for index, arg in enumerate(args):
        if arg == "-v" and index + 1 < len(args):
            source, _, rest = args[index + 1].partition(":")
            if rest.split(":")[0] == container_path:
                return Path(source)
    raise AssertionError(f"No mount for {container_path} in {args}")


def write_archive(content: bytes = b"archive") -> Effect:
    """Simulate a helper container writing the backup archive."""

    def _effect(args: Tuple[str, ...]) -> None:
        script = args[-1]
        out = script.rsplit("> ", 1)[1].strip().strip("'")
        host_dir = host_dir_for(args, "/backup")
        (host_dir / Path(out).name).write_bytes(content)

    return _effect


def copy_out(content: bytes = b"PGDMP") -> Effect:
    """Simulate ``docker compose cp service:src dst``."""

    def _effect(args: Tuple[str, ...]) -> None:
        Path(args[-1]).write_bytes(content)

    return _effect


class TickingNow:
    """A clock that moves one second forward on every call."""

    def __init__(self, start: datetime = FIXED_NOW) -> None:
        self.current = start

    def __call__(self) -> datetime:
        value = self.current
        self.current += timedelta(seconds=1)
        return value


@pytest.fixture(autouse=True)
def clean_env() -> Generator[None, None, None]:
    """Drop any SENTRY_OPS_ variable from the environment."""
    env = {k: v for k, v in os.environ.items() if not k.startswith(ENV_PREFIX)}
    with patch.dict(os.environ, env, clear=True):
        yield


@pytest.fixture(name="fake_runner")
def fake_runner_fixture() -> FakeRunner:
    """A fake runner with no programmed results."""
    return FakeRunner()


@pytest.fixture(name="settings")
def settings_fixture(tmp_path: Path) -> Settings:
    """Settings rooted in a temporary project directory."""
    return Settings(
        project_dir=tmp_path,
        readiness_attempts=3,
        readiness_interval=0,
        threads=2,
    )


@pytest.fixture(name="sleeps")
def sleeps_fixture() -> List[float]:
    """Collected sleep intervals."""
    return []


@pytest.fixture(name="fake_sleep")
def fake_sleep_fixture(sleeps: List[float]) -> Callable[[float], None]:
    """A sleep that only records the interval."""
    return sleeps.append
