# SPDX-License-Identifier: Apache-2.0.
# Copyright (c) 2024 - 2026 Waldiez and contributors.

# pylint: disable=missing-return-doc,missing-param-doc
"""Test sentry_ops.resolver.*."""

from typing import Callable, List

import pytest
from conftest import FakeRunner

from sentry_ops.config import Settings
from sentry_ops.docker import ComposeProject, ContainerRuntime
from sentry_ops.errors import NotReady, RuntimeUnavailable, TargetNotFound
from sentry_ops.resolver import TargetResolver


def make_resolver(
    runner: FakeRunner,
    settings: Settings,
    sleep: Callable[[float], None],
) -> TargetResolver:
    """Build a resolver over a fake runner."""
    return TargetResolver(
        ContainerRuntime(runner),
        ComposeProject(runner, settings.project_dir),
        settings,
        sleep=sleep,
    )


def test_resolve_volume(
    fake_runner: FakeRunner,
    settings: Settings,
    fake_sleep: Callable[[float], None],
) -> None:
    """Test resolving an existing volume with its consumers."""
    fake_runner.on("ps", "volume=demo-vol", stdout="web\tUp 1 hour\n")
    target = make_resolver(fake_runner, settings, fake_sleep).resolve_volume(
        "demo-vol"
    )
    assert target.name == "demo-vol"
    assert target.in_use
    assert target.consumers[0].name == "web"
    for verb in ("rm", "stop", "create"):
        assert not fake_runner.issued(verb)


def test_resolve_missing_volume_lists_all(
    fake_runner: FakeRunner,
    settings: Settings,
    fake_sleep: Callable[[float], None],
) -> None:
    """Test that a missing volume lists every existing volume."""
    names = [f"vol-{index}" for index in range(12)]
    fake_runner.on("volume", "inspect", returncode=1)
    fake_runner.on("volume", "ls", stdout="\n".join(names) + "\n")
    with pytest.raises(TargetNotFound) as exc_info:
        make_resolver(fake_runner, settings, fake_sleep).resolve_volume(
            "nope"
        )
    error = exc_info.value
    assert error.message == "Volume 'nope' not found"
    assert error.candidates == names
    assert error.remediation == ["Available volumes:"] + [
        f"  {name}" for name in names
    ]


def test_resolve_volume_without_engine(
    fake_runner: FakeRunner,
    settings: Settings,
    fake_sleep: Callable[[float], None],
) -> None:
    """Test an unreachable engine."""
    fake_runner.on("version", returncode=1)
    with pytest.raises(RuntimeUnavailable):
        make_resolver(fake_runner, settings, fake_sleep).resolve_volume("x")


def test_resolve_database(
    fake_runner: FakeRunner,
    settings: Settings,
    sleeps: List[float],
    fake_sleep: Callable[[float], None],
) -> None:
    """Test resolving a running and ready service."""
    fake_runner.on("config", "--services", stdout="postgres\nweb\n")
    fake_runner.on("ps", "--status", stdout="postgres\n")
    target = make_resolver(fake_runner, settings, fake_sleep).resolve_database(
        "postgres"
    )
    assert target.service == "postgres"
    assert target.volume == settings.postgres_volume
    assert fake_runner.issued("pg_isready", "postgres")
    assert not sleeps


def test_resolve_unknown_service(
    fake_runner: FakeRunner,
    settings: Settings,
    fake_sleep: Callable[[float], None],
) -> None:
    """Test that an unknown service lists every service."""
    fake_runner.on("config", "--services", stdout="postgres\nweb\n")
    with pytest.raises(TargetNotFound) as exc_info:
        make_resolver(fake_runner, settings, fake_sleep).resolve_database(
            "db"
        )
    assert exc_info.value.candidates == ["postgres", "web"]


def test_resolve_stopped_service(
    fake_runner: FakeRunner,
    settings: Settings,
    fake_sleep: Callable[[float], None],
) -> None:
    """Test a configured service that is not running."""
    fake_runner.on("config", "--services", stdout="postgres\n")
    fake_runner.on("ps", "--status", stdout="")
    with pytest.raises(NotReady) as exc_info:
        make_resolver(fake_runner, settings, fake_sleep).resolve_database(
            "postgres"
        )
    assert "docker compose up -d" in exc_info.value.remediation[0]


def test_wait_ready_exhausted(
    fake_runner: FakeRunner,
    settings: Settings,
    sleeps: List[float],
    fake_sleep: Callable[[float], None],
) -> None:
    """Test a database that never accepts connections."""
    fake_runner.on("pg_isready", returncode=2)
    resolver = make_resolver(fake_runner, settings, fake_sleep)
    with pytest.raises(NotReady) as exc_info:
        resolver.wait_ready(resolver.database_target("postgres"))
    assert exc_info.value.attempts == settings.readiness_attempts
    checks = [a for a in fake_runner.history if "pg_isready" in a]
    assert len(checks) == settings.readiness_attempts
    assert len(sleeps) == settings.readiness_attempts - 1
