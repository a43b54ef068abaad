# SPDX-License-Identifier: Apache-2.0.
# Copyright (c) 2024 - 2026 Waldiez and contributors.

# pylint: disable=missing-return-doc,missing-param-doc
"""Test sentry_ops.compression.*."""

from unittest.mock import patch

import pytest

from sentry_ops.compression import (
    DEFAULT_LEVEL,
    FALLBACK_THREADS,
    detect_threads,
    select_plan,
)
from sentry_ops.errors import InvalidParameter

MODULE_TO_PATCH = "sentry_ops.compression"


def test_default_plan() -> None:
    """Test the default level and detected threads."""
    with patch(f"{MODULE_TO_PATCH}.os.cpu_count", return_value=8):
        plan = select_plan()
    assert plan.level == DEFAULT_LEVEL
    assert plan.threads == 8
    assert plan.compress_command() == ["zstd", "-3", "-T8"]


def test_threads_fallback() -> None:
    """Test the thread count when the CPU count is unknown."""
    with patch(f"{MODULE_TO_PATCH}.os.cpu_count", return_value=None):
        assert detect_threads() == FALLBACK_THREADS


@pytest.mark.parametrize("level", [1, 5, 9])
def test_valid_levels(level: int) -> None:
    """Test the accepted levels."""
    plan = select_plan(level, 2)
    assert plan.compress_command() == ["zstd", f"-{level}", "-T2"]


@pytest.mark.parametrize("level", [0, 10, -3])
def test_invalid_levels(level: int) -> None:
    """Test that out of range levels are rejected, not clamped."""
    with pytest.raises(InvalidParameter) as exc_info:
        select_plan(level, 2)
    assert str(level) in exc_info.value.message


@pytest.mark.parametrize("threads", [0, -1])
def test_invalid_threads(threads: int) -> None:
    """Test that thread counts below one are rejected."""
    with pytest.raises(InvalidParameter):
        select_plan(3, threads)


def test_decoder_does_not_depend_on_level() -> None:
    """Test that every level shares the same decoder."""
    assert (
        select_plan(1, 1).decompress_command()
        == select_plan(9, 4).decompress_command()
        == ["zstd", "-d", "-c"]
    )


def test_describe() -> None:
    """Test the plan summary."""
    assert select_plan(9, 2).describe() == "zstd (level 9, 2 threads)"
