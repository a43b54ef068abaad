# SPDX-License-Identifier: Apache-2.0.
# Copyright (c) 2024 - 2026 Waldiez and contributors.

# pylint: disable=missing-return-doc,missing-param-doc
"""Test sentry_ops.confirm.*."""

import pytest

from sentry_ops.confirm import (
    ScriptedConfirmer,
    TerminalConfirmer,
    is_affirmative,
)


@pytest.mark.parametrize(
    "answer,expected",
    [
        ("y", True),
        ("Y", True),
        ("n", False),
        ("N", False),
        ("", False),
        ("\r", False),
        ("yes", False),
        (" ", False),
    ],
)
def test_is_affirmative(answer: str, expected: bool) -> None:
    """Test that only y/Y is affirmative."""
    assert is_affirmative(answer) is expected


def test_terminal_confirmer(capsys: pytest.CaptureFixture[str]) -> None:
    """Test prompting and reading one key."""
    confirmer = TerminalConfirmer(getchar=lambda: "y")
    assert confirmer.confirm("Stop these containers now?")
    out = capsys.readouterr().out
    assert "Stop these containers now? [y/N] " in out


def test_terminal_confirmer_default_deny() -> None:
    """Test that Enter denies."""
    assert not TerminalConfirmer(getchar=lambda: "\r").confirm("Continue?")


def test_terminal_confirmer_eof() -> None:
    """Test that a closed stdin denies."""

    def _eof() -> str:
        raise EOFError

    assert not TerminalConfirmer(getchar=_eof).confirm("Continue?")


def test_scripted_confirmer() -> None:
    """Test replaying answers and denying once exhausted."""
    confirmer = ScriptedConfirmer(["y", False, "n"])
    assert confirmer.confirm("one")
    assert not confirmer.confirm("two")
    assert not confirmer.confirm("three")
    assert not confirmer.confirm("four")
    assert confirmer.prompts == ["one", "two", "three", "four"]
