# SPDX-License-Identifier: Apache-2.0.
# Copyright (c) 2024 - 2026 Waldiez and contributors.

"""Operator confirmation before destructive steps."""

from __future__ import annotations

import logging
from typing import Callable, Iterable, Protocol

import typer

LOG = logging.getLogger(__name__)

AFFIRMATIVE = ("y", "Y")


def is_affirmative(answer: str) -> bool:
    """Check an answer against the affirmative keys.

    Parameters
    ----------
    answer : str
        The raw answer (a single keystroke).

    Returns
    -------
    bool
        True only for ``y``/``Y``; anything else denies.
    """
    return answer in AFFIRMATIVE


class Confirmer(Protocol):
    """Ask the operator to confirm a step."""

    def confirm(self, prompt: str) -> bool:
        """Block until the operator answers; default deny."""
        ...  # pylint: disable=unnecessary-ellipsis


class TerminalConfirmer:
    """Read a single keystroke from the terminal."""

    def __init__(self, getchar: Callable[[], str] | None = None) -> None:
        self._getchar = getchar or typer.getchar

    def confirm(self, prompt: str) -> bool:
        """Ask and read one key.

        Parameters
        ----------
        prompt : str
            The question to show.

        Returns
        -------
        bool
            Whether the operator pressed ``y``/``Y``.
        """
        typer.echo(f"{prompt} [y/N] ", nl=False)
        try:
            answer = self._getchar()
        except EOFError:
            answer = ""
        typer.echo(answer if answer.isprintable() else "")
        accepted = is_affirmative(answer)
        LOG.debug("Confirmation %r -> %s", prompt, accepted)
        return accepted


class ScriptedConfirmer:
    """Replay scripted answers (for tests and non-interactive use).

    Once the script is exhausted every further prompt is denied.
    """

    def __init__(self, answers: Iterable[str | bool] = ()) -> None:
        self._answers = list(answers)
        self.prompts: list[str] = []

    def confirm(self, prompt: str) -> bool:
        """Pop the next scripted answer.

        Parameters
        ----------
        prompt : str
            The question (recorded in ``prompts``).

        Returns
        -------
        bool
            The scripted decision.
        """
        self.prompts.append(prompt)
        if not self._answers:
            return False
        answer = self._answers.pop(0)
        if isinstance(answer, bool):
            return answer
        return is_affirmative(answer)
