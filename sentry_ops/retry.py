# SPDX-License-Identifier: Apache-2.0.
# Copyright (c) 2024 - 2026 Waldiez and contributors.

"""Bounded polling with a fixed delay."""

import logging
import time
from typing import Callable

from .errors import InvalidParameter, NotReady

LOG = logging.getLogger(__name__)


def poll_until(
    check: Callable[[], bool],
    *,
    attempts: int,
    interval: float,
    sleep: Callable[[float], None] = time.sleep,
    on_wait: Callable[[int, int], None] | None = None,
    what: str = "target",
) -> int:
    """Call a check until it reports ready or the attempts run out.

    Parameters
    ----------
    check : Callable[[], bool]
        Returns True when the target is ready.
    attempts : int
        The maximum number of check calls.
    interval : float
        Seconds to sleep between two check calls.
    sleep : Callable[[float], None]
        The sleep function (a fake one in tests).
    on_wait : Callable[[int, int], None] | None
        Called with (attempt, attempts) after each failed check.
    what : str
        A description of the target for the error message.

    Returns
    -------
    int
        The 1-based attempt on which the check succeeded.

    Raises
    ------
    InvalidParameter
        If attempts is less than one or interval is negative.
    NotReady
        If the check never succeeded.
    """
    if attempts < 1:
        raise InvalidParameter(f"attempts must be at least 1, got {attempts}")
    if interval < 0:
        raise InvalidParameter(f"interval must not be negative: {interval}")
    for attempt in range(1, attempts + 1):
        if check():
            LOG.debug("%s ready on attempt %d/%d", what, attempt, attempts)
            return attempt
        if on_wait is not None:
            on_wait(attempt, attempts)
        if attempt < attempts:
            sleep(interval)
    raise NotReady(
        f"{what} not ready after {attempts} attempts "
        f"({attempts * interval:g} seconds)",
        attempts=attempts,
    )
