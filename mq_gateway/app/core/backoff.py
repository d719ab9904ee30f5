"""Backoff utilities.

`exponential_backoff` yields the current delay for the caller to attempt an operation,
then waits for that delay before the next attempt. The wait is done on a
threading.Event so that a shutdown request interrupts it; once the event is set the
generator stops yielding.
"""
from __future__ import annotations

import threading
from typing import Iterator


def interruptible_sleep(seconds: float, stop: threading.Event | None = None) -> bool:
    """Block for `seconds`. Returns False if `stop` was set before the time elapsed."""
    if stop is None:
        stop = threading.Event()
    return not stop.wait(max(seconds, 0.0))


def exponential_backoff(
    initial_delay: float,
    max_delay: float,
    multiplier: float,
    max_attempts: int,
    *,
    stop: threading.Event | None = None,
) -> Iterator[float]:
    delay = initial_delay
    for attempt in range(1, max_attempts + 1):
        if stop is not None and stop.is_set():
            return
        yield delay
        if attempt < max_attempts:
            delay = min(delay * multiplier, max_delay)
            if not interruptible_sleep(delay, stop):
                return
