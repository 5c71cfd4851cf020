"""Monotonic time, delays and random numbers used by the bus strategies."""

from __future__ import annotations

import random
import time

_UINT32_MAX = 0xFFFFFFFF
_POLL_INTERVAL_S = 50e-6


class _Epoch:
    """Reference points from which elapsed time is measured."""

    def __init__(self) -> None:
        now = time.perf_counter_ns()
        self.micros_start = now
        self.millis_start = now


_epoch = _Epoch()
_rng = random.Random()


def micros() -> int:
    """Return microseconds elapsed since start, restarting at zero before 32-bit overflow."""
    elapsed = (time.perf_counter_ns() - _epoch.micros_start) // 1000
    if elapsed >= _UINT32_MAX:
        _epoch.micros_start = time.perf_counter_ns()
        return 0
    return elapsed


def millis() -> int:
    """Return milliseconds elapsed since start."""
    return (time.perf_counter_ns() - _epoch.millis_start) // 1_000_000


def delay(milliseconds: int) -> None:
    """Sleep for the given number of milliseconds."""
    if milliseconds > 0:
        time.sleep(milliseconds / 1000)


def delay_microseconds(microseconds: int) -> None:
    """Wait at least the given number of microseconds, polling in short sleeps."""
    begin = time.perf_counter_ns()
    while (time.perf_counter_ns() - begin) // 1000 < microseconds:
        time.sleep(_POLL_INTERVAL_S)


def random_below(limit: int) -> int:
    """Return a random integer between 0 and ``limit`` inclusive."""
    if limit < 0:
        raise ValueError(f"random limit must not be negative, got {limit}")
    return _rng.randint(0, int(limit))


def seed_random(seed: int) -> None:
    """Seed the generator behind :func:`random_below`."""
    _rng.seed(seed)