"""Epoch-aligned fire time calculation.

Fire times are multiples of the job interval counted from the Unix epoch,
not "last run + interval". Two machines with synchronized clocks therefore
agree on the base instants for a job; the jitter offset is what spreads
them apart.
"""

import time


def now_ms() -> int:
    """Current wall-clock time in milliseconds since the epoch."""
    return time.time_ns() // 1_000_000


def next_event(now: int, interval_ms: int) -> int:
    """Return the smallest epoch-aligned instant >= ``now``.

    Args:
        now: Current time in epoch milliseconds
        interval_ms: Interval in milliseconds. 0 means the job is not
            periodic and ``now`` is returned unchanged.

    Returns:
        Epoch milliseconds that are an integer multiple of ``interval_ms``

    Raises:
        ValueError: If ``interval_ms`` is negative
    """
    if interval_ms < 0:
        raise ValueError(f"Interval must not be negative: {interval_ms}")
    if interval_ms == 0:
        return now
    return -(-now // interval_ms) * interval_ms
