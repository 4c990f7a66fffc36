"""Usage Counter Aggregator — in-memory per-endpoint call counts.

Counters reset on process restart; this is advisory accounting, not an
audit trail (the durable log is keytally/usage/recorder.py).

All mutation and reads happen under one threading.Lock, held only for the
in-memory update and never across I/O. A threading lock (not asyncio.Lock)
keeps increment() synchronous so it is safe from the event loop and from
worker threads alike.
"""

from __future__ import annotations

import threading
from typing import Iterable


class UsageCounters:
    """Per-endpoint counters with atomic read-and-reset.

    Args:
        endpoints: Endpoint identifiers to pre-register at 0, so statistics
                   report them even before the first call.

    Usage::

        counters = UsageCounters(["change_sign"])
        counters.increment("change_sign")
        counters.snapshot_and_reset()   # {"change_sign": 1}
        counters.snapshot_and_reset()   # {"change_sign": 0}
    """

    def __init__(self, endpoints: Iterable[str] = ()) -> None:
        self._lock = threading.Lock()
        self._counts: dict[str, int] = {endpoint: 0 for endpoint in endpoints}

    def increment(self, endpoint: str) -> None:
        """Add one call for ``endpoint``. Never fails; Python ints do not wrap."""
        with self._lock:
            self._counts[endpoint] = self._counts.get(endpoint, 0) + 1

    def snapshot_and_reset(self) -> dict[str, int]:
        """Copy every counter and zero it, in one critical section.

        A racing increment lands wholly before the copy (and is returned) or
        wholly after the reset (and is kept for the next read).
        """
        with self._lock:
            snapshot = dict(self._counts)
            for endpoint in self._counts:
                self._counts[endpoint] = 0
        return snapshot

    def reset(self) -> None:
        """Zero every counter without returning the values."""
        with self._lock:
            for endpoint in self._counts:
                self._counts[endpoint] = 0

    def snapshot(self) -> dict[str, int]:
        """Non-destructive copy of the current counts."""
        with self._lock:
            return dict(self._counts)
