"""UsageTracker — fire-and-forget dispatch of per-call accounting.

After authenticate_request has allowed a call, the handler calls
``tracker.track(api_key, endpoint)``. That captures the call time, spawns two
independent asyncio tasks and returns at once:

  1. counter increment   → UsageCounters.increment(endpoint)
  2. usage event append  → UsageRecorder.record(UsageEvent(...))

Neither task is awaited by the request, so neither can delay or fail the
response, and the response is not ordered relative to either. A client may
read a stale counter immediately after its own call.

Task references are held in ``_tasks`` until each task finishes; the event
loop keeps only weak references, so an unreferenced task could be collected
mid-flight.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Optional

from keytally.auth.keys import fingerprint
from keytally.storage.models import UsageEvent
from keytally.usage.counters import UsageCounters
from keytally.usage.recorder import UsageRecorder
from keytally.utils.logger import get_logger
from keytally.utils.ulid import generate_ulid

logger = get_logger(__name__)


class UsageTracker:
    """Spawns and keeps track of background usage-accounting tasks."""

    def __init__(self, counters: UsageCounters, recorder: UsageRecorder) -> None:
        self._counters = counters
        self._recorder = recorder
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def pending(self) -> int:
        """Number of background tasks not yet finished."""
        return len(self._tasks)

    def track(self, api_key: str, endpoint: str) -> None:
        """Schedule both accounting side effects for one allowed call.

        Must be called from a running event loop (any async handler).
        """
        event = UsageEvent(
            event_id=generate_ulid(),
            api_key=fingerprint(api_key),
            endpoint=endpoint,
            called_at=datetime.now(timezone.utc),
        )
        self._spawn(self._increment(endpoint), name=f"usage-count-{event.event_id}")
        self._spawn(self._recorder.record(event), name=f"usage-event-{event.event_id}")

    async def _increment(self, endpoint: str) -> None:
        self._counters.increment(endpoint)

    def _spawn(self, coro, name: str) -> None:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)

    def _on_done(self, task: asyncio.Task[None]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "usage_task_failed",
                task=task.get_name(),
                error=str(exc),
                error_type=type(exc).__name__,
            )

    async def drain(self, timeout: Optional[float] = None) -> int:
        """Wait for in-flight tasks, up to ``timeout`` seconds.

        Returns:
            Number of tasks still pending when the wait ended. Those are
            abandoned (accepted loss), not cancelled.
        """
        if not self._tasks:
            return 0
        _, still_pending = await asyncio.wait(set(self._tasks), timeout=timeout)
        if still_pending:
            logger.warning("usage_tasks_abandoned", count=len(still_pending))
        return len(still_pending)
