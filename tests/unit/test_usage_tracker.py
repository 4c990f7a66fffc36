"""Unit tests for keytally/usage/tracker.py — UsageTracker.

Verifies fire-and-forget dispatch: track() returns before either side effect
has run, both side effects land after drain(), and failures in one never
affect the other.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import pytest

from keytally.auth.keys import fingerprint
from keytally.storage.memory_backend import MemoryStorageBackend
from keytally.storage.models import UsageEventFilters
from keytally.usage.counters import UsageCounters
from keytally.usage.recorder import UsageRecorder
from keytally.usage.tracker import UsageTracker

pytestmark = pytest.mark.asyncio

ENDPOINT = "change_sign"
KEY = "kt_tracker-test-key"


@pytest.fixture
def counters() -> UsageCounters:
    return UsageCounters([ENDPOINT])


@pytest.fixture
def recorder(memory_storage: MemoryStorageBackend) -> UsageRecorder:
    return UsageRecorder(memory_storage)


@pytest.fixture
def tracker(counters: UsageCounters, recorder: UsageRecorder) -> UsageTracker:
    return UsageTracker(counters, recorder)


async def test_track_does_not_run_side_effects_inline(tracker, counters) -> None:
    tracker.track(KEY, ENDPOINT)
    # Nothing has yielded to the loop yet.
    assert counters.snapshot() == {ENDPOINT: 0}
    assert tracker.pending == 2
    assert await tracker.drain(timeout=5) == 0
    assert tracker.pending == 0


async def test_side_effects_after_drain(tracker, counters, memory_storage) -> None:
    before = datetime.now(timezone.utc)
    for _ in range(3):
        tracker.track(KEY, ENDPOINT)
    await tracker.drain(timeout=5)
    after = datetime.now(timezone.utc)

    assert counters.snapshot_and_reset() == {ENDPOINT: 3}
    events = await memory_storage.query_usage_events(UsageEventFilters())
    assert len(events) == 3
    assert len({e.event_id for e in events}) == 3
    for event in events:
        assert event.endpoint == ENDPOINT
        assert event.api_key == fingerprint(KEY)
        assert event.api_key != KEY
        assert before <= event.called_at <= after


async def test_recorder_failure_still_counts(tracker, counters, recorder, memory_storage) -> None:
    memory_storage.fail = True
    tracker.track(KEY, ENDPOINT)
    await tracker.drain(timeout=5)
    assert counters.snapshot() == {ENDPOINT: 1}
    assert recorder.failures == 1


async def test_drain_with_nothing_pending(tracker) -> None:
    assert await tracker.drain(timeout=0.1) == 0


async def test_drain_timeout_abandons_slow_tasks(counters) -> None:
    release = asyncio.Event()

    class SlowRecorder:
        async def record(self, event) -> None:
            await release.wait()

    tracker = UsageTracker(counters, SlowRecorder())  # type: ignore[arg-type]
    tracker.track(KEY, ENDPOINT)
    assert await tracker.drain(timeout=0.05) == 1
    release.set()
    assert await tracker.drain(timeout=5) == 0


async def test_failed_task_is_discarded(counters) -> None:
    class BrokenRecorder:
        async def record(self, event) -> None:
            raise RuntimeError("boom")

    tracker = UsageTracker(counters, BrokenRecorder())  # type: ignore[arg-type]
    tracker.track(KEY, ENDPOINT)
    await tracker.drain(timeout=5)
    # drain() returns before done-callbacks run; give them one loop turn.
    await asyncio.sleep(0)
    assert tracker.pending == 0
    assert counters.snapshot() == {ENDPOINT: 1}
