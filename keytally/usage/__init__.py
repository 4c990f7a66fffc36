"""keytally usage accounting package.

    counters.py — UsageCounters (in-memory, lock-guarded)
    recorder.py — UsageRecorder (durable, best-effort)
    tracker.py  — UsageTracker (fire-and-forget dispatch of both)
    router.py   — /usage-statistics, /reset-usage-statistics
"""

from keytally.usage.counters import UsageCounters
from keytally.usage.recorder import UsageRecorder
from keytally.usage.tracker import UsageTracker

__all__ = ["UsageCounters", "UsageRecorder", "UsageTracker"]
