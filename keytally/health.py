"""Health endpoint for keytally.

  GET /health — 503 before ready, 200 with storage and usage status after

Polled by container/cloud health probes. Reading it never resets usage
counters (it uses the non-destructive UsageCounters.snapshot()).
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException, Request

from keytally.storage.protocol import StorageBackend
from keytally.usage.counters import UsageCounters
from keytally.usage.recorder import UsageRecorder
from keytally.usage.tracker import UsageTracker

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(request: Request) -> dict[str, Any]:
    """Primary health check endpoint.

    Response body (200):
        {
          "status": "ok" | "degraded",
          "storage": "healthy" | "error",
          "storage_backend": "sqlite" | "memory",
          "pending_usage_tasks": 0,
          "usage_write_failures": 0,
          "usage_counts": {"change_sign": 0}
        }

    Response body (503):
        {"status": "starting", "message": "keytally is starting up"}
    """
    if not getattr(request.app.state, "ready", False):
        raise HTTPException(
            status_code=503,
            detail={
                "status": "starting",
                "message": "keytally is starting up",
            },
        )

    storage: StorageBackend = request.app.state.storage
    counters: UsageCounters = request.app.state.usage_counters
    recorder: UsageRecorder = request.app.state.usage_recorder
    tracker: UsageTracker = request.app.state.usage_tracker

    storage_ok = await storage.health_check()

    return {
        "status": "ok" if storage_ok else "degraded",
        "storage": "healthy" if storage_ok else "error",
        "storage_backend": storage.name,
        "pending_usage_tasks": tracker.pending,
        "usage_write_failures": recorder.failures,
        "usage_counts": counters.snapshot(),
    }
