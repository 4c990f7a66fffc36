"""Usage statistics endpoints.

  GET  /usage-statistics        — current counts, reset to zero by the read
  POST /reset-usage-statistics  — zero the counts, 204 No Content

Counts come from the in-memory UsageCounters on ``app.state.usage_counters``.
"""

from __future__ import annotations

from fastapi import APIRouter, Request, Response

from keytally.usage.counters import UsageCounters
from keytally.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["usage"])


@router.get("/usage-statistics")
async def usage_statistics(request: Request) -> dict[str, int]:
    """Return ``{endpoint: count}`` and reset every counter in the same step."""
    counters: UsageCounters = request.app.state.usage_counters
    snapshot = counters.snapshot_and_reset()
    logger.info("usage_statistics_read", total=sum(snapshot.values()))
    return snapshot


@router.post("/reset-usage-statistics", status_code=204)
async def reset_usage_statistics(request: Request) -> Response:
    counters: UsageCounters = request.app.state.usage_counters
    counters.reset()
    logger.info("usage_statistics_reset")
    return Response(status_code=204)
