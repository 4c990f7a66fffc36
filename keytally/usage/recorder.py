"""Usage Event Recorder — best-effort durable usage log writer.

record() is always scheduled as a detached task by UsageTracker; the request
that triggered it never awaits it.

Delivery is at-most-once: a StorageError (or anything else) is logged and
the event is dropped. No retries, no re-raise. Usage accounting is advisory,
not billing-grade.
"""

from __future__ import annotations

from keytally.constants import FINGERPRINT_LOG_CHARS
from keytally.storage.models import UsageEvent
from keytally.storage.protocol import StorageBackend
from keytally.utils.logger import get_logger

logger = get_logger(__name__)


class UsageRecorder:
    """Append UsageEvents to a StorageBackend, swallowing failures."""

    def __init__(self, backend: StorageBackend) -> None:
        self._backend = backend
        self.failures: int = 0

    async def record(self, event: UsageEvent) -> None:
        """Append ``event``. Must NEVER raise."""
        try:
            await self._backend.append_usage_event(event)
        except Exception as exc:
            # Terminal for this event only; the response was already sent.
            self.failures += 1
            logger.error(
                "usage_event_write_failed",
                event_id=event.event_id,
                endpoint=event.endpoint,
                key_fp=event.api_key[:FINGERPRINT_LOG_CHARS],
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return

        logger.debug(
            "usage_event_recorded",
            event_id=event.event_id,
            endpoint=event.endpoint,
        )
