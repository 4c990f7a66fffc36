"""MemoryStorageBackend — process-local StorageBackend.

Used by the test suite and by ``storage.backend: memory`` for throwaway
runs. Nothing survives a restart.

Setting ``fail = True`` makes every operation raise StorageError, which lets
tests exercise the storage-outage paths without a broken SQLite file.
"""

from __future__ import annotations

import asyncio
from dataclasses import replace
from datetime import datetime
from typing import Optional

from keytally.errors import StorageError
from keytally.storage.models import CredentialRecord, UsageEvent, UsageEventFilters
from keytally.utils.logger import get_logger

logger = get_logger(__name__)


class MemoryStorageBackend:
    """Dict-backed StorageBackend. Safe for concurrent use on one event loop."""

    name = "memory"

    def __init__(self) -> None:
        self._credentials: dict[str, CredentialRecord] = {}
        self._events: dict[str, UsageEvent] = {}
        self._lock = asyncio.Lock()
        self.fail: bool = False

    def _check(self, operation: str) -> None:
        if self.fail:
            raise StorageError(f"memory backend unavailable during {operation}")

    async def initialize(self) -> None:
        self._check("initialize")
        logger.debug("memory_storage_initialized")

    async def insert_credential(self, key_hash: str, created_at: datetime) -> bool:
        async with self._lock:
            self._check("insert_credential")
            if key_hash in self._credentials:
                return False
            self._credentials[key_hash] = CredentialRecord(
                key_hash=key_hash, allowed=True, created_at=created_at
            )
            return True

    async def revoke_credential(self, key_hash: str, revoked_at: datetime) -> bool:
        async with self._lock:
            self._check("revoke_credential")
            record = self._credentials.get(key_hash)
            if record is None or not record.allowed:
                return False
            self._credentials[key_hash] = replace(
                record, allowed=False, revoked_at=revoked_at
            )
            return True

    async def get_credential(self, key_hash: str) -> Optional[CredentialRecord]:
        self._check("get_credential")
        record = self._credentials.get(key_hash)
        # Copy so callers can never mutate the stored record.
        return replace(record) if record is not None else None

    async def append_usage_event(self, event: UsageEvent) -> None:
        async with self._lock:
            self._check("append_usage_event")
            self._events.setdefault(event.event_id, event)

    def _matching(self, filters: UsageEventFilters) -> list[UsageEvent]:
        events = [
            e
            for e in self._events.values()
            if (filters.api_key is None or e.api_key == filters.api_key)
            and (filters.endpoint is None or e.endpoint == filters.endpoint)
            and (filters.since is None or e.called_at >= filters.since)
            and (filters.until is None or e.called_at <= filters.until)
        ]
        events.sort(key=lambda e: e.called_at, reverse=True)
        return events

    async def query_usage_events(self, filters: UsageEventFilters) -> list[UsageEvent]:
        self._check("query_usage_events")
        events = self._matching(filters)
        return events[filters.offset : filters.offset + filters.limit]

    async def count_usage_events(self, filters: UsageEventFilters) -> int:
        self._check("count_usage_events")
        return len(self._matching(filters))

    async def health_check(self) -> bool:
        return not self.fail

    async def close(self) -> None:
        logger.debug("memory_storage_closed")
