"""StorageBackend Protocol — the durable storage collaborator.

The Credential Store and the Usage Event Recorder depend on this interface
only. Implementations:
    LocalSQLiteBackend  (storage/sqlite_backend.py) — default, durable
    MemoryStorageBackend (storage/memory_backend.py) — process-local

Contract shared by all implementations:
  - initialize() is idempotent and called once at process start.
  - Every failure of the underlying medium is raised as StorageError.
  - A write that returned is visible to every subsequent read.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional, Protocol, runtime_checkable

from keytally.storage.models import CredentialRecord, UsageEvent, UsageEventFilters


@runtime_checkable
class StorageBackend(Protocol):
    """Pluggable durable storage interface."""

    name: str
    """Short backend identifier reported by /health ("sqlite", "memory")."""

    async def initialize(self) -> None:
        """Create schema if absent. Idempotent."""
        ...

    async def insert_credential(self, key_hash: str, created_at: datetime) -> bool:
        """Insert an allowed credential record.

        Returns False (and writes nothing) if ``key_hash`` already exists,
        allowed or revoked.
        """
        ...

    async def revoke_credential(self, key_hash: str, revoked_at: datetime) -> bool:
        """Mark the record revoked. Returns True if an allowed row changed."""
        ...

    async def get_credential(self, key_hash: str) -> Optional[CredentialRecord]:
        """Point lookup by fingerprint. None if no record exists."""
        ...

    async def append_usage_event(self, event: UsageEvent) -> None:
        """Append one usage event. Idempotent on event_id."""
        ...

    async def query_usage_events(self, filters: UsageEventFilters) -> list[UsageEvent]:
        """Return matching events sorted by called_at DESC."""
        ...

    async def count_usage_events(self, filters: UsageEventFilters) -> int:
        """Count matching events, ignoring limit/offset."""
        ...

    async def health_check(self) -> bool:
        """True if the backend is operational. Must not raise."""
        ...

    async def close(self) -> None:
        """Release connections. Called during graceful shutdown."""
        ...
