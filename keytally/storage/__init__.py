"""keytally storage package.

Re-exports the public API for ergonomic imports:

    from keytally.storage import StorageBackend, UsageEvent, Endpoint

Layout:
    models.py          — CredentialRecord, UsageEvent, UsageEventFilters, Endpoint
    protocol.py        — StorageBackend Protocol
    sqlite_backend.py  — LocalSQLiteBackend (aiosqlite, WAL mode, PRAGMA version guard)
    memory_backend.py  — MemoryStorageBackend (process-local, fault injection)
    factory.py         — create_storage_backend() — backend selection by config
"""

from keytally.storage.memory_backend import MemoryStorageBackend
from keytally.storage.models import (
    CredentialRecord,
    Endpoint,
    UsageEvent,
    UsageEventFilters,
)
from keytally.storage.protocol import StorageBackend

__all__ = [
    "CredentialRecord",
    "Endpoint",
    "UsageEvent",
    "UsageEventFilters",
    "StorageBackend",
    "MemoryStorageBackend",
]

assert isinstance(MemoryStorageBackend(), StorageBackend), (
    "MemoryStorageBackend does not satisfy StorageBackend protocol"
)
