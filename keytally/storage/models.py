"""Record types persisted by the storage layer.

CredentialRecord — one row of the allow-list, keyed by key fingerprint.
UsageEvent       — one immutable, append-only usage log entry.
Endpoint         — identifiers of the endpoints whose calls are accounted.

IMPORTANT: neither record ever carries a plaintext API key. The Credential
Store and the usage tracker fingerprint keys before building records.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from keytally.constants import DEFAULT_QUERY_LIMIT


class Endpoint(str, enum.Enum):
    """Identifiers of accounted endpoints.

    The value is the key used in usage statistics responses and in the
    ``endpoint`` column of the usage log.
    """

    CHANGE_SIGN = "change_sign"


@dataclass
class CredentialRecord:
    """Allow-list entry for one issued API key."""

    key_hash: str
    """SHA-256 hex fingerprint of the API key. PRIMARY KEY."""
    allowed: bool
    """False once revoked. Revocation is permanent."""
    created_at: datetime
    """UTC time the key was issued."""
    revoked_at: Optional[datetime] = None
    """UTC time the key was revoked; None while allowed."""


@dataclass(frozen=True)
class UsageEvent:
    """Durable record of one successful protected call.

    Frozen: once built, an event is never mutated, and once written, never
    updated or deleted by keytally.
    """

    event_id: str
    """ULID; makes appends idempotent (INSERT OR IGNORE)."""
    api_key: str
    """Fingerprint of the calling API key (never the plaintext)."""
    endpoint: str
    """Endpoint identifier, e.g. ``Endpoint.CHANGE_SIGN.value``."""
    called_at: datetime
    """Timezone-aware UTC time the call was handled."""


@dataclass
class UsageEventFilters:
    """Query filters for StorageBackend.query_usage_events() and count_usage_events().

    All fields are optional. An empty UsageEventFilters() matches every event
    (query returns the newest ``limit``).
    """

    api_key: Optional[str] = None
    """Key fingerprint to match exactly."""
    endpoint: Optional[str] = None
    since: Optional[datetime] = None
    """Include events with called_at >= since."""
    until: Optional[datetime] = None
    """Include events with called_at <= until."""
    limit: int = DEFAULT_QUERY_LIMIT
    offset: int = 0
