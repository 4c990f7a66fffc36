"""keytally Credential Store — API key issuance, revocation and checks.

Implements:
  - CredentialStore.issue()       — generate kt_<token>, persist as allowed, return
  - CredentialStore.revoke()      — mark revoked; idempotent, permanent
  - CredentialStore.is_allowed()  — exact-match check against the allow-list
  - fingerprint()                 — SHA-256 hex digest used as the storage key

Non-negotiables (enforced unconditionally):
  - Plaintext NEVER reaches storage; only fingerprint(key) does
  - >= 128 bits of randomness per key (secrets.token_urlsafe, 256 bits)
  - A key is returned only after its record is durably committed
  - NO caching of allow decisions: every is_allowed() reads storage, so a
    revoke that returned is observed by the very next check
  - StorageError propagates unchanged; it is never turned into "not allowed"
"""

from __future__ import annotations

import hashlib
import secrets
from datetime import datetime, timezone

from keytally.constants import (
    API_KEY_MAX_ATTEMPTS,
    API_KEY_PREFIX,
    API_KEY_RANDOM_BYTES,
    FINGERPRINT_LOG_CHARS,
)
from keytally.errors import GenerationError
from keytally.storage.protocol import StorageBackend
from keytally.utils.logger import get_logger

logger = get_logger(__name__)


def fingerprint(key: str) -> str:
    """Return the SHA-256 hex digest of ``key``.

    The presented string is hashed exactly as received: no trimming, no case
    folding. Two keys differing in one character have unrelated fingerprints.
    """
    return hashlib.sha256(key.encode("utf-8")).hexdigest()


def generate_api_key() -> str:
    """Produce a fresh printable API key: ``kt_`` + 43 URL-safe base64 chars.

    Raises:
        GenerationError: The OS entropy source is unavailable.
    """
    try:
        token = secrets.token_urlsafe(API_KEY_RANDOM_BYTES)
    except (OSError, NotImplementedError) as exc:
        raise GenerationError("Entropy source unavailable") from exc
    return f"{API_KEY_PREFIX}{token}"


class CredentialStore:
    """Owns the allow-list of API keys held by a StorageBackend.

    Safe for concurrent use: uniqueness comes from key entropy plus the
    storage PRIMARY KEY, and per-key ordering comes from the backend
    committing each write before returning.

    Usage:
        store = CredentialStore(backend)
        key = await store.issue()
        assert await store.is_allowed(key)
        await store.revoke(key)
        assert not await store.is_allowed(key)
    """

    def __init__(self, backend: StorageBackend) -> None:
        self._backend = backend

    async def issue(self) -> str:
        """Generate, persist and return a new allowed API key.

        On a fingerprint collision the key is regenerated, up to
        API_KEY_MAX_ATTEMPTS times.

        Returns:
            The plaintext key. This is the only time it is ever available.

        Raises:
            StorageError:    The insert could not be committed. Nothing was issued.
            GenerationError: Entropy failure or every attempt collided.
        """
        for attempt in range(1, API_KEY_MAX_ATTEMPTS + 1):
            key = generate_api_key()
            key_hash = fingerprint(key)
            created_at = datetime.now(timezone.utc)

            if await self._backend.insert_credential(key_hash, created_at):
                logger.info(
                    "api_key_issued",
                    key_fp=key_hash[:FINGERPRINT_LOG_CHARS],
                    attempt=attempt,
                )
                return key

            logger.warning(
                "api_key_collision",
                key_fp=key_hash[:FINGERPRINT_LOG_CHARS],
                attempt=attempt,
            )

        raise GenerationError(
            f"Could not generate a unique API key after {API_KEY_MAX_ATTEMPTS} attempts"
        )

    async def revoke(self, key: str) -> None:
        """Permanently revoke ``key``.

        Succeeds silently for unknown and already-revoked keys; callers cannot
        tell the cases apart.

        Raises:
            StorageError: The update could not be committed.
        """
        key_hash = fingerprint(key)
        changed = await self._backend.revoke_credential(
            key_hash, datetime.now(timezone.utc)
        )
        if changed:
            logger.info("api_key_revoked", key_fp=key_hash[:FINGERPRINT_LOG_CHARS])
        else:
            logger.debug(
                "api_key_revoke_noop", key_fp=key_hash[:FINGERPRINT_LOG_CHARS]
            )

    async def is_allowed(self, key: str) -> bool:
        """True iff a non-revoked record exists for exactly this key.

        Raises:
            StorageError: The lookup failed. Callers must not read this as False.
        """
        if not key:
            return False
        record = await self._backend.get_credential(fingerprint(key))
        return record is not None and record.allowed
