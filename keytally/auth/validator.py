"""Access Validator — the single allow/deny policy point.

Every protected route reaches this through ``authenticate_request``
(keytally/auth/middleware.py). It holds no state and caches nothing: each
request is checked against the Credential Store, so a revocation takes
effect on the next call.

Outcome mapping:
  key allowed                 → Decision.ALLOW
  key absent/unknown/revoked  → Decision.DENY
  StorageError while checking → Decision.ERROR   (never DENY, never ALLOW)
"""

from __future__ import annotations

import enum
from typing import Optional

from keytally.auth.keys import CredentialStore
from keytally.errors import StorageError
from keytally.utils.logger import get_logger

logger = get_logger(__name__)


class Decision(str, enum.Enum):
    ALLOW = "allow"
    DENY = "deny"
    ERROR = "error"


class AccessValidator:
    """Stateless policy glue over CredentialStore.is_allowed()."""

    def __init__(self, store: CredentialStore) -> None:
        self._store = store

    async def validate(self, credential: Optional[str]) -> Decision:
        """Classify ``credential`` as ALLOW, DENY or ERROR. Never raises StorageError."""
        if not credential:
            return Decision.DENY
        try:
            allowed = await self._store.is_allowed(credential)
        except StorageError as exc:
            logger.error(
                "credential_check_failed",
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return Decision.ERROR
        return Decision.ALLOW if allowed else Decision.DENY
