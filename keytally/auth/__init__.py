"""keytally credential package.

Public API:
  - CredentialStore          — issue / revoke / is_allowed over a StorageBackend
  - fingerprint()            — SHA-256 digest stored in place of the plaintext key
  - AccessValidator          — ALLOW / DENY / ERROR policy check
  - Decision                 — validator outcome enum
  - authenticate_request()   — FastAPI Depends() dependency (HTTP Basic)
"""

from __future__ import annotations

from keytally.auth.keys import CredentialStore, fingerprint, generate_api_key
from keytally.auth.middleware import authenticate_request
from keytally.auth.validator import AccessValidator, Decision

__all__ = [
    "CredentialStore",
    "fingerprint",
    "generate_api_key",
    "AccessValidator",
    "Decision",
    "authenticate_request",
]
