"""Shared rate limiter for keytally key-management endpoints.

Uses slowapi (Starlette-compatible rate limiting) to cap key issuance and
revocation per client address. Issuance is unauthenticated, so this is the
only brake on allow-list growth from a single client.

The Limiter instance is created here and shared between:
  - keytally/auth/router.py  (route decorators)
  - keytally/main.py         (app.state.limiter + SlowAPIMiddleware registration)
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from keytally.constants import KEY_MANAGEMENT_RATE_LIMIT

limiter = Limiter(key_func=get_remote_address)

__all__ = ["KEY_MANAGEMENT_RATE_LIMIT", "limiter"]
