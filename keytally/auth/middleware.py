"""keytally request authentication — the single authorization choke point.

Provides ``authenticate_request()``: a FastAPI Depends()-compatible async
dependency that extracts the HTTP Basic credential and runs it through the
AccessValidator held on ``app.state.access_validator``.

CRITICAL INVARIANT: authenticate_request() raises BEFORE any handler side
effect. Protected routers declare it as a router-level dependency, so a
denied request never reaches usage tracking: no counter increment, no usage
event.

Credential scheme:
  Authorization: Basic base64(<api_key>:<anything>)
  The decoded username is the API key; the password is ignored.

Outcome mapping:
  Decision.DENY  → DenyError     → 401 + WWW-Authenticate: Basic
  Decision.ERROR → StorageError  → 500 with a generic body
"""

from __future__ import annotations

from typing import Optional

from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from keytally.auth.validator import AccessValidator, Decision
from keytally.errors import DenyError, StorageError
from keytally.utils.logger import get_logger

logger = get_logger(__name__)


class BasicCredentialScheme(HTTPBasic):
    """HTTPBasic that yields None for a missing or malformed header.

    HTTPBasic raises its own 401 for undecodable base64 or a credential
    without a ":" separator, even with auto_error=False. Returning None
    instead sends every rejection through the validator as a DENY, so all
    of them carry the same body.
    """

    async def __call__(self, request: Request) -> Optional[HTTPBasicCredentials]:  # type: ignore[override]
        try:
            return await super().__call__(request)
        except HTTPException:
            return None


basic_scheme = BasicCredentialScheme(auto_error=False)


def extract_api_key(credentials: Optional[HTTPBasicCredentials]) -> Optional[str]:
    """Return the Basic username (the API key), or None when absent/empty."""
    if credentials is None or not credentials.username:
        return None
    return credentials.username


async def authenticate_request(
    request: Request,
    credentials: Optional[HTTPBasicCredentials] = Depends(basic_scheme),
) -> str:
    """FastAPI dependency: authorize the caller's API key.

    Returns:
        The API key, when allowed. Handlers receive it via Depends() to
        attribute usage.

    Raises:
        DenyError:    No credential, or the key is unknown or revoked.
        StorageError: The allow-list could not be read.
    """
    validator: AccessValidator = request.app.state.access_validator
    api_key = extract_api_key(credentials)

    decision = await validator.validate(api_key)

    if decision is Decision.ALLOW:
        return api_key  # type: ignore[return-value]

    if decision is Decision.ERROR:
        raise StorageError("Credential check unavailable")

    logger.warning(
        "authentication_failed",
        reason="missing_credential" if api_key is None else "not_authorized",
        path=str(request.url.path),
        method=request.method,
    )
    raise DenyError()
