"""API key management endpoints.

Provides:
  GET    /api-key — issue a new key (plaintext shown once, followed by CRLF)
  DELETE /api-key — revoke the key presented as the Basic username

Neither endpoint sits behind authenticate_request: issuance has no
credential yet, and revocation is idempotent, so an unknown or revoked key
still gets 204 rather than a signal of whether it ever existed.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import PlainTextResponse
from fastapi.security import HTTPBasicCredentials

from keytally.auth.keys import CredentialStore
from keytally.auth.limiter import KEY_MANAGEMENT_RATE_LIMIT, limiter
from keytally.auth.middleware import basic_scheme, extract_api_key
from keytally.errors import DenyError

router = APIRouter(tags=["api-keys"])


@router.get("/api-key", response_class=PlainTextResponse)
@limiter.limit(KEY_MANAGEMENT_RATE_LIMIT)
async def request_api_key(request: Request) -> PlainTextResponse:
    """Issue a new API key.

    The body is the key followed by CRLF; clients trim trailing whitespace.
    StorageError / GenerationError propagate to the app-level handlers (500).
    """
    store: CredentialStore = request.app.state.credential_store
    api_key = await store.issue()
    return PlainTextResponse(api_key + "\r\n")


@router.delete("/api-key", status_code=204)
@limiter.limit(KEY_MANAGEMENT_RATE_LIMIT)
async def delete_api_key(
    request: Request,
    credentials: Optional[HTTPBasicCredentials] = Depends(basic_scheme),
) -> Response:
    """Revoke the caller's own key. 204 whether or not the key existed.

    Raises:
        DenyError: No Basic credential was supplied (nothing identifies a key).
    """
    api_key = extract_api_key(credentials)
    if api_key is None:
        raise DenyError()

    store: CredentialStore = request.app.state.credential_store
    await store.revoke(api_key)
    return Response(status_code=204)
