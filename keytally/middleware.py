"""Request ID middleware for keytally.

Assigns every request a ULID, binds it to the logging context (so every
log line emitted while handling the request, including lines from the
usage tasks it spawns, carries ``request_id``) and echoes it in the
``X-Request-ID`` response header.

A client-supplied ``X-Request-ID`` is ignored; IDs are always server-minted.
"""

from __future__ import annotations

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from keytally.utils.logger import clear_request_id, set_request_id
from keytally.utils.ulid import generate_ulid

REQUEST_ID_HEADER = "X-Request-ID"


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Starlette middleware stamping each request with a ULID.

    Registration (in create_app() in keytally/main.py):
        application.add_middleware(RequestIdMiddleware)
    """

    async def dispatch(self, request: Request, call_next) -> Response:  # type: ignore[override]
        request_id = generate_ulid()
        set_request_id(request_id)
        try:
            response = await call_next(request)
        finally:
            clear_request_id()
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
