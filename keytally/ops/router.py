"""Protected operations — every route here requires an allowed API key.

authenticate_request is a router-level dependency, so no route added to
this router can skip the credential check. Handlers that need the key
declare the same dependency again; FastAPI resolves it once per request.

  GET /api/change-sign/{ival} — numeric sign negation
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel

from keytally.auth.middleware import authenticate_request
from keytally.storage.models import Endpoint
from keytally.usage.tracker import UsageTracker

router = APIRouter(
    prefix="/api",
    tags=["ops"],
    dependencies=[Depends(authenticate_request)],
)


class SignValue(BaseModel):
    old: float
    new: float


@router.get("/change-sign/{ival}", response_model=SignValue)
async def change_sign(
    ival: float,
    request: Request,
    api_key: str = Depends(authenticate_request),
) -> SignValue:
    tracker: UsageTracker = request.app.state.usage_tracker
    tracker.track(api_key, Endpoint.CHANGE_SIGN.value)
    return SignValue(old=ival, new=0.0 - ival)
