from __future__ import annotations

from fastapi import APIRouter, Depends

from rate_limiter.core.rate_limit import enforce_rate_limit

router = APIRouter(tags=["Ping"])


@router.get("/ping", dependencies=[Depends(enforce_rate_limit)])
async def ping() -> dict:
    """Rate limited endpoint.

    Returns HTTP 429 when the same client calls again before the configured
    minimum interval has elapsed since its previous request.
    """

    return {"status": "pong"}
