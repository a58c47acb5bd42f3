"""Health check."""

from __future__ import annotations

import time
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Request

from email_gateway.api.deps import rate_limit
from email_gateway.api.models import HealthResponse
from email_gateway.ratelimit import LENIENT

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse, dependencies=[Depends(rate_limit(LENIENT))])
def health(request: Request) -> HealthResponse:
    return HealthResponse(
        status="ok",
        timestamp=datetime.now(timezone.utc).isoformat(),
        uptime=round(time.monotonic() - request.app.state.started_at, 3),
    )
