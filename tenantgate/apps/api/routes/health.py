from __future__ import annotations

from fastapi import APIRouter, Request
from pydantic import BaseModel

from tenantgate.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from tenantgate.apps.api.response import SuccessEnvelope, success_response
from tenantgate.services.telemetry import deny_ratio, p95_decision_latency

router = APIRouter(tags=["health"], responses=DEFAULT_ERROR_RESPONSES)

_WINDOW_S = 300


class HealthResponse(BaseModel):
    status: str
    decision_p95_ms: float | None
    deny_ratio: float | None


# Unauthenticated liveness probe; reports recent decision latency for dashboards.
@router.get("/health", response_model=SuccessEnvelope[HealthResponse] | HealthResponse)
async def health(request: Request) -> HealthResponse:
    payload = HealthResponse(
        status="ok",
        decision_p95_ms=p95_decision_latency(_WINDOW_S),
        deny_ratio=deny_ratio(_WINDOW_S),
    )
    return success_response(request=request, data=payload)
