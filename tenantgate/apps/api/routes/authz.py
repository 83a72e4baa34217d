from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from tenantgate.apps.api.deps import get_db, require_access
from tenantgate.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from tenantgate.apps.api.response import SuccessEnvelope, success_response
from tenantgate.domain.decisions import AccessRequest, Principal
from tenantgate.services.authz.engine import authorize


router = APIRouter(prefix="/authz", tags=["authz"], responses=DEFAULT_ERROR_RESPONSES)


class AccessCheckRequest(BaseModel):
    path: str = Field(min_length=1, max_length=512)
    method: str = Field(default="GET", max_length=10)
    target_company_id: str | None = None
    resource_id: str | None = None

    model_config = {"extra": "forbid"}


class AccessCheckResponse(BaseModel):
    allowed: bool
    reason: str
    matched_rule: str | None
    page_key: str | None
    permission: str | None


@router.post("/check", response_model=SuccessEnvelope[AccessCheckResponse] | AccessCheckResponse)
async def check_access(
    request: Request,
    payload: AccessCheckRequest,
    principal: Principal = Depends(require_access),
    db: AsyncSession = Depends(get_db),
) -> AccessCheckResponse:
    # Let the UI check a path for the caller; the decision is audited like a real one.
    decision = await authorize(
        db,
        principal,
        AccessRequest(
            path=payload.path,
            method=payload.method.upper(),
            target_company_id=payload.target_company_id,
            resource_id=payload.resource_id,
        ),
    )
    response = AccessCheckResponse(
        allowed=decision.allowed,
        reason=decision.reason,
        matched_rule=decision.matched_rule,
        page_key=decision.page_key,
        permission=decision.permission,
    )
    return success_response(request=request, data=response)
