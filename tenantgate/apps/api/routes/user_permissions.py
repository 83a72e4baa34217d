from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Request, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from tenantgate.apps.api.deps import get_db, require_access
from tenantgate.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from tenantgate.apps.api.response import SuccessEnvelope, success_response
from tenantgate.domain.decisions import Principal
from tenantgate.domain.models import UserPermissionOverride
from tenantgate.persistence.repos import overrides as overrides_repo
from tenantgate.services.authz import overrides
from tenantgate.services.authz.engine import visible_pages_for


router = APIRouter(tags=["permissions"], responses=DEFAULT_ERROR_RESPONSES)


class OverrideResponse(BaseModel):
    id: str
    user_id: str
    permission: str
    resource: str | None
    granted_by: str | None
    granted_at: str | None
    expires_at: str | None
    is_active: bool


class OverrideListResponse(BaseModel):
    items: list[OverrideResponse]


class OverrideGrantRequest(BaseModel):
    permission: str = Field(min_length=1, max_length=100)
    resource: str | None = Field(default=None, max_length=255)
    expires_at: datetime | None = None

    # Reject unknown fields so granted_by always comes from the principal.
    model_config = {"extra": "forbid"}


class OverrideExtendRequest(BaseModel):
    expires_at: datetime

    model_config = {"extra": "forbid"}


class MyPermissionsResponse(BaseModel):
    user_id: str
    company_id: str
    role: str
    pages: list[str]
    overrides: list[OverrideResponse]


def _override_payload(row: UserPermissionOverride) -> OverrideResponse:
    return OverrideResponse(
        id=row.id,
        user_id=row.user_id,
        permission=row.permission,
        resource=row.resource,
        granted_by=row.granted_by,
        granted_at=overrides.as_utc(row.granted_at).isoformat() if row.granted_at else None,
        expires_at=overrides.as_utc(row.expires_at).isoformat() if row.expires_at else None,
        is_active=row.is_active,
    )


@router.get("/user/permissions", response_model=SuccessEnvelope[MyPermissionsResponse] | MyPermissionsResponse)
async def get_my_permissions(
    request: Request,
    principal: Principal = Depends(require_access),
    db: AsyncSession = Depends(get_db),
) -> MyPermissionsResponse:
    # Self-service view: effective pages plus live overrides, for navigation rendering.
    now = overrides.utc_now()
    pages = await visible_pages_for(db, principal, now=now)
    rows = await overrides_repo.list_overrides(
        db,
        company_id=principal.company_id,
        user_id=principal.user_id,
        now=now,
    )
    payload = MyPermissionsResponse(
        user_id=principal.user_id,
        company_id=principal.company_id,
        role=principal.role,
        pages=sorted(pages),
        overrides=[_override_payload(row) for row in rows],
    )
    return success_response(request=request, data=payload)


@router.get(
    "/users/{user_id}/permissions",
    response_model=SuccessEnvelope[OverrideListResponse] | OverrideListResponse,
)
async def list_user_permissions(
    user_id: str,
    request: Request,
    include_inactive: bool = False,
    principal: Principal = Depends(require_access),
    db: AsyncSession = Depends(get_db),
) -> OverrideListResponse:
    rows = await overrides.list_user_overrides(db, principal, user_id, include_inactive=include_inactive)
    return success_response(request=request, data=OverrideListResponse(items=[_override_payload(row) for row in rows]))


@router.post(
    "/users/{user_id}/permissions",
    response_model=SuccessEnvelope[OverrideResponse] | OverrideResponse,
    status_code=status.HTTP_201_CREATED,
)
async def grant_user_permission(
    user_id: str,
    request: Request,
    payload: OverrideGrantRequest,
    principal: Principal = Depends(require_access),
    db: AsyncSession = Depends(get_db),
) -> OverrideResponse:
    row = await overrides.grant_override(
        db,
        principal,
        user_id=user_id,
        permission=payload.permission,
        resource=payload.resource,
        expires_at=payload.expires_at,
    )
    return success_response(request=request, data=_override_payload(row))


@router.patch(
    "/users/{user_id}/permissions/{permission_id}",
    response_model=SuccessEnvelope[OverrideResponse] | OverrideResponse,
)
async def extend_user_permission(
    user_id: str,
    permission_id: str,
    request: Request,
    payload: OverrideExtendRequest,
    principal: Principal = Depends(require_access),
    db: AsyncSession = Depends(get_db),
) -> OverrideResponse:
    row = await overrides.extend_override(
        db,
        principal,
        user_id=user_id,
        override_id=permission_id,
        expires_at=payload.expires_at,
    )
    return success_response(request=request, data=_override_payload(row))


@router.delete(
    "/users/{user_id}/permissions/{permission_id}",
    response_model=SuccessEnvelope[OverrideResponse] | OverrideResponse,
)
async def revoke_user_permission(
    user_id: str,
    permission_id: str,
    request: Request,
    principal: Principal = Depends(require_access),
    db: AsyncSession = Depends(get_db),
) -> OverrideResponse:
    row = await overrides.revoke_override(db, principal, user_id=user_id, override_id=permission_id)
    return success_response(request=request, data=_override_payload(row))
