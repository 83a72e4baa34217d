from __future__ import annotations

from fastapi import APIRouter, Depends, Request, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from tenantgate.apps.api.deps import get_db, require_access
from tenantgate.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from tenantgate.apps.api.response import SuccessEnvelope, success_response
from tenantgate.domain.decisions import Principal
from tenantgate.domain.models import RoleVisibilityRestriction
from tenantgate.domain.pages import PAGES_BY_KEY
from tenantgate.domain.roles import CustomRole, Role, is_admin_tier, normalize_role_name
from tenantgate.services.authz import matrix, registry, visibility


router = APIRouter(prefix="/company/roles", tags=["roles"], responses=DEFAULT_ERROR_RESPONSES)


class RoleResponse(BaseModel):
    role_name: str
    display_name: str
    description: str | None
    is_builtin: bool
    rank: int
    base_permissions: list[str]


class RoleListResponse(BaseModel):
    items: list[RoleResponse]


class RoleCreateRequest(BaseModel):
    role_name: str = Field(min_length=1, max_length=100)
    display_name: str | None = Field(default=None, max_length=100)
    description: str | None = Field(default=None, max_length=500)
    base_permissions: list[str] | None = None

    # Reject unknown fields so company_id always comes from the principal.
    model_config = {"extra": "forbid"}


class RoleCreateResponse(BaseModel):
    id: str
    role_name: str


class RolePatchRequest(BaseModel):
    display_name: str | None = Field(default=None, max_length=100)
    description: str | None = Field(default=None, max_length=500)
    base_permissions: list[str] | None = None

    model_config = {"extra": "forbid"}


class RoleDeleteResponse(BaseModel):
    role_name: str
    deleted: bool


class RolePageResponse(BaseModel):
    page_key: str
    label: str
    allowed: bool
    configured: bool
    always_admin: bool


class RolePagesResponse(BaseModel):
    role_name: str
    configurable: bool
    items: list[RolePageResponse]


class RolePagesUpdateRequest(BaseModel):
    page_keys: list[str]

    model_config = {"extra": "forbid"}


class RestrictionResponse(BaseModel):
    id: str
    role_name: str
    restriction_type: str
    restriction_value: str
    granted_by: str | None
    granted_at: str | None
    notes: str | None


class RestrictionListResponse(BaseModel):
    items: list[RestrictionResponse]


class RestrictionCreateRequest(BaseModel):
    restriction_type: str = Field(min_length=1, max_length=50)
    restriction_value: str = Field(min_length=1, max_length=255)
    notes: str | None = Field(default=None, max_length=500)

    model_config = {"extra": "forbid"}


def _role_payload(role: Role) -> RoleResponse:
    if isinstance(role, CustomRole):
        return RoleResponse(
            role_name=role.name,
            display_name=role.display_name or role.name,
            description=role.description,
            is_builtin=False,
            rank=role.rank,
            base_permissions=sorted(role.base_permissions),
        )
    return RoleResponse(
        role_name=role.name,
        display_name=role.name.replace("_", " ").title(),
        description=None,
        is_builtin=True,
        rank=role.rank,
        base_permissions=[],
    )


def _restriction_payload(row: RoleVisibilityRestriction) -> RestrictionResponse:
    return RestrictionResponse(
        id=row.id,
        role_name=row.role_name,
        restriction_type=row.restriction_type,
        restriction_value=row.restriction_value,
        granted_by=row.granted_by,
        granted_at=row.granted_at.isoformat() if row.granted_at else None,
        notes=row.notes,
    )


async def _pages_payload(db: AsyncSession, role: Role, company_id: str) -> RolePagesResponse:
    entries = await matrix.describe_role_pages(db, role, company_id=company_id)
    return RolePagesResponse(
        role_name=role.name,
        configurable=not is_admin_tier(role),
        items=[
            RolePageResponse(
                page_key=entry.page_key,
                label=PAGES_BY_KEY[entry.page_key].label,
                allowed=entry.allowed,
                configured=entry.configured,
                always_admin=entry.always_admin,
            )
            for entry in entries
        ],
    )


@router.get("", response_model=SuccessEnvelope[RoleListResponse] | RoleListResponse)
async def list_company_roles(
    request: Request,
    principal: Principal = Depends(require_access),
    db: AsyncSession = Depends(get_db),
) -> RoleListResponse:
    roles = await registry.list_roles(db, principal.company_id)
    payload = RoleListResponse(items=[_role_payload(role) for role in roles])
    return success_response(request=request, data=payload)


@router.post(
    "",
    response_model=SuccessEnvelope[RoleCreateResponse] | RoleCreateResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_company_role(
    request: Request,
    payload: RoleCreateRequest,
    principal: Principal = Depends(require_access),
    db: AsyncSession = Depends(get_db),
) -> RoleCreateResponse:
    role_id = await registry.create_custom_role(
        db,
        principal.company_id,
        payload.role_name,
        payload.base_permissions,
        created_by=principal.user_id,
        display_name=payload.display_name,
        description=payload.description,
    )
    response = RoleCreateResponse(id=role_id, role_name=normalize_role_name(payload.role_name))
    return success_response(request=request, data=response)


@router.patch("/{role_name}", response_model=SuccessEnvelope[RoleResponse] | RoleResponse)
async def patch_company_role(
    role_name: str,
    request: Request,
    payload: RolePatchRequest,
    principal: Principal = Depends(require_access),
    db: AsyncSession = Depends(get_db),
) -> RoleResponse:
    role = await registry.update_custom_role(
        db,
        principal.company_id,
        role_name,
        updated_by=principal.user_id,
        display_name=payload.display_name,
        description=payload.description,
        base_permissions=payload.base_permissions,
    )
    return success_response(request=request, data=_role_payload(role))


@router.delete("/{role_name}", response_model=SuccessEnvelope[RoleDeleteResponse] | RoleDeleteResponse)
async def delete_company_role(
    role_name: str,
    request: Request,
    principal: Principal = Depends(require_access),
    db: AsyncSession = Depends(get_db),
) -> RoleDeleteResponse:
    await registry.delete_custom_role(db, principal.company_id, role_name, deleted_by=principal.user_id)
    return success_response(request=request, data=RoleDeleteResponse(role_name=role_name.strip().lower(), deleted=True))


@router.get("/{role_name}/pages", response_model=SuccessEnvelope[RolePagesResponse] | RolePagesResponse)
async def get_role_pages(
    role_name: str,
    request: Request,
    principal: Principal = Depends(require_access),
    db: AsyncSession = Depends(get_db),
) -> RolePagesResponse:
    role = await registry.require_role(db, principal.company_id, role_name)
    payload = await _pages_payload(db, role, principal.company_id)
    return success_response(request=request, data=payload)


@router.put("/{role_name}/pages", response_model=SuccessEnvelope[RolePagesResponse] | RolePagesResponse)
async def put_role_pages(
    role_name: str,
    request: Request,
    payload: RolePagesUpdateRequest,
    principal: Principal = Depends(require_access),
    db: AsyncSession = Depends(get_db),
) -> RolePagesResponse:
    role = await registry.require_role(db, principal.company_id, role_name)
    await matrix.set_role_pages(
        db,
        role,
        payload.page_keys,
        company_id=principal.company_id,
        created_by=principal.user_id,
    )
    response = await _pages_payload(db, role, principal.company_id)
    return success_response(request=request, data=response)


@router.get(
    "/{role_name}/restrictions",
    response_model=SuccessEnvelope[RestrictionListResponse] | RestrictionListResponse,
)
async def list_role_restrictions(
    role_name: str,
    request: Request,
    restriction_type: str | None = None,
    principal: Principal = Depends(require_access),
    db: AsyncSession = Depends(get_db),
) -> RestrictionListResponse:
    role = await registry.require_role(db, principal.company_id, role_name)
    rows = await visibility.list_restrictions(
        db,
        principal.company_id,
        role.name,
        restriction_type=restriction_type,
    )
    payload = RestrictionListResponse(items=[_restriction_payload(row) for row in rows])
    return success_response(request=request, data=payload)


@router.post(
    "/{role_name}/restrictions",
    response_model=SuccessEnvelope[RestrictionResponse] | RestrictionResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_role_restriction(
    role_name: str,
    request: Request,
    payload: RestrictionCreateRequest,
    principal: Principal = Depends(require_access),
    db: AsyncSession = Depends(get_db),
) -> RestrictionResponse:
    role = await registry.require_role(db, principal.company_id, role_name)
    row = await visibility.grant_restriction(
        db,
        principal.company_id,
        role.name,
        payload.restriction_type,
        payload.restriction_value,
        granted_by=principal.user_id,
        notes=payload.notes,
    )
    return success_response(request=request, data=_restriction_payload(row))


@router.delete(
    "/{role_name}/restrictions/{restriction_id}",
    response_model=SuccessEnvelope[RestrictionResponse] | RestrictionResponse,
)
async def delete_role_restriction(
    role_name: str,
    restriction_id: str,
    request: Request,
    principal: Principal = Depends(require_access),
    db: AsyncSession = Depends(get_db),
) -> RestrictionResponse:
    role = await registry.require_role(db, principal.company_id, role_name)
    row = await visibility.revoke_restriction(
        db,
        principal.company_id,
        role.name,
        restriction_id,
        revoked_by=principal.user_id,
    )
    return success_response(request=request, data=_restriction_payload(row))
