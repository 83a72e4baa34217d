from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from tenantgate.apps.api.deps import get_db, require_access
from tenantgate.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from tenantgate.apps.api.response import SuccessEnvelope, success_response
from tenantgate.domain.decisions import Principal
from tenantgate.domain.pages import PAGES_BY_KEY
from tenantgate.persistence.repos import users as users_repo
from tenantgate.services.authz import availability


router = APIRouter(tags=["company-pages"], responses=DEFAULT_ERROR_RESPONSES)


class CompanyPageResponse(BaseModel):
    page_key: str
    label: str
    enabled: bool
    always_admin: bool
    phi_classified: bool


class CompanyPagesResponse(BaseModel):
    company_id: str
    items: list[CompanyPageResponse]


class CompanyPagesUpdateRequest(BaseModel):
    enabled_pages: list[str]

    model_config = {"extra": "forbid"}


class CompanyResponse(BaseModel):
    id: str
    name: str
    is_active: bool
    data_retention_days: int


class CompanyListResponse(BaseModel):
    items: list[CompanyResponse]


def _pages_payload(company_id: str, pages: dict[str, bool]) -> CompanyPagesResponse:
    items = []
    for page_key, enabled in pages.items():
        page = PAGES_BY_KEY[page_key]
        items.append(
            CompanyPageResponse(
                page_key=page.key,
                label=page.label,
                enabled=enabled,
                always_admin=page.always_admin,
                phi_classified=page.phi_classified,
            )
        )
    return CompanyPagesResponse(company_id=company_id, items=items)


async def _require_company(db: AsyncSession, company_id: str) -> None:
    company = await users_repo.get_company(db, company_id=company_id)
    if company is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"code": "COMPANY_NOT_FOUND", "message": "Company not found"},
        )


@router.get(
    "/company/available-pages",
    response_model=SuccessEnvelope[CompanyPagesResponse] | CompanyPagesResponse,
)
async def get_own_company_pages(
    request: Request,
    principal: Principal = Depends(require_access),
    db: AsyncSession = Depends(get_db),
) -> CompanyPagesResponse:
    pages = await availability.list_company_pages(db, principal.company_id)
    return success_response(request=request, data=_pages_payload(principal.company_id, pages))


@router.get("/companies", response_model=SuccessEnvelope[CompanyListResponse] | CompanyListResponse)
async def list_companies(
    request: Request,
    include_inactive: bool = False,
    _principal: Principal = Depends(require_access),
    db: AsyncSession = Depends(get_db),
) -> CompanyListResponse:
    companies = await users_repo.list_companies(db, include_inactive=include_inactive)
    payload = CompanyListResponse(
        items=[
            CompanyResponse(
                id=company.id,
                name=company.name,
                is_active=company.is_active,
                data_retention_days=company.data_retention_days,
            )
            for company in companies
        ]
    )
    return success_response(request=request, data=payload)


@router.get(
    "/companies/{company_id}/available-pages",
    response_model=SuccessEnvelope[CompanyPagesResponse] | CompanyPagesResponse,
)
async def get_company_pages(
    company_id: str,
    request: Request,
    _principal: Principal = Depends(require_access),
    db: AsyncSession = Depends(get_db),
) -> CompanyPagesResponse:
    await _require_company(db, company_id)
    pages = await availability.list_company_pages(db, company_id)
    return success_response(request=request, data=_pages_payload(company_id, pages))


@router.put(
    "/companies/{company_id}/available-pages",
    response_model=SuccessEnvelope[CompanyPagesResponse] | CompanyPagesResponse,
)
async def put_company_pages(
    company_id: str,
    request: Request,
    payload: CompanyPagesUpdateRequest,
    principal: Principal = Depends(require_access),
    db: AsyncSession = Depends(get_db),
) -> CompanyPagesResponse:
    await _require_company(db, company_id)
    pages = await availability.set_company_pages(
        db,
        company_id,
        payload.enabled_pages,
        created_by=principal.user_id,
    )
    return success_response(request=request, data=_pages_payload(company_id, pages))
