from __future__ import annotations

from uuid import uuid4

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from tenantgate.domain.models import CompanyAvailablePage, RolePageAccess
from tenantgate.persistence.guards import company_predicate


async def list_role_page_access(
    session: AsyncSession,
    *,
    company_id: str,
    role_name: str,
) -> list[RolePageAccess]:
    result = await session.execute(
        select(RolePageAccess)
        .where(
            company_predicate(RolePageAccess, company_id),
            RolePageAccess.role_name == role_name,
        )
        .order_by(RolePageAccess.page_key.asc())
    )
    return list(result.scalars().all())


async def delete_role_page_access(
    session: AsyncSession,
    *,
    company_id: str,
    role_name: str,
) -> int:
    result = await session.execute(
        delete(RolePageAccess).where(
            company_predicate(RolePageAccess, company_id),
            RolePageAccess.role_name == role_name,
        )
    )
    return result.rowcount or 0


async def replace_role_page_access(
    session: AsyncSession,
    *,
    company_id: str,
    role_name: str,
    allowed_by_page: dict[str, bool],
    created_by: str,
) -> list[RolePageAccess]:
    # Full replace inside the caller's transaction so no stale rows survive.
    await delete_role_page_access(session, company_id=company_id, role_name=role_name)
    rows = [
        RolePageAccess(
            id=uuid4().hex,
            company_id=company_id,
            role_name=role_name,
            page_key=page_key,
            allowed=allowed,
            created_by=created_by,
        )
        for page_key, allowed in sorted(allowed_by_page.items())
    ]
    session.add_all(rows)
    await session.flush()
    return rows


async def list_company_pages(session: AsyncSession, *, company_id: str) -> list[CompanyAvailablePage]:
    result = await session.execute(
        select(CompanyAvailablePage)
        .where(company_predicate(CompanyAvailablePage, company_id))
        .order_by(CompanyAvailablePage.page_key.asc())
    )
    return list(result.scalars().all())


async def replace_company_pages(
    session: AsyncSession,
    *,
    company_id: str,
    enabled_by_page: dict[str, bool],
    created_by: str,
) -> list[CompanyAvailablePage]:
    await session.execute(
        delete(CompanyAvailablePage).where(company_predicate(CompanyAvailablePage, company_id))
    )
    rows = [
        CompanyAvailablePage(
            id=uuid4().hex,
            company_id=company_id,
            page_key=page_key,
            is_enabled=enabled,
            created_by=created_by,
        )
        for page_key, enabled in sorted(enabled_by_page.items())
    ]
    session.add_all(rows)
    await session.flush()
    return rows
