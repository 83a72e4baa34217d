from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tenantgate.domain.models import CompanyAvailablePage
from tenantgate.domain.pages import PAGE_CATALOG, validate_page_keys
from tenantgate.persistence.guards import company_predicate
from tenantgate.persistence.repos import pages as pages_repo
from tenantgate.services.audit import record_admin_event
from tenantgate.services.authz.cache import KIND_AVAILABILITY, AuthzCache, get_authz_cache


async def is_page_enabled_for_company(
    session: AsyncSession,
    company_id: str,
    page_key: str,
    *,
    cache: AuthzCache | None = None,
) -> bool:
    # Opt-out model: a missing row means the page is enabled.
    resolved_cache = cache or get_authz_cache()

    async def _load() -> bool:
        result = await session.execute(
            select(CompanyAvailablePage.is_enabled).where(
                company_predicate(CompanyAvailablePage, company_id),
                CompanyAvailablePage.page_key == page_key,
            )
        )
        enabled = result.scalar_one_or_none()
        return True if enabled is None else bool(enabled)

    return await resolved_cache.get_or_load((KIND_AVAILABILITY, company_id, page_key), _load)


async def list_company_pages(session: AsyncSession, company_id: str) -> dict[str, bool]:
    # Effective map over the whole catalog, uncached for admin screens.
    rows = await pages_repo.list_company_pages(session, company_id=company_id)
    stored = {row.page_key: row.is_enabled for row in rows}
    return {page.key: bool(stored.get(page.key, True)) for page in PAGE_CATALOG}


async def enabled_pages_for_company(session: AsyncSession, company_id: str) -> frozenset[str]:
    pages = await list_company_pages(session, company_id)
    return frozenset(key for key, enabled in pages.items() if enabled)


async def set_company_pages(
    session: AsyncSession,
    company_id: str,
    enabled_keys: list[str] | set[str] | frozenset[str],
    *,
    created_by: str,
    cache: AuthzCache | None = None,
) -> dict[str, bool]:
    """Replace the company's page availability with ``enabled_keys``.

    Writes one row per catalog page so disabled pages are explicit. Only
    master_admin callers reach this through the HTTP surface.
    """
    requested = validate_page_keys(enabled_keys)
    enabled_by_page = {page.key: page.key in requested for page in PAGE_CATALOG}
    await pages_repo.replace_company_pages(
        session,
        company_id=company_id,
        enabled_by_page=enabled_by_page,
        created_by=created_by,
    )
    await session.commit()

    (cache or get_authz_cache()).invalidate_company(company_id, kind=KIND_AVAILABILITY)
    record_admin_event(
        actor_id=created_by,
        company_id=company_id,
        action="COMPANY_AVAILABLE_PAGES_UPDATED",
        resource_type="COMPANY",
        resource_id=company_id,
        metadata={
            "enabled_pages": sorted(requested),
            "disabled_pages": sorted(key for key, enabled in enabled_by_page.items() if not enabled),
        },
    )
    return enabled_by_page
