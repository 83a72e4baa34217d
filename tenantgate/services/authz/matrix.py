from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from tenantgate.core.errors import RoleNotConfigurable
from tenantgate.domain.pages import PAGE_CATALOG, validate_page_keys
from tenantgate.domain.roles import (
    CustomRole,
    Role,
    builtins_at_or_below,
    is_admin_tier,
    parse_base_permissions,
)
from tenantgate.persistence.repos import pages as pages_repo
from tenantgate.persistence.repos import roles as roles_repo
from tenantgate.services.audit import record_admin_event
from tenantgate.services.authz.cache import KIND_PAGES, AuthzCache, get_authz_cache


@dataclass(frozen=True)
class PageAccessEntry:
    page_key: str
    allowed: bool
    # False when the value comes from the default-allow policy rather than a stored row.
    configured: bool
    always_admin: bool


def _company_for(role: Role, company_id: str | None) -> str | None:
    if isinstance(role, CustomRole):
        return role.company_id
    return company_id


async def _configured_pages(
    session: AsyncSession,
    company_id: str | None,
    role_name: str,
) -> dict[str, bool]:
    if company_id is None:
        return {}
    rows = await pages_repo.list_role_page_access(session, company_id=company_id, role_name=role_name)
    return {row.page_key: row.allowed for row in rows}


def _resolve_entries(role: Role, configured: dict[str, bool]) -> list[PageAccessEntry]:
    entries: list[PageAccessEntry] = []
    for page in PAGE_CATALOG:
        if page.always_admin and is_admin_tier(role):
            entries.append(PageAccessEntry(page.key, True, page.key in configured, True))
        elif page.key in configured:
            entries.append(PageAccessEntry(page.key, configured[page.key], True, page.always_admin))
        else:
            # Unconfigured pages stay visible so untouched companies keep full navigation.
            entries.append(PageAccessEntry(page.key, True, False, page.always_admin))
    return entries


async def _direct_pages(
    session: AsyncSession,
    role: Role,
    company_id: str | None,
    cache: AuthzCache,
) -> frozenset[str]:
    async def _load() -> frozenset[str]:
        configured = await _configured_pages(session, company_id, role.name)
        return frozenset(entry.page_key for entry in _resolve_entries(role, configured) if entry.allowed)

    if company_id is None:
        return await _load()
    return await cache.get_or_load((KIND_PAGES, company_id, role.name), _load)


async def _custom_roles_below(session: AsyncSession, rank: int, company_id: str) -> list[CustomRole]:
    records = await roles_repo.list_custom_roles(session, company_id=company_id)
    roles = [
        CustomRole(
            company_id=record.company_id,
            role_id=record.id,
            name=record.role_name,
            base_permissions=parse_base_permissions(record.base_permissions),
        )
        for record in records
    ]
    return [custom for custom in roles if custom.rank < rank]


async def pages_for(
    session: AsyncSession,
    role: Role,
    *,
    company_id: str | None = None,
    cache: AuthzCache | None = None,
) -> frozenset[str]:
    """Return the page keys ``role`` may open inside ``company_id``.

    Built-in roles inherit the resolved set of every role ranked at or below
    them, including the company's active custom roles when the built-in
    outranks them, so a higher rank never sees fewer pages than a lower one.
    Custom roles carry their company with them and resolve on their own rows.
    """
    resolved_cache = cache or get_authz_cache()
    scoped_company = _company_for(role, company_id)
    if isinstance(role, CustomRole):
        return await _direct_pages(session, role, scoped_company, resolved_cache)
    pages: set[str] = set()
    for lower in builtins_at_or_below(role.rank):
        pages |= await _direct_pages(session, lower, scoped_company, resolved_cache)
    if scoped_company is not None:
        for custom in await _custom_roles_below(session, role.rank, scoped_company):
            pages |= await _direct_pages(session, custom, scoped_company, resolved_cache)
    return frozenset(pages)


async def describe_role_pages(
    session: AsyncSession,
    role: Role,
    *,
    company_id: str,
) -> list[PageAccessEntry]:
    # Uncached view for admin screens; shows which values are stored versus defaulted.
    configured = await _configured_pages(session, _company_for(role, company_id), role.name)
    return _resolve_entries(role, configured)


async def set_role_pages(
    session: AsyncSession,
    role: Role,
    page_keys: list[str] | set[str] | frozenset[str],
    *,
    company_id: str,
    created_by: str,
    cache: AuthzCache | None = None,
) -> frozenset[str]:
    """Replace the full allow-set of ``role`` in one transaction.

    Every catalog page receives a row, so pages left out of ``page_keys``
    become explicitly denied instead of falling back to default allow.
    Repeating the call with the same set leaves identical state.
    """
    if is_admin_tier(role):
        raise RoleNotConfigurable(
            f"Cannot configure page access for {role.name}. Admin and Master Admin have full access."
        )
    requested = validate_page_keys(page_keys)
    scoped_company = _company_for(role, company_id) or company_id

    previous = await _configured_pages(session, scoped_company, role.name)
    await pages_repo.replace_role_page_access(
        session,
        company_id=scoped_company,
        role_name=role.name,
        allowed_by_page={page.key: page.key in requested for page in PAGE_CATALOG},
        created_by=created_by,
    )
    await session.commit()

    (cache or get_authz_cache()).invalidate_company(scoped_company, kind=KIND_PAGES)
    record_admin_event(
        actor_id=created_by,
        company_id=scoped_company,
        action="ROLE_PAGE_ACCESS_UPDATED",
        resource_type="ROLE",
        resource_id=role.name,
        metadata={
            "role_name": role.name,
            "old_pages": sorted(key for key, allowed in previous.items() if allowed),
            "new_pages": sorted(requested),
        },
    )
    return requested
