from __future__ import annotations

from uuid import uuid4

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from tenantgate.core.errors import (
    ReservedRoleName,
    RoleAlreadyExists,
    RoleInUse,
    RoleNotFound,
)
from tenantgate.domain.models import CustomRoleRecord
from tenantgate.domain.roles import (
    BUILTIN_ROLES,
    CustomRole,
    Role,
    builtin_role,
    normalize_role_name,
    parse_base_permissions,
)
from tenantgate.persistence.repos import pages as pages_repo
from tenantgate.persistence.repos import roles as roles_repo
from tenantgate.services.audit import record_admin_event
from tenantgate.services.authz.cache import KIND_ROLE, AuthzCache, get_authz_cache


def _to_custom_role(record: CustomRoleRecord) -> CustomRole:
    return CustomRole(
        company_id=record.company_id,
        role_id=record.id,
        name=record.role_name,
        base_permissions=parse_base_permissions(record.base_permissions),
        display_name=record.display_name,
        description=record.description,
    )


async def resolve_role(
    session: AsyncSession,
    company_id: str,
    role_name: str,
    *,
    cache: AuthzCache | None = None,
) -> Role | None:
    """Resolve a role name for a company; ``None`` means not found.

    Built-in names never touch storage. Custom names resolve only to active
    roles of ``company_id``, through the authz cache.
    """
    builtin = builtin_role(role_name)
    if builtin is not None:
        return builtin
    name = role_name.strip().lower()
    resolved_cache = cache or get_authz_cache()

    async def _load() -> CustomRole | None:
        record = await roles_repo.get_custom_role(session, company_id=company_id, role_name=name)
        return _to_custom_role(record) if record is not None else None

    return await resolved_cache.get_or_load((KIND_ROLE, company_id, name), _load)


async def require_role(
    session: AsyncSession,
    company_id: str,
    role_name: str,
    *,
    cache: AuthzCache | None = None,
) -> Role:
    role = await resolve_role(session, company_id, role_name, cache=cache)
    if role is None:
        raise RoleNotFound(f'Role "{role_name}" not found')
    return role


async def list_roles(session: AsyncSession, company_id: str) -> list[Role]:
    # Builtins first in rank order, then the company's active custom roles by name.
    builtins: list[Role] = sorted(BUILTIN_ROLES.values(), key=lambda role: -role.rank)
    records = await roles_repo.list_custom_roles(session, company_id=company_id)
    return builtins + [_to_custom_role(record) for record in records]


async def create_custom_role(
    session: AsyncSession,
    company_id: str,
    name: str,
    base_permissions: list[str] | set[str] | frozenset[str] | None,
    *,
    created_by: str,
    display_name: str | None = None,
    description: str | None = None,
    cache: AuthzCache | None = None,
) -> str:
    normalized = normalize_role_name(name)
    if normalized in BUILTIN_ROLES:
        raise ReservedRoleName(f"Cannot use reserved role name: {normalized}")
    permissions = parse_base_permissions(base_permissions)

    existing = await roles_repo.get_custom_role(
        session,
        company_id=company_id,
        role_name=normalized,
        include_inactive=True,
    )
    if existing is not None and existing.is_active:
        raise RoleAlreadyExists(f'Role "{normalized}" already exists')

    if existing is not None:
        # Soft-deleted names are revived in place to respect the unique constraint.
        record = existing
        record.is_active = True
        record.display_name = display_name or normalized
        record.description = description or ""
        record.base_permissions = sorted(permissions)
        record.created_by = created_by
    else:
        record = CustomRoleRecord(
            id=uuid4().hex,
            company_id=company_id,
            role_name=normalized,
            display_name=display_name or normalized,
            description=description or "",
            base_permissions=sorted(permissions),
            created_by=created_by,
            is_active=True,
        )
        session.add(record)
    try:
        await session.commit()
    except IntegrityError as exc:
        await session.rollback()
        raise RoleAlreadyExists(f'Role "{normalized}" already exists') from exc

    (cache or get_authz_cache()).invalidate_company(company_id)
    record_admin_event(
        actor_id=created_by,
        company_id=company_id,
        action="CUSTOM_ROLE_CREATED",
        resource_type="ROLE",
        resource_id=normalized,
        metadata={
            "role_name": normalized,
            "display_name": record.display_name,
            "base_permissions": sorted(permissions),
        },
    )
    return record.id


async def update_custom_role(
    session: AsyncSession,
    company_id: str,
    name: str,
    *,
    updated_by: str,
    display_name: str | None = None,
    description: str | None = None,
    base_permissions: list[str] | set[str] | frozenset[str] | None = None,
    cache: AuthzCache | None = None,
) -> CustomRole:
    normalized = name.strip().lower()
    if normalized in BUILTIN_ROLES:
        raise ReservedRoleName("Cannot modify built-in roles")
    record = await roles_repo.get_custom_role(session, company_id=company_id, role_name=normalized)
    if record is None:
        raise RoleNotFound(f'Role "{normalized}" not found')

    changes: dict[str, object] = {}
    if display_name is not None:
        record.display_name = display_name
        changes["display_name"] = display_name
    if description is not None:
        record.description = description
        changes["description"] = description
    if base_permissions is not None:
        permissions = sorted(parse_base_permissions(base_permissions))
        record.base_permissions = permissions
        changes["base_permissions"] = permissions
    await session.commit()

    (cache or get_authz_cache()).invalidate_company(company_id)
    record_admin_event(
        actor_id=updated_by,
        company_id=company_id,
        action="CUSTOM_ROLE_UPDATED",
        resource_type="ROLE",
        resource_id=normalized,
        metadata={"role_name": normalized, "changed_fields": sorted(changes), "new_values": changes},
    )
    return _to_custom_role(record)


async def delete_custom_role(
    session: AsyncSession,
    company_id: str,
    name: str,
    *,
    deleted_by: str,
    cache: AuthzCache | None = None,
) -> None:
    normalized = name.strip().lower()
    if normalized in BUILTIN_ROLES:
        raise ReservedRoleName("Cannot delete built-in roles")
    record = await roles_repo.get_custom_role(session, company_id=company_id, role_name=normalized)
    if record is None:
        raise RoleNotFound(f'Role "{normalized}" not found')

    assigned = await roles_repo.count_active_users_with_role(
        session,
        company_id=company_id,
        role_name=normalized,
    )
    if assigned > 0:
        raise RoleInUse(
            f'Cannot delete role "{normalized}": {assigned} user(s) still assigned to this role'
        )

    record.is_active = False
    await pages_repo.delete_role_page_access(session, company_id=company_id, role_name=normalized)
    await session.commit()

    (cache or get_authz_cache()).invalidate_company(company_id)
    record_admin_event(
        actor_id=deleted_by,
        company_id=company_id,
        action="CUSTOM_ROLE_DELETED",
        resource_type="ROLE",
        resource_id=normalized,
        metadata={"role_name": normalized, "display_name": record.display_name},
    )
