from __future__ import annotations

import pytest

from tenantgate.core.errors import (
    InvalidPermission,
    InvalidRoleName,
    ReservedRoleName,
    RoleAlreadyExists,
    RoleInUse,
    RoleNotFound,
)
from tenantgate.domain.roles import CustomRole
from tenantgate.services.audit import drain_pending_events
from tenantgate.services.authz import matrix, registry
from tenantgate.services.authz.cache import get_authz_cache
from tenantgate.tests.utils.seed import seed_company, seed_user


@pytest.mark.asyncio
async def test_create_and_resolve_custom_role(session, audit_sink) -> None:
    # Names are normalized and audited on creation.
    await seed_company(session, "acme")
    role_id = await registry.create_custom_role(
        session,
        "acme",
        "Field Technician",
        ["read", "write"],
        created_by="admin-1",
    )
    role = await registry.resolve_role(session, "acme", "field_technician")
    assert isinstance(role, CustomRole)
    assert role.role_id == role_id
    assert role.base_permissions == frozenset({"read", "write"})
    assert role.display_name == "field_technician"

    await drain_pending_events()
    assert audit_sink.actions() == ["CUSTOM_ROLE_CREATED"]
    assert audit_sink.events[0].resource_id == "field_technician"


@pytest.mark.asyncio
async def test_custom_roles_do_not_leak_across_companies(session) -> None:
    await seed_company(session, "acme")
    await seed_company(session, "globex")
    await registry.create_custom_role(session, "acme", "technician", None, created_by="admin-1")
    assert await registry.resolve_role(session, "globex", "technician") is None
    with pytest.raises(RoleNotFound):
        await registry.require_role(session, "globex", "technician")


@pytest.mark.asyncio
async def test_create_rejects_duplicates_and_reserved_names(session) -> None:
    await seed_company(session, "acme")
    await registry.create_custom_role(session, "acme", "technician", None, created_by="admin-1")
    with pytest.raises(RoleAlreadyExists):
        await registry.create_custom_role(session, "acme", "Technician", None, created_by="admin-1")
    with pytest.raises(ReservedRoleName):
        await registry.create_custom_role(session, "acme", "Admin", None, created_by="admin-1")
    with pytest.raises(InvalidRoleName):
        await registry.create_custom_role(session, "acme", "x", None, created_by="admin-1")
    with pytest.raises(InvalidPermission):
        await registry.create_custom_role(session, "acme", "auditor", ["fly"], created_by="admin-1")


@pytest.mark.asyncio
async def test_builtin_roles_list_first(session) -> None:
    await seed_company(session, "acme")
    await registry.create_custom_role(session, "acme", "technician", None, created_by="admin-1")
    names = [role.name for role in await registry.list_roles(session, "acme")]
    assert names == ["master_admin", "admin", "analyst", "viewer", "user", "technician"]


@pytest.mark.asyncio
async def test_update_invalidates_cached_role(session, audit_sink) -> None:
    # A cached resolution is replaced as soon as the update commits.
    await seed_company(session, "acme")
    await registry.create_custom_role(session, "acme", "technician", ["read"], created_by="admin-1")
    cached = await registry.resolve_role(session, "acme", "technician")
    assert cached.base_permissions == frozenset({"read"})

    updated = await registry.update_custom_role(
        session,
        "acme",
        "technician",
        updated_by="admin-1",
        base_permissions=["read", "delete"],
        description="Handles site visits",
    )
    assert updated.description == "Handles site visits"
    fresh = await registry.resolve_role(session, "acme", "technician")
    assert fresh.base_permissions == frozenset({"read", "delete"})
    assert get_authz_cache().stats.invalidations >= 1

    await drain_pending_events()
    assert audit_sink.actions()[-1] == "CUSTOM_ROLE_UPDATED"
    assert audit_sink.events[-1].metadata["changed_fields"] == ["base_permissions", "description"]


@pytest.mark.asyncio
async def test_builtin_roles_cannot_be_modified(session) -> None:
    await seed_company(session, "acme")
    with pytest.raises(ReservedRoleName):
        await registry.update_custom_role(session, "acme", "viewer", updated_by="admin-1", description="x")
    with pytest.raises(ReservedRoleName):
        await registry.delete_custom_role(session, "acme", "analyst", deleted_by="admin-1")
    with pytest.raises(RoleNotFound):
        await registry.update_custom_role(session, "acme", "ghost", updated_by="admin-1")


@pytest.mark.asyncio
async def test_delete_blocked_while_users_hold_role(session) -> None:
    await seed_company(session, "acme")
    await registry.create_custom_role(session, "acme", "technician", None, created_by="admin-1")
    await seed_user(session, company_id="acme", role="technician")
    with pytest.raises(RoleInUse):
        await registry.delete_custom_role(session, "acme", "technician", deleted_by="admin-1")


@pytest.mark.asyncio
async def test_deleted_users_do_not_block_role_deletion(session) -> None:
    await seed_company(session, "acme")
    await registry.create_custom_role(session, "acme", "technician", None, created_by="admin-1")
    await seed_user(session, company_id="acme", role="technician", deleted=True)
    await registry.delete_custom_role(session, "acme", "technician", deleted_by="admin-1")
    assert await registry.resolve_role(session, "acme", "technician") is None


@pytest.mark.asyncio
async def test_recreating_a_deleted_role_revives_it_without_old_pages(session) -> None:
    # The soft-deleted row is reused and its page matrix starts from default allow.
    await seed_company(session, "acme")
    first_id = await registry.create_custom_role(session, "acme", "technician", None, created_by="admin-1")
    role = await registry.require_role(session, "acme", "technician")
    await matrix.set_role_pages(session, role, ["dashboard"], company_id="acme", created_by="admin-1")
    await registry.delete_custom_role(session, "acme", "technician", deleted_by="admin-1")

    second_id = await registry.create_custom_role(session, "acme", "technician", ["write"], created_by="admin-2")
    assert second_id == first_id
    revived = await registry.require_role(session, "acme", "technician")
    assert revived.base_permissions == frozenset({"write"})
    entries = await matrix.describe_role_pages(session, revived, company_id="acme")
    assert all(entry.allowed and not entry.configured for entry in entries)
