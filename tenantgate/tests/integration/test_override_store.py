from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from tenantgate.core.errors import (
    DuplicateOverride,
    GrantNotPermitted,
    InvalidExpiry,
    OverrideNotFound,
    SelfGrantForbidden,
    UserNotFound,
)
from tenantgate.services.audit import drain_pending_events
from tenantgate.services.authz import overrides
from tenantgate.tests.utils.seed import (
    master_admin_principal,
    principal_for,
    seed_company,
    seed_override,
    seed_user,
)


async def _tenant(session, company_id: str = "acme"):
    await seed_company(session, company_id)
    admin = await seed_user(session, company_id=company_id, role="admin")
    analyst = await seed_user(session, company_id=company_id, role="analyst")
    return admin, analyst


@pytest.mark.asyncio
async def test_admin_grants_override_to_company_user(session, audit_sink) -> None:
    admin, analyst = await _tenant(session)
    override = await overrides.grant_override(
        session,
        principal_for(admin, session_id="s-1"),
        user_id=analyst.id,
        permission="Export Reports",
    )
    assert override.permission == "export_reports"
    assert override.granted_by == admin.id
    grants = await overrides.active_overrides_for(session, analyst.id, company_id="acme")
    assert grants == frozenset({("export_reports", None)})

    await drain_pending_events()
    assert audit_sink.actions() == ["USER_PERMISSION_GRANTED"]
    event = audit_sink.events[0]
    assert event.session_id == "s-1"
    assert event.metadata["target_user_id"] == analyst.id


@pytest.mark.asyncio
async def test_self_grant_is_forbidden(session) -> None:
    admin, _ = await _tenant(session)
    with pytest.raises(SelfGrantForbidden):
        await overrides.grant_override(session, principal_for(admin), user_id=admin.id, permission="view_data")


@pytest.mark.asyncio
async def test_non_admin_cannot_grant(session) -> None:
    admin, analyst = await _tenant(session)
    with pytest.raises(GrantNotPermitted):
        await overrides.grant_override(session, principal_for(analyst), user_id=admin.id, permission="view_data")


@pytest.mark.asyncio
async def test_admin_cannot_reach_other_company_users(session) -> None:
    # Target lookup is scoped to the granter's company.
    admin, _ = await _tenant(session, "acme")
    _, globex_analyst = await _tenant(session, "globex")
    with pytest.raises(UserNotFound):
        await overrides.grant_override(
            session, principal_for(admin), user_id=globex_analyst.id, permission="view_data"
        )


@pytest.mark.asyncio
async def test_master_admin_grants_across_companies(session) -> None:
    _, globex_analyst = await _tenant(session, "globex")
    override = await overrides.grant_override(
        session, master_admin_principal(), user_id=globex_analyst.id, permission="view_data"
    )
    assert override.company_id == "globex"


@pytest.mark.asyncio
async def test_expiry_must_be_in_the_future(session) -> None:
    admin, analyst = await _tenant(session)
    with pytest.raises(InvalidExpiry):
        await overrides.grant_override(
            session,
            principal_for(admin),
            user_id=analyst.id,
            permission="view_data",
            expires_at=datetime.now(timezone.utc) - timedelta(minutes=1),
        )


@pytest.mark.asyncio
async def test_duplicate_live_grants_are_rejected(session) -> None:
    admin, analyst = await _tenant(session)
    granter = principal_for(admin)
    await overrides.grant_override(session, granter, user_id=analyst.id, permission="view_data")
    with pytest.raises(DuplicateOverride):
        await overrides.grant_override(session, granter, user_id=analyst.id, permission="view_data")
    # A resource-scoped grant is a different grant.
    await overrides.grant_override(session, granter, user_id=analyst.id, permission="view_data", resource="loc-1")
    grants = await overrides.active_overrides_for(session, analyst.id, company_id="acme")
    assert grants == frozenset({("view_data", None), ("view_data", "loc-1")})


@pytest.mark.asyncio
async def test_expired_override_is_ignored(session) -> None:
    # Granted 2024-01-01 and expiring 2024-02-01: live mid-January, gone in March.
    _, analyst = await _tenant(session)
    await seed_override(
        session,
        user=analyst,
        permission="export_reports",
        granted_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
        expires_at=datetime(2024, 2, 1, tzinfo=timezone.utc),
    )
    january = datetime(2024, 1, 15, tzinfo=timezone.utc)
    march = datetime(2024, 3, 1, tzinfo=timezone.utc)
    assert await overrides.active_overrides_for(session, analyst.id, company_id="acme", now=january) == frozenset(
        {("export_reports", None)}
    )
    assert await overrides.active_overrides_for(session, analyst.id, company_id="acme", now=march) == frozenset()


@pytest.mark.asyncio
async def test_overrides_are_company_scoped(session) -> None:
    _, analyst = await _tenant(session)
    await seed_override(session, user=analyst, permission="view_data")
    assert await overrides.active_overrides_for(session, analyst.id, company_id="globex") == frozenset()


@pytest.mark.asyncio
async def test_revoke_deactivates_immediately(session, audit_sink) -> None:
    admin, analyst = await _tenant(session)
    granter = principal_for(admin)
    override = await overrides.grant_override(session, granter, user_id=analyst.id, permission="view_data")
    await overrides.revoke_override(session, granter, user_id=analyst.id, override_id=override.id)
    assert await overrides.active_overrides_for(session, analyst.id, company_id="acme") == frozenset()
    with pytest.raises(OverrideNotFound):
        await overrides.revoke_override(session, granter, user_id=analyst.id, override_id=override.id)

    history = await overrides.list_user_overrides(session, granter, analyst.id, include_inactive=True)
    assert [row.is_active for row in history] == [False]
    assert await overrides.list_user_overrides(session, granter, analyst.id) == []

    await drain_pending_events()
    assert audit_sink.actions() == ["USER_PERMISSION_GRANTED", "USER_PERMISSION_REVOKED"]


@pytest.mark.asyncio
async def test_extend_only_moves_expiry_later(session, audit_sink) -> None:
    admin, analyst = await _tenant(session)
    granter = principal_for(admin)
    now = datetime.now(timezone.utc)
    override = await overrides.grant_override(
        session,
        granter,
        user_id=analyst.id,
        permission="view_data",
        expires_at=now + timedelta(days=1),
    )
    extended = await overrides.extend_override(
        session,
        granter,
        user_id=analyst.id,
        override_id=override.id,
        expires_at=now + timedelta(days=7),
    )
    assert overrides.as_utc(extended.expires_at) == now + timedelta(days=7)
    with pytest.raises(InvalidExpiry):
        await overrides.extend_override(
            session,
            granter,
            user_id=analyst.id,
            override_id=override.id,
            expires_at=now + timedelta(days=2),
        )

    await drain_pending_events()
    assert audit_sink.actions()[-1] == "USER_PERMISSION_EXTENDED"


@pytest.mark.asyncio
async def test_extend_rejects_permanent_and_expired_grants(session) -> None:
    admin, analyst = await _tenant(session)
    granter = principal_for(admin)
    permanent = await overrides.grant_override(session, granter, user_id=analyst.id, permission="view_data")
    expired = await seed_override(
        session,
        user=analyst,
        permission="export_reports",
        expires_at=datetime.now(timezone.utc) - timedelta(hours=1),
    )
    later = datetime.now(timezone.utc) + timedelta(days=30)
    with pytest.raises(InvalidExpiry):
        await overrides.extend_override(
            session, granter, user_id=analyst.id, override_id=permanent.id, expires_at=later
        )
    with pytest.raises(OverrideNotFound):
        await overrides.extend_override(
            session, granter, user_id=analyst.id, override_id=expired.id, expires_at=later
        )


@pytest.mark.asyncio
async def test_sweep_deactivates_only_expired_rows(session) -> None:
    _, analyst = await _tenant(session)
    now = datetime.now(timezone.utc)
    await seed_override(session, user=analyst, permission="view_data", expires_at=now - timedelta(days=1))
    await seed_override(session, user=analyst, permission="export_reports", expires_at=now + timedelta(days=1))
    await seed_override(session, user=analyst, permission="page_access", resource="reports")

    assert await overrides.deactivate_expired_overrides(session, company_id="acme", now=now) == 1
    assert await overrides.deactivate_expired_overrides(session, now=now) == 0
    grants = await overrides.active_overrides_for(session, analyst.id, company_id="acme", now=now)
    assert grants == frozenset({("export_reports", None), ("page_access", "reports")})
