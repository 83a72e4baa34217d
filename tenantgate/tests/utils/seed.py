from __future__ import annotations

from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy.ext.asyncio import AsyncSession

from tenantgate.domain.decisions import Principal
from tenantgate.domain.models import Company, User, UserPermissionOverride
from tenantgate.domain.roles import ROLE_MASTER_ADMIN
from tenantgate.persistence.db import SessionLocal

SYSTEM_COMPANY_ID = "system"


async def seed_company(session: AsyncSession, company_id: str, *, name: str | None = None) -> Company:
    company = Company(id=company_id, name=name or company_id.title(), is_active=True)
    session.add(company)
    await session.commit()
    return company


async def seed_user(
    session: AsyncSession,
    *,
    company_id: str,
    role: str,
    user_id: str | None = None,
    deleted: bool = False,
) -> User:
    user = User(
        id=user_id or f"u-{uuid4().hex[:12]}",
        company_id=company_id,
        email=None,
        role=role,
        is_active=True,
        deleted_at=datetime.now(timezone.utc) if deleted else None,
    )
    session.add(user)
    await session.commit()
    return user


async def seed_override(
    session: AsyncSession,
    *,
    user: User,
    permission: str,
    resource: str | None = None,
    granted_at: datetime | None = None,
    expires_at: datetime | None = None,
    is_active: bool = True,
) -> UserPermissionOverride:
    # Insert directly so tests can place grants in the past.
    override = UserPermissionOverride(
        id=uuid4().hex,
        user_id=user.id,
        company_id=user.company_id,
        permission=permission,
        resource=resource,
        granted_by=None,
        granted_at=granted_at or datetime.now(timezone.utc),
        expires_at=expires_at,
        is_active=is_active,
    )
    session.add(override)
    await session.commit()
    return override


def principal_for(user: User, *, session_id: str | None = None) -> Principal:
    return Principal(
        user_id=user.id,
        company_id=user.company_id,
        role=user.role,
        session_id=session_id,
    )


def master_admin_principal(user_id: str = "root") -> Principal:
    return Principal(user_id=user_id, company_id=SYSTEM_COMPANY_ID, role=ROLE_MASTER_ADMIN)


async def seed_tenant(company_id: str, roles: tuple[str, ...]) -> dict[str, User]:
    # Seed a company plus one user per role in a short-lived session; keyed by role.
    async with SessionLocal() as session:
        await seed_company(session, company_id)
        users = {}
        for role in roles:
            users[role] = await seed_user(session, company_id=company_id, role=role)
        return users


def dev_headers(user: User | None = None, **overrides: str) -> dict[str, str]:
    # Headers understood by the dev-bypass principal resolver.
    headers: dict[str, str] = {}
    if user is not None:
        headers = {"X-User-Id": user.id, "X-Company-Id": user.company_id, "X-Role": user.role}
    headers.update({f"X-{key.replace('_', '-').title()}": value for key, value in overrides.items()})
    return headers
