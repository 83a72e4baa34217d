from __future__ import annotations

from datetime import datetime

from sqlalchemy import and_, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from tenantgate.domain.models import UserPermissionOverride
from tenantgate.persistence.guards import company_predicate


def _live_predicate(now: datetime) -> object:
    # Expired rows are treated as absent by every reader.
    return and_(
        UserPermissionOverride.is_active.is_(True),
        or_(
            UserPermissionOverride.expires_at.is_(None),
            UserPermissionOverride.expires_at > now,
        ),
    )


async def list_active_overrides(
    session: AsyncSession,
    *,
    company_id: str,
    user_id: str,
    now: datetime,
) -> list[UserPermissionOverride]:
    result = await session.execute(
        select(UserPermissionOverride)
        .where(
            company_predicate(UserPermissionOverride, company_id),
            UserPermissionOverride.user_id == user_id,
            _live_predicate(now),
        )
        .order_by(UserPermissionOverride.granted_at.asc(), UserPermissionOverride.id.asc())
    )
    return list(result.scalars().all())


async def list_overrides(
    session: AsyncSession,
    *,
    company_id: str,
    user_id: str,
    include_inactive: bool = False,
    now: datetime | None = None,
) -> list[UserPermissionOverride]:
    # Admin listings can include revoked and expired rows for history views.
    stmt = select(UserPermissionOverride).where(
        company_predicate(UserPermissionOverride, company_id),
        UserPermissionOverride.user_id == user_id,
    )
    if not include_inactive and now is not None:
        stmt = stmt.where(_live_predicate(now))
    result = await session.execute(
        stmt.order_by(UserPermissionOverride.granted_at.desc(), UserPermissionOverride.id.asc())
    )
    return list(result.scalars().all())


async def find_live_duplicate(
    session: AsyncSession,
    *,
    company_id: str,
    user_id: str,
    permission: str,
    resource: str | None,
    now: datetime,
) -> UserPermissionOverride | None:
    resource_clause = (
        UserPermissionOverride.resource.is_(None)
        if resource is None
        else UserPermissionOverride.resource == resource
    )
    result = await session.execute(
        select(UserPermissionOverride).where(
            company_predicate(UserPermissionOverride, company_id),
            UserPermissionOverride.user_id == user_id,
            UserPermissionOverride.permission == permission,
            resource_clause,
            _live_predicate(now),
        )
    )
    return result.scalars().first()


async def get_override(
    session: AsyncSession,
    *,
    company_id: str,
    user_id: str,
    override_id: str,
) -> UserPermissionOverride | None:
    result = await session.execute(
        select(UserPermissionOverride).where(
            company_predicate(UserPermissionOverride, company_id),
            UserPermissionOverride.user_id == user_id,
            UserPermissionOverride.id == override_id,
        )
    )
    return result.scalar_one_or_none()


async def deactivate_expired(
    session: AsyncSession,
    *,
    now: datetime,
    company_id: str | None = None,
) -> int:
    # Maintenance sweep; readers already ignore expired rows, this only tidies storage.
    stmt = update(UserPermissionOverride).where(
        UserPermissionOverride.is_active.is_(True),
        UserPermissionOverride.expires_at.is_not(None),
        UserPermissionOverride.expires_at <= now,
    )
    if company_id is not None:
        stmt = stmt.where(company_predicate(UserPermissionOverride, company_id))
    result = await session.execute(stmt.values(is_active=False).execution_options(synchronize_session=False))
    return int(result.rowcount or 0)
