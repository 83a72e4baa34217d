from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tenantgate.domain.models import RoleVisibilityRestriction
from tenantgate.persistence.guards import company_predicate


async def list_active_restrictions(
    session: AsyncSession,
    *,
    company_id: str,
    role_name: str,
    restriction_type: str | None = None,
) -> list[RoleVisibilityRestriction]:
    stmt = select(RoleVisibilityRestriction).where(
        company_predicate(RoleVisibilityRestriction, company_id),
        RoleVisibilityRestriction.role_name == role_name,
        RoleVisibilityRestriction.is_active.is_(True),
    )
    if restriction_type is not None:
        stmt = stmt.where(RoleVisibilityRestriction.restriction_type == restriction_type)
    result = await session.execute(
        stmt.order_by(
            RoleVisibilityRestriction.restriction_type.asc(),
            RoleVisibilityRestriction.restriction_value.asc(),
        )
    )
    return list(result.scalars().all())


async def find_active_restriction(
    session: AsyncSession,
    *,
    company_id: str,
    role_name: str,
    restriction_type: str,
    restriction_value: str,
) -> RoleVisibilityRestriction | None:
    result = await session.execute(
        select(RoleVisibilityRestriction).where(
            company_predicate(RoleVisibilityRestriction, company_id),
            RoleVisibilityRestriction.role_name == role_name,
            RoleVisibilityRestriction.restriction_type == restriction_type,
            RoleVisibilityRestriction.restriction_value == restriction_value,
            RoleVisibilityRestriction.is_active.is_(True),
        )
    )
    return result.scalars().first()


async def get_restriction(
    session: AsyncSession,
    *,
    company_id: str,
    role_name: str,
    restriction_id: str,
) -> RoleVisibilityRestriction | None:
    result = await session.execute(
        select(RoleVisibilityRestriction).where(
            company_predicate(RoleVisibilityRestriction, company_id),
            RoleVisibilityRestriction.role_name == role_name,
            RoleVisibilityRestriction.id == restriction_id,
        )
    )
    return result.scalar_one_or_none()
