from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tenantgate.domain.models import CustomRoleRecord, User
from tenantgate.persistence.guards import company_predicate, require_company_id


async def get_custom_role(
    session: AsyncSession,
    *,
    company_id: str,
    role_name: str,
    include_inactive: bool = False,
) -> CustomRoleRecord | None:
    # Resolve custom roles strictly inside the company boundary.
    stmt = select(CustomRoleRecord).where(
        company_predicate(CustomRoleRecord, company_id),
        CustomRoleRecord.role_name == role_name,
    )
    if not include_inactive:
        stmt = stmt.where(CustomRoleRecord.is_active.is_(True))
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def list_custom_roles(session: AsyncSession, *, company_id: str) -> list[CustomRoleRecord]:
    result = await session.execute(
        select(CustomRoleRecord)
        .where(
            company_predicate(CustomRoleRecord, company_id),
            CustomRoleRecord.is_active.is_(True),
        )
        .order_by(CustomRoleRecord.role_name.asc())
    )
    return list(result.scalars().all())


async def count_active_users_with_role(
    session: AsyncSession,
    *,
    company_id: str,
    role_name: str,
) -> int:
    # Only active, non-deleted users block a role deletion.
    require_company_id(company_id)
    result = await session.execute(
        select(func.count(User.id)).where(
            User.company_id == company_id,
            User.role == role_name,
            User.is_active.is_(True),
            User.deleted_at.is_(None),
        )
    )
    return int(result.scalar_one() or 0)
