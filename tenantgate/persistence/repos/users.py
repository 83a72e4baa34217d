from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tenantgate.domain.models import Company, User
from tenantgate.persistence.guards import company_predicate


async def get_user(session: AsyncSession, *, company_id: str, user_id: str) -> User | None:
    # Never resolve users across the company boundary.
    result = await session.execute(
        select(User).where(
            company_predicate(User, company_id),
            User.id == user_id,
            User.deleted_at.is_(None),
        )
    )
    return result.scalar_one_or_none()


async def get_user_any_company(session: AsyncSession, *, user_id: str) -> User | None:
    # Reserved for master_admin flows that operate across tenants.
    result = await session.execute(select(User).where(User.id == user_id, User.deleted_at.is_(None)))
    return result.scalar_one_or_none()


async def get_company(session: AsyncSession, *, company_id: str) -> Company | None:
    return await session.get(Company, company_id)


async def list_companies(session: AsyncSession, *, include_inactive: bool = False) -> list[Company]:
    stmt = select(Company)
    if not include_inactive:
        stmt = stmt.where(Company.is_active.is_(True))
    result = await session.execute(stmt.order_by(Company.name.asc()))
    return list(result.scalars().all())
