from __future__ import annotations

import asyncio
import sys

from sqlalchemy import select

from tenantgate.domain.models import Company, User
from tenantgate.persistence.db import SessionLocal


DEMO_COMPANIES = (
    ("acme", "Acme Health"),
    ("globex", "Globex Clinics"),
)

# (user_id, company_id, role)
DEMO_USERS = (
    ("acme-admin", "acme", "admin"),
    ("acme-analyst", "acme", "analyst"),
    ("acme-viewer", "acme", "viewer"),
    ("globex-admin", "globex", "admin"),
)


async def seed_demo() -> int:
    # Seed two tenants with a spread of built-in roles for local dev-bypass testing.
    async with SessionLocal() as session:
        existing = await session.execute(select(Company.id).where(Company.id == DEMO_COMPANIES[0][0]))
        if existing.scalar_one_or_none() is not None:
            print("Demo companies already seeded; skipping.")
            return 0
        session.add_all(Company(id=company_id, name=name) for company_id, name in DEMO_COMPANIES)
        await session.flush()
        session.add_all(
            User(id=user_id, company_id=company_id, email=f"{user_id}@example.com", role=role)
            for user_id, company_id, role in DEMO_USERS
        )
        await session.commit()
    print(f"Seeded {len(DEMO_COMPANIES)} companies and {len(DEMO_USERS)} users.")
    return 0


def main() -> int:
    try:
        return asyncio.run(seed_demo())
    except Exception as exc:  # noqa: BLE001 - surface seeding failures clearly
        print(f"seed_demo failed: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
