from __future__ import annotations

import argparse
import asyncio
import sys
from datetime import datetime

from tenantgate.core.config import get_settings
from tenantgate.domain.decisions import Principal
from tenantgate.domain.roles import ROLE_MASTER_ADMIN
from tenantgate.persistence.db import SessionLocal
from tenantgate.services.audit import drain_pending_events
from tenantgate.services.authz.overrides import grant_override


def _build_parser() -> argparse.ArgumentParser:
    # Break-glass grants from an operator shell; the actor is recorded as a master_admin.
    parser = argparse.ArgumentParser(description="Grant a permission override to a user")
    parser.add_argument("user_id", help="Target user id")
    parser.add_argument("permission", help="Permission name, e.g. export_reports or page_access")
    parser.add_argument("--resource", default=None, help="Optional resource or page key")
    parser.add_argument(
        "--expires-at",
        default=None,
        type=datetime.fromisoformat,
        help="ISO-8601 expiry; omit for a non-expiring grant",
    )
    parser.add_argument("--granted-by", required=True, help="Operator user id recorded as granter")
    return parser


async def _grant(args: argparse.Namespace) -> int:
    actor = Principal(
        user_id=args.granted_by,
        company_id=get_settings().system_company_id,
        role=ROLE_MASTER_ADMIN,
    )
    async with SessionLocal() as session:
        override = await grant_override(
            session,
            actor,
            user_id=args.user_id,
            permission=args.permission,
            resource=args.resource,
            expires_at=args.expires_at,
        )
    await drain_pending_events()
    print(f"Granted {override.permission} to {override.user_id} id={override.id}")
    return 0


def main() -> int:
    parser = _build_parser()
    args = parser.parse_args()
    try:
        return asyncio.run(_grant(args))
    except Exception as exc:  # noqa: BLE001 - surface grant failures clearly
        print(f"grant_override failed: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
