from __future__ import annotations

import argparse
import asyncio

from tenantgate.core.logging import configure_logging
from tenantgate.persistence.db import SessionLocal
from tenantgate.services.authz.overrides import deactivate_expired_overrides


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Flip expired permission overrides to inactive")
    parser.add_argument("--company-id", default=None, help="Limit the sweep to one company")
    return parser


async def sweep(company_id: str | None) -> int:
    async with SessionLocal() as session:
        deactivated = await deactivate_expired_overrides(session, company_id=company_id)
    print(f"deactivated_overrides={deactivated}")
    return 0


def main() -> int:
    configure_logging()
    args = _build_parser().parse_args()
    return asyncio.run(sweep(args.company_id))


if __name__ == "__main__":
    raise SystemExit(main())
