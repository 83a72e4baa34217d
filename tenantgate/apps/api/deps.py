from __future__ import annotations

import logging
from typing import AsyncGenerator, get_args

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from tenantgate.core.config import get_settings
from tenantgate.core.errors import AuthenticationRequired
from tenantgate.domain.decisions import AccessRequest, PhiAccessLevel, Principal
from tenantgate.domain.roles import ROLE_MASTER_ADMIN, ROLE_USER
from tenantgate.persistence.db import get_session
from tenantgate.persistence.repos import users as users_repo
from tenantgate.services.authz.engine import authorize, raise_for_decision


logger = logging.getLogger(__name__)

_PHI_LEVELS = frozenset(get_args(PhiAccessLevel))


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    # One AsyncSession per request; context manager ensures close on success/error.
    async with get_session() as session:
        yield session


def _principal_from_dev_headers(request: Request) -> Principal | None:
    # Allow X-User-Id/X-Company-Id/X-Role headers only when explicitly enabled for local dev.
    user_id = request.headers.get("X-User-Id")
    if not user_id:
        return None
    role = (request.headers.get("X-Role") or ROLE_USER).strip().lower()
    company_id = request.headers.get("X-Company-Id")
    if not company_id:
        if role != ROLE_MASTER_ADMIN:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail={
                    "code": "AUTHENTICATION_REQUIRED",
                    "message": "X-Company-Id header is required in dev bypass mode",
                },
            )
        company_id = get_settings().system_company_id
    phi_level = (request.headers.get("X-Phi-Access-Level") or "none").strip().lower()
    if phi_level not in _PHI_LEVELS:
        phi_level = "none"
    return Principal(
        user_id=user_id,
        company_id=company_id,
        role=role,
        phi_access_level=phi_level,
        session_id=request.headers.get("X-Session-Id"),
        is_mobile=request.headers.get("X-Client-Platform", "").lower() == "mobile",
    )


async def get_optional_principal(request: Request) -> Principal | None:
    # The upstream authentication layer stores a validated Principal on request.state.
    principal = getattr(request.state, "principal", None)
    if isinstance(principal, Principal):
        return principal
    if get_settings().auth_dev_bypass:
        return _principal_from_dev_headers(request)
    return None


async def _target_user_company(db: AsyncSession, request: Request) -> str | None:
    # Routes addressing a user act inside that user's company; unknown users fall through to a 404.
    user_id = request.path_params.get("user_id")
    if not user_id:
        return None
    target = await users_repo.get_user_any_company(db, user_id=user_id)
    return target.company_id if target is not None else None


async def require_access(
    request: Request,
    principal: Principal | None = Depends(get_optional_principal),
    db: AsyncSession = Depends(get_db),
) -> Principal:
    """Run the decision engine for the current route and return the principal.

    Every administrative route depends on this, so the endpoint rule table
    is the single place that says who may call what.
    """
    decision = await authorize(
        db,
        principal,
        AccessRequest(
            path=request.url.path,
            method=request.method,
            resource_id=request.path_params.get("permission_id") or request.path_params.get("role_name"),
            target_company_id=await _target_user_company(db, request),
        ),
    )
    raise_for_decision(decision)
    if principal is None:
        raise AuthenticationRequired("Authentication required")
    return principal
