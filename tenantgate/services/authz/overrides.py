from __future__ import annotations

from datetime import datetime, timezone
import logging
import re
from uuid import uuid4

from sqlalchemy.ext.asyncio import AsyncSession

from tenantgate.core.errors import (
    DuplicateOverride,
    GrantNotPermitted,
    InvalidExpiry,
    InvalidPermission,
    OverrideNotFound,
    SelfGrantForbidden,
    UserNotFound,
)
from tenantgate.domain.decisions import Principal
from tenantgate.domain.models import User, UserPermissionOverride
from tenantgate.domain.roles import ADMIN_RANK, ROLE_ORDER, is_master_admin
from tenantgate.persistence.repos import overrides as overrides_repo
from tenantgate.persistence.repos import users as users_repo
from tenantgate.services.audit import record_admin_event


logger = logging.getLogger(__name__)

PERMISSION_PAGE_ACCESS = "page_access"

_PERMISSION_MAX_LENGTH = 100
_WHITESPACE = re.compile(r"\s+")

OverrideGrant = tuple[str, str | None]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; every stored timestamp is UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def normalize_permission(raw: str) -> str:
    normalized = _WHITESPACE.sub("_", (raw or "").strip().lower())
    if not normalized or len(normalized) > _PERMISSION_MAX_LENGTH:
        raise InvalidPermission("permission is required")
    return normalized


def is_live(override: UserPermissionOverride, now: datetime) -> bool:
    if not override.is_active:
        return False
    return override.expires_at is None or as_utc(override.expires_at) > as_utc(now)


async def active_overrides_for(
    session: AsyncSession,
    user_id: str,
    *,
    company_id: str,
    now: datetime | None = None,
) -> frozenset[OverrideGrant]:
    """Return the live ``(permission, resource)`` grants of a user.

    Reads storage on every call; expired or revoked rows never appear.
    """
    resolved_now = as_utc(now or utc_now())
    rows = await overrides_repo.list_active_overrides(
        session,
        company_id=company_id,
        user_id=user_id,
        now=resolved_now,
    )
    # Re-check expiry in Python so a clock-skewed database cannot revive a row.
    return frozenset((row.permission, row.resource) for row in rows if is_live(row, resolved_now))


def grants_capability(
    grants: frozenset[OverrideGrant],
    *,
    permission: str | None,
    resource: str | None,
    page_key: str | None,
) -> bool:
    # A grant matches its permission (resource empty or equal) or page_access on the page key.
    for granted_permission, granted_resource in grants:
        if permission is not None and granted_permission == permission:
            if granted_resource is None or granted_resource == resource:
                return True
        if (
            page_key is not None
            and granted_permission == PERMISSION_PAGE_ACCESS
            and granted_resource == page_key
        ):
            return True
    return False


def can_manage_permissions(actor: Principal, target_company_id: str) -> bool:
    # manage_permissions is held by admin tiers, inside their own company unless master_admin.
    if ROLE_ORDER.get(actor.role, -1) < ADMIN_RANK:
        return False
    return is_master_admin(actor.role) or actor.company_id == target_company_id


async def _resolve_target_user(session: AsyncSession, actor: Principal, user_id: str) -> User:
    if is_master_admin(actor.role):
        target = await users_repo.get_user_any_company(session, user_id=user_id)
    else:
        target = await users_repo.get_user(session, company_id=actor.company_id, user_id=user_id)
    if target is None:
        raise UserNotFound("User not found")
    if not can_manage_permissions(actor, target.company_id):
        raise GrantNotPermitted("manage_permissions is required on the target company")
    return target


async def list_user_overrides(
    session: AsyncSession,
    actor: Principal,
    user_id: str,
    *,
    include_inactive: bool = False,
    now: datetime | None = None,
) -> list[UserPermissionOverride]:
    target = await _resolve_target_user(session, actor, user_id)
    return await overrides_repo.list_overrides(
        session,
        company_id=target.company_id,
        user_id=target.id,
        include_inactive=include_inactive,
        now=as_utc(now or utc_now()),
    )


async def grant_override(
    session: AsyncSession,
    granter: Principal,
    *,
    user_id: str,
    permission: str,
    resource: str | None = None,
    expires_at: datetime | None = None,
    now: datetime | None = None,
) -> UserPermissionOverride:
    if ROLE_ORDER.get(granter.role, -1) < ADMIN_RANK:
        raise GrantNotPermitted("manage_permissions is required to grant overrides")
    if granter.user_id == user_id:
        raise SelfGrantForbidden("Users cannot grant permissions to themselves")
    target = await _resolve_target_user(session, granter, user_id)

    resolved_now = as_utc(now or utc_now())
    normalized = normalize_permission(permission)
    resolved_resource = resource.strip() if resource and resource.strip() else None
    resolved_expiry = as_utc(expires_at) if expires_at is not None else None
    if resolved_expiry is not None and resolved_expiry <= resolved_now:
        raise InvalidExpiry("expires_at must be in the future")

    duplicate = await overrides_repo.find_live_duplicate(
        session,
        company_id=target.company_id,
        user_id=target.id,
        permission=normalized,
        resource=resolved_resource,
        now=resolved_now,
    )
    if duplicate is not None:
        raise DuplicateOverride("User already has this permission")

    override = UserPermissionOverride(
        id=uuid4().hex,
        user_id=target.id,
        company_id=target.company_id,
        permission=normalized,
        resource=resolved_resource,
        granted_by=granter.user_id,
        granted_at=resolved_now,
        expires_at=resolved_expiry,
        is_active=True,
    )
    session.add(override)
    await session.commit()

    record_admin_event(
        actor_id=granter.user_id,
        company_id=target.company_id,
        action="USER_PERMISSION_GRANTED",
        resource_type="USER_PERMISSION",
        resource_id=override.id,
        session_id=granter.session_id,
        metadata={
            "target_user_id": target.id,
            "permission": normalized,
            "resource": resolved_resource,
            "expires_at": resolved_expiry.isoformat() if resolved_expiry else None,
        },
    )
    return override


async def _get_override_for_actor(
    session: AsyncSession,
    actor: Principal,
    user_id: str,
    override_id: str,
) -> UserPermissionOverride:
    target = await _resolve_target_user(session, actor, user_id)
    override = await overrides_repo.get_override(
        session,
        company_id=target.company_id,
        user_id=target.id,
        override_id=override_id,
    )
    if override is None or not override.is_active:
        raise OverrideNotFound("Permission not found")
    return override


async def revoke_override(
    session: AsyncSession,
    actor: Principal,
    *,
    user_id: str,
    override_id: str,
) -> UserPermissionOverride:
    override = await _get_override_for_actor(session, actor, user_id, override_id)
    override.is_active = False
    await session.commit()

    record_admin_event(
        actor_id=actor.user_id,
        company_id=override.company_id,
        action="USER_PERMISSION_REVOKED",
        resource_type="USER_PERMISSION",
        resource_id=override.id,
        session_id=actor.session_id,
        metadata={"target_user_id": user_id, "permission": override.permission, "resource": override.resource},
    )
    return override


async def extend_override(
    session: AsyncSession,
    actor: Principal,
    *,
    user_id: str,
    override_id: str,
    expires_at: datetime,
    now: datetime | None = None,
) -> UserPermissionOverride:
    """Push an override's expiry later; the only other mutation besides revoke.

    An expired override is dead and cannot be revived by extending it, and a
    non-expiring override cannot be narrowed into an expiring one here.
    """
    resolved_now = as_utc(now or utc_now())
    override = await _get_override_for_actor(session, actor, user_id, override_id)
    new_expiry = as_utc(expires_at)
    if not is_live(override, resolved_now):
        raise OverrideNotFound("Permission not found")
    if override.expires_at is None:
        raise InvalidExpiry("Permission does not expire")
    previous = as_utc(override.expires_at)
    if new_expiry <= previous or new_expiry <= resolved_now:
        raise InvalidExpiry("expires_at must be later than the current expiry")
    override.expires_at = new_expiry
    await session.commit()

    record_admin_event(
        actor_id=actor.user_id,
        company_id=override.company_id,
        action="USER_PERMISSION_EXTENDED",
        resource_type="USER_PERMISSION",
        resource_id=override.id,
        session_id=actor.session_id,
        metadata={
            "target_user_id": user_id,
            "old_values": {"expires_at": previous.isoformat()},
            "new_values": {"expires_at": new_expiry.isoformat()},
        },
    )
    return override


async def deactivate_expired_overrides(
    session: AsyncSession,
    *,
    company_id: str | None = None,
    now: datetime | None = None,
) -> int:
    resolved_now = as_utc(now or utc_now())
    deactivated = await overrides_repo.deactivate_expired(session, now=resolved_now, company_id=company_id)
    await session.commit()
    logger.info(
        "overrides_expired_deactivated count=%s company_id=%s",
        deactivated,
        company_id or "*",
    )
    return deactivated
