from __future__ import annotations

from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy.ext.asyncio import AsyncSession

from tenantgate.core.config import get_settings
from tenantgate.core.errors import InvalidRestriction, RestrictionNotFound
from tenantgate.domain.models import RoleVisibilityRestriction
from tenantgate.persistence.repos import visibility as visibility_repo
from tenantgate.services.audit import record_admin_event


_VALUE_MAX_LENGTH = 255


def allowed_restriction_types() -> frozenset[str]:
    raw = get_settings().visibility_restriction_types
    return frozenset(item.strip().lower() for item in raw.split(",") if item.strip())


def _validate(restriction_type: str, restriction_value: str) -> tuple[str, str]:
    normalized_type = (restriction_type or "").strip().lower()
    allowed = allowed_restriction_types()
    if normalized_type not in allowed:
        raise InvalidRestriction(
            f"Invalid restriction type: {restriction_type}. Valid: {', '.join(sorted(allowed))}"
        )
    value = (restriction_value or "").strip()
    if not value or len(value) > _VALUE_MAX_LENGTH:
        raise InvalidRestriction("restriction_value is required")
    return normalized_type, value


async def list_restrictions(
    session: AsyncSession,
    company_id: str,
    role_name: str,
    *,
    restriction_type: str | None = None,
) -> list[RoleVisibilityRestriction]:
    return await visibility_repo.list_active_restrictions(
        session,
        company_id=company_id,
        role_name=role_name,
        restriction_type=restriction_type.strip().lower() if restriction_type else None,
    )


async def visibility_filter_for(
    session: AsyncSession,
    company_id: str,
    role_name: str,
) -> dict[str, frozenset[str]]:
    """Return the allowlist per restriction type for a role.

    A type missing from the result is unrestricted; an empty dict means the
    role sees every record.
    """
    rows = await list_restrictions(session, company_id, role_name)
    grouped: dict[str, set[str]] = {}
    for row in rows:
        grouped.setdefault(row.restriction_type, set()).add(row.restriction_value)
    return {key: frozenset(values) for key, values in grouped.items()}


async def grant_restriction(
    session: AsyncSession,
    company_id: str,
    role_name: str,
    restriction_type: str,
    restriction_value: str,
    *,
    granted_by: str,
    notes: str | None = None,
) -> RoleVisibilityRestriction:
    normalized_type, value = _validate(restriction_type, restriction_value)
    existing = await visibility_repo.find_active_restriction(
        session,
        company_id=company_id,
        role_name=role_name,
        restriction_type=normalized_type,
        restriction_value=value,
    )
    if existing is not None:
        # Granting the same value twice keeps the original row.
        return existing

    restriction = RoleVisibilityRestriction(
        id=uuid4().hex,
        company_id=company_id,
        role_name=role_name,
        restriction_type=normalized_type,
        restriction_value=value,
        granted_by=granted_by,
        granted_at=datetime.now(timezone.utc),
        is_active=True,
        notes=notes,
    )
    session.add(restriction)
    await session.commit()

    record_admin_event(
        actor_id=granted_by,
        company_id=company_id,
        action="VISIBILITY_RESTRICTION_GRANTED",
        resource_type="ROLE",
        resource_id=role_name,
        metadata={
            "restriction_id": restriction.id,
            "restriction_type": normalized_type,
            "restriction_value": value,
        },
    )
    return restriction


async def revoke_restriction(
    session: AsyncSession,
    company_id: str,
    role_name: str,
    restriction_id: str,
    *,
    revoked_by: str,
) -> RoleVisibilityRestriction:
    restriction = await visibility_repo.get_restriction(
        session,
        company_id=company_id,
        role_name=role_name,
        restriction_id=restriction_id,
    )
    if restriction is None or not restriction.is_active:
        raise RestrictionNotFound("Restriction not found")
    restriction.is_active = False
    restriction.revoked_by = revoked_by
    restriction.revoked_at = datetime.now(timezone.utc)
    await session.commit()

    record_admin_event(
        actor_id=revoked_by,
        company_id=company_id,
        action="VISIBILITY_RESTRICTION_REVOKED",
        resource_type="ROLE",
        resource_id=role_name,
        metadata={
            "restriction_id": restriction.id,
            "restriction_type": restriction.restriction_type,
            "restriction_value": restriction.restriction_value,
        },
    )
    return restriction
