from __future__ import annotations

from datetime import datetime, timezone
import asyncio
import logging
import time

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from tenantgate.core.config import get_settings
from tenantgate.core.errors import (
    AuthenticationRequired,
    AuthorizationDenied,
    CompanyMismatch,
    InsufficientRole,
    OverrideStoreUnavailable,
    PageDisabled,
    UnknownEndpoint,
)
from tenantgate.domain.decisions import (
    REASON_ADMIN_FLOOR,
    REASON_AUTHENTICATED,
    REASON_AUTHENTICATION_REQUIRED,
    REASON_COMPANY_MISMATCH,
    REASON_INSUFFICIENT_ROLE,
    REASON_OVERRIDE,
    REASON_OVERRIDE_STORE_UNAVAILABLE,
    REASON_PAGE_DISABLED,
    REASON_ROLE,
    REASON_UNKNOWN_ENDPOINT,
    AccessRequest,
    Decision,
    Principal,
)
from tenantgate.domain.pages import PAGE_CATALOG, get_page
from tenantgate.domain.roles import is_admin_tier, is_master_admin, rank_allows
from tenantgate.services.audit import AuditEvent, AuditSink, emit_event, sanitize_metadata, severity_for
from tenantgate.services.authz.availability import is_page_enabled_for_company
from tenantgate.services.authz.cache import AuthzCache
from tenantgate.services.authz.endpoints import (
    DEFAULT_RULES,
    EndpointRule,
    find_rule,
    is_read_method,
)
from tenantgate.services.authz.matrix import pages_for
from tenantgate.services.authz.overrides import OverrideGrant, active_overrides_for, grants_capability
from tenantgate.services.authz.registry import resolve_role
from tenantgate.services.telemetry import record_decision


logger = logging.getLogger(__name__)


def _deny(reason: str, rule: EndpointRule | None = None, *, phi_classified: bool = False) -> Decision:
    return Decision(
        allowed=False,
        reason=reason,
        matched_rule=rule.label if rule is not None else None,
        page_key=rule.page_key if rule is not None else None,
        permission=rule.permission if rule is not None else None,
        phi_classified=phi_classified,
    )


def _allow(reason: str, rule: EndpointRule, *, phi_classified: bool = False) -> Decision:
    return Decision(
        allowed=True,
        reason=reason,
        matched_rule=rule.label,
        page_key=rule.page_key,
        permission=rule.permission,
        phi_classified=phi_classified,
    )


async def _load_overrides(
    session: AsyncSession,
    principal: Principal,
    *,
    now: datetime,
) -> frozenset[OverrideGrant] | None:
    # None means the store failed or timed out; callers must fail closed.
    timeout_s = get_settings().authz_override_timeout_ms / 1000
    try:
        return await asyncio.wait_for(
            active_overrides_for(session, principal.user_id, company_id=principal.company_id, now=now),
            timeout=timeout_s,
        )
    except (asyncio.TimeoutError, SQLAlchemyError, OSError) as exc:
        logger.warning(
            "authz_override_store_unavailable user_id=%s company_id=%s error=%s",
            principal.user_id,
            principal.company_id,
            type(exc).__name__,
        )
        return None


async def _evaluate(
    session: AsyncSession,
    principal: Principal | None,
    request: AccessRequest,
    *,
    now: datetime,
    cache: AuthzCache | None,
    rules: tuple[EndpointRule, ...] | list[EndpointRule],
) -> Decision:
    if principal is None:
        return _deny(REASON_AUTHENTICATION_REQUIRED)

    match = find_rule(request.path, request.method, rules)
    rule = match.rule if match is not None else None

    target_company_id = request.target_company_id or (match.target_company_id if match else None)
    if target_company_id and target_company_id != principal.company_id:
        if not is_master_admin(principal.role):
            return _deny(REASON_COMPANY_MISMATCH, rule)
        # master_admin crosses tenants only to read or administer.
        if rule is not None and not (is_read_method(request.method) or rule.administrative):
            return _deny(REASON_COMPANY_MISMATCH, rule)

    if rule is None:
        logger.error(
            "authz_unknown_endpoint path=%s method=%s user_id=%s company_id=%s",
            request.path,
            request.method,
            principal.user_id,
            principal.company_id,
        )
        return _deny(REASON_UNKNOWN_ENDPOINT)

    if rule.exact_role is not None:
        if principal.role != rule.exact_role:
            return _deny(REASON_INSUFFICIENT_ROLE, rule)
        if rule.page_key is None:
            return _allow(REASON_ROLE, rule)
    if rule.authenticated_only:
        return _allow(REASON_AUTHENTICATED, rule)

    page = get_page(rule.page_key) if rule.page_key else None
    phi_classified = bool(page and page.phi_classified)
    role = await resolve_role(session, principal.company_id, principal.role, cache=cache)

    if page is not None and page.always_admin and role is not None and is_admin_tier(role):
        return _allow(REASON_ADMIN_FLOOR, rule, phi_classified=phi_classified)

    if page is not None:
        enabled = await is_page_enabled_for_company(session, principal.company_id, page.key, cache=cache)
        if not enabled:
            return _deny(REASON_PAGE_DISABLED, rule, phi_classified=phi_classified)

    if role is not None and rank_allows(role, rule.min_rank):
        if page is None:
            return _allow(REASON_ROLE, rule, phi_classified=phi_classified)
        allowed_pages = await pages_for(session, role, company_id=principal.company_id, cache=cache)
        if page.key in allowed_pages:
            return _allow(REASON_ROLE, rule, phi_classified=phi_classified)

    grants = await _load_overrides(session, principal, now=now)
    if grants is None:
        return _deny(REASON_OVERRIDE_STORE_UNAVAILABLE, rule, phi_classified=phi_classified)

    # page_access only stands in for the page itself, never for a rank requirement.
    override_page = page.key if page is not None and rule.min_rank is None else None
    if grants_capability(grants, permission=rule.permission, resource=request.resource_id, page_key=override_page):
        return _allow(REASON_OVERRIDE, rule, phi_classified=phi_classified)

    return _deny(REASON_INSUFFICIENT_ROLE, rule, phi_classified=phi_classified)


def _audit_event(principal: Principal | None, request: AccessRequest, decision: Decision) -> AuditEvent:
    severity, phi_accessed = severity_for(
        allowed=decision.allowed,
        reason=decision.reason,
        phi_classified=decision.phi_classified,
    )
    return AuditEvent(
        timestamp=datetime.now(timezone.utc),
        user_id=principal.user_id if principal else None,
        company_id=principal.company_id if principal else None,
        action="ACCESS_ALLOWED" if decision.allowed else "PERMISSION_DENIED",
        resource_type=decision.page_key or "ENDPOINT",
        resource_id=request.resource_id,
        allowed=decision.allowed,
        reason=decision.reason,
        severity=severity,
        phi_accessed=phi_accessed,
        session_id=principal.session_id if principal else None,
        metadata=sanitize_metadata(
            {
                "path": request.path,
                "method": request.method.upper(),
                "matched_rule": decision.matched_rule,
                "permission": decision.permission,
                "target_company_id": request.target_company_id,
            }
        ),
    )


async def authorize(
    session: AsyncSession,
    principal: Principal | None,
    request: AccessRequest,
    *,
    now: datetime | None = None,
    cache: AuthzCache | None = None,
    sink: AuditSink | None = None,
    rules: tuple[EndpointRule, ...] | list[EndpointRule] | None = None,
) -> Decision:
    """Decide whether ``principal`` may perform ``request``.

    Steps run in a fixed order and the first one that decides wins: missing
    principal, tenant check, endpoint rule match, admin floor, company veto,
    role pages, user overrides, then the default deny. Every decision is
    recorded in telemetry and scheduled for the audit sink without being
    awaited, so sink failures never change the answer.
    """
    started = time.monotonic()
    decision = await _evaluate(
        session,
        principal,
        request,
        now=now or datetime.now(timezone.utc),
        cache=cache,
        rules=rules if rules is not None else DEFAULT_RULES,
    )
    latency_ms = (time.monotonic() - started) * 1000
    record_decision(allowed=decision.allowed, reason=decision.reason, latency_ms=latency_ms)
    if decision.denied:
        logger.info(
            "authz_denied reason=%s path=%s method=%s user_id=%s",
            decision.reason,
            request.path,
            request.method,
            principal.user_id if principal else None,
        )
    emit_event(_audit_event(principal, request, decision), sink=sink)
    return decision


async def visible_pages_for(
    session: AsyncSession,
    principal: Principal,
    *,
    now: datetime | None = None,
    cache: AuthzCache | None = None,
) -> frozenset[str]:
    # Navigation view of the page steps: admin floor, company veto, role pages, page_access overrides.
    role = await resolve_role(session, principal.company_id, principal.role, cache=cache)
    role_pages = (
        await pages_for(session, role, company_id=principal.company_id, cache=cache)
        if role is not None
        else frozenset()
    )
    # Without the override store only role pages count.
    grants = await _load_overrides(session, principal, now=now or datetime.now(timezone.utc)) or frozenset()
    visible: set[str] = set()
    for page in PAGE_CATALOG:
        if page.always_admin and role is not None and is_admin_tier(role):
            visible.add(page.key)
            continue
        if not await is_page_enabled_for_company(session, principal.company_id, page.key, cache=cache):
            continue
        if page.key in role_pages or grants_capability(
            grants, permission=None, resource=None, page_key=page.key
        ):
            visible.add(page.key)
    return frozenset(visible)


_DENY_ERRORS: dict[str, type[AuthorizationDenied]] = {
    REASON_COMPANY_MISMATCH: CompanyMismatch,
    REASON_PAGE_DISABLED: PageDisabled,
    REASON_INSUFFICIENT_ROLE: InsufficientRole,
    REASON_UNKNOWN_ENDPOINT: UnknownEndpoint,
}

_DENY_MESSAGES = {
    REASON_COMPANY_MISMATCH: "Access denied: resource belongs to another company",
    REASON_PAGE_DISABLED: "This page is disabled for your company",
    REASON_INSUFFICIENT_ROLE: "Insufficient permissions",
    REASON_UNKNOWN_ENDPOINT: "No authorization rule matches this endpoint",
}


def raise_for_decision(decision: Decision) -> None:
    # Translate a deny into the error taxonomy; allows pass through.
    if decision.allowed:
        return
    if decision.reason == REASON_AUTHENTICATION_REQUIRED:
        raise AuthenticationRequired("Authentication required")
    if decision.reason == REASON_OVERRIDE_STORE_UNAVAILABLE:
        raise OverrideStoreUnavailable("Permission store unavailable; access denied")
    error_cls = _DENY_ERRORS.get(decision.reason, InsufficientRole)
    raise error_cls(_DENY_MESSAGES.get(decision.reason, "Access denied"), reason=decision.reason)
