from __future__ import annotations

from dataclasses import dataclass, field

from tenantgate.domain.pages import (
    PAGE_ANALYTICS,
    PAGE_AUDIT_LOGS,
    PAGE_DASHBOARD,
    PAGE_REPORTS,
    PAGE_SETTINGS,
    PAGE_USER_MANAGEMENT,
)
from tenantgate.domain.roles import ADMIN_RANK, ROLE_MASTER_ADMIN


READ_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})
ANY_METHOD: frozenset[str] = frozenset()

_API_PREFIX = "/api"
_VERSION_PREFIX = "/v1"


@dataclass(frozen=True)
class EndpointRule:
    pattern: str
    # Empty means every method.
    methods: frozenset[str] = ANY_METHOD
    page_key: str | None = None
    # Override permission that grants this capability besides page_access on page_key.
    permission: str | None = None
    min_rank: int | None = None
    # Hard gate: only this exact built-in role passes.
    exact_role: str | None = None
    # Administer operations stay open to master_admin across tenants.
    administrative: bool = False
    # Path parameter naming the company a request targets.
    company_param: str | None = None

    def allows_method(self, method: str) -> bool:
        if not self.methods:
            return True
        resolved = method.upper()
        if resolved == "HEAD":
            resolved = "GET"
        return resolved in self.methods

    @property
    def label(self) -> str:
        methods = ",".join(sorted(self.methods)) if self.methods else "*"
        return f"{methods} {self.pattern}"

    @property
    def authenticated_only(self) -> bool:
        return self.page_key is None and self.min_rank is None and self.exact_role is None


@dataclass(frozen=True)
class RuleMatch:
    rule: EndpointRule
    params: dict[str, str] = field(default_factory=dict)

    @property
    def target_company_id(self) -> str | None:
        if self.rule.company_param is None:
            return None
        return self.params.get(self.rule.company_param)


def _segments(path: str) -> list[str]:
    return [segment for segment in path.split("/") if segment]


def match_pattern(pattern: str, path: str) -> dict[str, str] | None:
    """Match ``path`` against ``pattern`` and return captured parameters.

    ``*`` and ``{name}`` each match exactly one segment; ``{name}`` captures
    it. A trailing ``/*`` matches one or more remaining segments. Returns
    ``None`` when the path does not match.
    """
    pattern_parts = _segments(pattern)
    path_parts = _segments(path.split("?", 1)[0])
    suffix_wildcard = pattern.endswith("/*")
    if suffix_wildcard:
        pattern_parts = pattern_parts[:-1]
        if len(path_parts) <= len(pattern_parts):
            return None
        path_parts = path_parts[: len(pattern_parts)]
    elif len(path_parts) != len(pattern_parts):
        return None

    params: dict[str, str] = {}
    for expected, actual in zip(pattern_parts, path_parts):
        if expected == "*":
            continue
        if expected.startswith("{") and expected.endswith("}"):
            params[expected[1:-1]] = actual
            continue
        if expected != actual:
            return None
    return params


def canonical_path(path: str) -> str:
    # Versioned and legacy HTTP routes share the /api rule namespace.
    resolved = "/" + "/".join(_segments(path.split("?", 1)[0]))
    if resolved == _VERSION_PREFIX or resolved.startswith(_VERSION_PREFIX + "/"):
        resolved = resolved[len(_VERSION_PREFIX):] or "/"
    if resolved == _API_PREFIX or resolved.startswith(_API_PREFIX + "/"):
        return resolved
    return _API_PREFIX + (resolved if resolved != "/" else "")


def _page_rules(page_key: str, *, permission: str | None = None) -> list[EndpointRule]:
    base = f"/api/{page_key}"
    return [
        EndpointRule(pattern=base, page_key=page_key, permission=permission),
        EndpointRule(pattern=f"{base}/*", page_key=page_key, permission=permission),
    ]


DEFAULT_RULES: tuple[EndpointRule, ...] = (
    EndpointRule(
        pattern="/api/users/{user_id}/permissions",
        page_key=PAGE_USER_MANAGEMENT,
        permission="manage_permissions",
        min_rank=ADMIN_RANK,
        administrative=True,
    ),
    EndpointRule(
        pattern="/api/users/{user_id}/permissions/*",
        page_key=PAGE_USER_MANAGEMENT,
        permission="manage_permissions",
        min_rank=ADMIN_RANK,
        administrative=True,
    ),
    EndpointRule(
        pattern="/api/users",
        methods=frozenset({"GET"}),
        page_key=PAGE_USER_MANAGEMENT,
        permission="manage_users",
    ),
    EndpointRule(
        pattern="/api/users/{user_id}",
        methods=frozenset({"PATCH", "DELETE"}),
        page_key=PAGE_USER_MANAGEMENT,
        permission="manage_users",
    ),
    EndpointRule(
        pattern="/api/company/roles",
        methods=frozenset({"GET"}),
        page_key=PAGE_USER_MANAGEMENT,
    ),
    EndpointRule(
        pattern="/api/company/roles",
        methods=frozenset({"POST"}),
        page_key=PAGE_USER_MANAGEMENT,
        permission="manage_roles",
        min_rank=ADMIN_RANK,
        administrative=True,
    ),
    EndpointRule(
        pattern="/api/company/roles/*",
        page_key=PAGE_USER_MANAGEMENT,
        permission="manage_roles",
        min_rank=ADMIN_RANK,
        administrative=True,
    ),
    EndpointRule(
        pattern="/api/audit",
        methods=frozenset({"GET"}),
        page_key=PAGE_AUDIT_LOGS,
        permission="view_audit_logs",
    ),
    EndpointRule(
        pattern="/api/audit/*",
        methods=frozenset({"GET"}),
        page_key=PAGE_AUDIT_LOGS,
        permission="view_audit_logs",
    ),
    EndpointRule(
        pattern="/api/companies",
        methods=frozenset({"GET"}),
        exact_role=ROLE_MASTER_ADMIN,
        administrative=True,
    ),
    EndpointRule(
        pattern="/api/companies/{company_id}/available-pages",
        exact_role=ROLE_MASTER_ADMIN,
        administrative=True,
        company_param="company_id",
    ),
    EndpointRule(pattern="/api/company/available-pages", methods=frozenset({"GET"})),
    EndpointRule(pattern="/api/user/permissions", methods=frozenset({"GET"})),
    EndpointRule(pattern="/api/authz/check", methods=frozenset({"POST"})),
    *_page_rules(PAGE_DASHBOARD),
    *_page_rules(PAGE_ANALYTICS, permission="view_data"),
    *_page_rules(PAGE_REPORTS, permission="export_reports"),
    *_page_rules(PAGE_SETTINGS),
)


def find_rule(
    path: str,
    method: str,
    rules: tuple[EndpointRule, ...] | list[EndpointRule] = DEFAULT_RULES,
) -> RuleMatch | None:
    # First matching rule wins; rule order is part of the policy.
    resolved = canonical_path(path)
    for rule in rules:
        if not rule.allows_method(method):
            continue
        params = match_pattern(rule.pattern, resolved)
        if params is not None:
            return RuleMatch(rule=rule, params=params)
    return None


def is_read_method(method: str) -> bool:
    return method.upper() in READ_METHODS
