from __future__ import annotations

from dataclasses import dataclass

from tenantgate.core.errors import UnknownPage


PAGE_DASHBOARD = "dashboard"
PAGE_ANALYTICS = "analytics"
PAGE_REPORTS = "reports"
PAGE_SETTINGS = "settings"
PAGE_USER_MANAGEMENT = "user_management"
PAGE_AUDIT_LOGS = "audit_logs"


@dataclass(frozen=True)
class PageDefinition:
    key: str
    label: str
    # admin and master_admin reach these pages regardless of matrix or company veto.
    always_admin: bool = False
    # Allowed access to these pages is audited with phi_accessed=true.
    phi_classified: bool = False


PAGE_CATALOG: tuple[PageDefinition, ...] = (
    PageDefinition(key=PAGE_DASHBOARD, label="Dashboard"),
    PageDefinition(key=PAGE_ANALYTICS, label="Analytics", phi_classified=True),
    PageDefinition(key=PAGE_REPORTS, label="Reports", phi_classified=True),
    PageDefinition(key=PAGE_SETTINGS, label="Settings"),
    PageDefinition(key=PAGE_USER_MANAGEMENT, label="User Management", always_admin=True),
    PageDefinition(key=PAGE_AUDIT_LOGS, label="Audit Logs", always_admin=True),
)

PAGES_BY_KEY: dict[str, PageDefinition] = {page.key: page for page in PAGE_CATALOG}
PAGE_KEYS: frozenset[str] = frozenset(PAGES_BY_KEY)
ALWAYS_ADMIN_PAGES: frozenset[str] = frozenset(page.key for page in PAGE_CATALOG if page.always_admin)


def get_page(key: str) -> PageDefinition | None:
    return PAGES_BY_KEY.get(key)


def validate_page_keys(keys: list[str] | set[str] | frozenset[str]) -> frozenset[str]:
    # Reject unknown keys before any write so full-replace updates stay atomic.
    requested = frozenset(keys)
    unknown = sorted(requested - PAGE_KEYS)
    if unknown:
        raise UnknownPage(
            f"Invalid page keys: {', '.join(unknown)}. Valid keys: {', '.join(sorted(PAGE_KEYS))}"
        )
    return requested
