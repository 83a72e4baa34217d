from __future__ import annotations

from tenantgate.domain.pages import PAGE_AUDIT_LOGS, PAGE_REPORTS, PAGE_USER_MANAGEMENT
from tenantgate.domain.roles import ADMIN_RANK, ROLE_MASTER_ADMIN
from tenantgate.services.authz.endpoints import (
    EndpointRule,
    canonical_path,
    find_rule,
    match_pattern,
)


def test_exact_pattern_matches_only_same_path() -> None:
    # Exact patterns match the path and nothing below it.
    assert match_pattern("/api/users", "/api/users") == {}
    assert match_pattern("/api/users", "/api/users/") == {}
    assert match_pattern("/api/users", "/api/users/u1") is None
    assert match_pattern("/api/users", "/api/user") is None


def test_suffix_wildcard_requires_at_least_one_segment() -> None:
    # A trailing /* covers descendants but not the bare prefix.
    assert match_pattern("/api/audit/*", "/api/audit/events") == {}
    assert match_pattern("/api/audit/*", "/api/audit/events/e1/details") == {}
    assert match_pattern("/api/audit/*", "/api/audit") is None


def test_segment_wildcard_and_named_params() -> None:
    # * and {name} each consume exactly one segment; names are captured.
    assert match_pattern("/api/users/*/permissions", "/api/users/u1/permissions") == {}
    assert match_pattern("/api/users/*/permissions", "/api/users/u1/x/permissions") is None
    assert match_pattern("/api/companies/{company_id}/available-pages", "/api/companies/acme/available-pages") == {
        "company_id": "acme"
    }


def test_query_string_is_ignored() -> None:
    assert match_pattern("/api/users", "/api/users?limit=10") == {}


def test_canonical_path_maps_versioned_and_legacy_routes() -> None:
    # Versioned and legacy routes resolve into the /api rule namespace.
    assert canonical_path("/v1/company/roles") == "/api/company/roles"
    assert canonical_path("/company/roles") == "/api/company/roles"
    assert canonical_path("/api/company/roles") == "/api/company/roles"
    assert canonical_path("/v1/api/users") == "/api/users"


def test_default_table_resolves_user_management_capabilities() -> None:
    # Listing users needs the page; granting permissions also needs admin rank.
    listing = find_rule("/api/users", "GET")
    assert listing is not None
    assert listing.rule.page_key == PAGE_USER_MANAGEMENT
    assert listing.rule.min_rank is None

    grants = find_rule("/api/users/u1/permissions", "POST")
    assert grants is not None
    assert grants.rule.min_rank == ADMIN_RANK
    assert grants.rule.administrative is True

    nested = find_rule("/api/users/u1/permissions/p1", "DELETE")
    assert nested is not None
    assert nested.rule.permission == "manage_permissions"


def test_methods_are_part_of_the_match() -> None:
    # POST /api/users has no rule, so it stays unknown.
    assert find_rule("/api/users", "POST") is None
    assert find_rule("/api/users/u1", "PATCH") is not None
    assert find_rule("/api/users/u1", "GET") is None
    assert find_rule("/api/audit", "HEAD") is not None


def test_role_listing_and_creation_differ_by_method() -> None:
    listing = find_rule("/api/company/roles", "GET")
    creation = find_rule("/api/company/roles", "POST")
    assert listing is not None and creation is not None
    assert listing.rule.min_rank is None
    assert creation.rule.min_rank == ADMIN_RANK


def test_master_admin_rules_capture_target_company() -> None:
    match = find_rule("/v1/companies/globex/available-pages", "PUT")
    assert match is not None
    assert match.rule.exact_role == ROLE_MASTER_ADMIN
    assert match.target_company_id == "globex"

    companies = find_rule("/api/companies", "GET")
    assert companies is not None
    assert companies.target_company_id is None


def test_page_rules_cover_prefix_and_descendants() -> None:
    assert find_rule("/api/reports", "GET").rule.page_key == PAGE_REPORTS
    assert find_rule("/api/reports/monthly/export", "POST").rule.permission == "export_reports"
    assert find_rule("/api/audit/events", "GET").rule.page_key == PAGE_AUDIT_LOGS


def test_first_matching_rule_wins() -> None:
    # Order in the table decides between overlapping rules.
    rules = [
        EndpointRule(pattern="/api/things/special", page_key="settings"),
        EndpointRule(pattern="/api/things/*", page_key="dashboard"),
    ]
    assert find_rule("/api/things/special", "GET", rules).rule.page_key == "settings"
    assert find_rule("/api/things/other", "GET", rules).rule.page_key == "dashboard"


def test_unknown_paths_have_no_rule() -> None:
    assert find_rule("/api/billing", "GET") is None
    assert find_rule("/api/company", "GET") is None
