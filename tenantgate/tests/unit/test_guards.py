from __future__ import annotations

import pytest

from tenantgate.core.config import get_settings
from tenantgate.domain.models import Company, UserPermissionOverride
from tenantgate.persistence.guards import CompanyPredicateError, company_predicate


def test_predicate_filters_on_company_column() -> None:
    clause = company_predicate(UserPermissionOverride, "acme")
    assert clause.left.key == "company_id"
    assert clause.right.value == "acme"


@pytest.mark.parametrize("company_id", ["", "   ", None])
def test_blank_company_ids_are_rejected(company_id) -> None:
    with pytest.raises(CompanyPredicateError):
        company_predicate(UserPermissionOverride, company_id)


def test_blank_ids_pass_when_enforcement_is_off(monkeypatch) -> None:
    monkeypatch.setenv("AUTHZ_REQUIRE_COMPANY_PREDICATE", "false")
    get_settings.cache_clear()
    assert company_predicate(UserPermissionOverride, "") is not None


def test_unscoped_models_always_raise(monkeypatch) -> None:
    # The companies table is keyed by id and has no company_id column.
    monkeypatch.setenv("AUTHZ_REQUIRE_COMPANY_PREDICATE", "false")
    get_settings.cache_clear()
    with pytest.raises(CompanyPredicateError, match="Company is not scoped by company"):
        company_predicate(Company, "acme")
