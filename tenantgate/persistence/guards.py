from __future__ import annotations

from dataclasses import dataclass

from tenantgate.core.config import get_settings


@dataclass(frozen=True)
class CompanyPredicateError(RuntimeError):
    message: str


def require_company_id(company_id: str | None) -> None:
    # Blank or whitespace ids would silently match nothing, so they count as missing.
    if not get_settings().authz_require_company_predicate:
        return
    if not company_id or not company_id.strip():
        raise CompanyPredicateError("Company predicate required but company_id is missing")


def company_predicate(model, company_id: str) -> object:
    """Return ``model.company_id == company_id`` for a company-scoped table.

    Every repository query over roles, page rows, availability, overrides
    and users builds its company filter here. A model without a
    ``company_id`` column is a programming error and always raises, even
    when the missing-id check is switched off.
    """
    column = getattr(model, "company_id", None)
    if column is None:
        raise CompanyPredicateError(f"{getattr(model, '__name__', model)!s} is not scoped by company")
    require_company_id(company_id)
    return column == company_id
