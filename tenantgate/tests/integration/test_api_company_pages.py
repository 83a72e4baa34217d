from __future__ import annotations

from httpx import ASGITransport, AsyncClient
import pytest

from tenantgate.apps.api.main import create_app
from tenantgate.tests.utils.seed import dev_headers, seed_tenant


def _client() -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=create_app()), base_url="http://test")


def _master_admin() -> dict[str, str]:
    return dev_headers(user_id="root", role="master_admin")


@pytest.mark.asyncio
async def test_master_admin_lists_companies(dev_bypass) -> None:
    users = await seed_tenant("acme", ("admin",))
    await seed_tenant("globex", ())
    async with _client() as client:
        listed = await client.get("/v1/companies", headers=_master_admin())
        forbidden = await client.get("/v1/companies", headers=dev_headers(users["admin"]))
    assert [item["id"] for item in listed.json()["data"]["items"]] == ["acme", "globex"]
    assert forbidden.status_code == 403
    assert forbidden.json()["error"]["code"] == "INSUFFICIENT_ROLE"


@pytest.mark.asyncio
async def test_disabling_pages_vetoes_company_users(dev_bypass) -> None:
    users = await seed_tenant("acme", ("admin", "analyst"))
    async with _client() as client:
        updated = await client.put(
            "/v1/companies/acme/available-pages",
            json={"enabled_pages": ["dashboard", "analytics"]},
            headers=_master_admin(),
        )
        own = await client.get("/v1/company/available-pages", headers=dev_headers(users["analyst"]))
        reports = await client.post(
            "/v1/authz/check", json={"path": "/api/reports"}, headers=dev_headers(users["analyst"])
        )
        audit = await client.post(
            "/v1/authz/check", json={"path": "/api/audit"}, headers=dev_headers(users["admin"])
        )

    assert updated.status_code == 200
    enabled = {item["page_key"] for item in updated.json()["data"]["items"] if item["enabled"]}
    assert enabled == {"dashboard", "analytics"}
    assert {item["page_key"]: item["enabled"] for item in own.json()["data"]["items"]}["reports"] is False
    assert reports.json()["data"]["reason"] == "PAGE_DISABLED"
    assert audit.json()["data"]["reason"] == "ADMIN_FLOOR"


@pytest.mark.asyncio
async def test_company_admin_cannot_edit_other_company_pages(dev_bypass) -> None:
    users = await seed_tenant("acme", ("admin",))
    await seed_tenant("globex", ())
    async with _client() as client:
        foreign = await client.put(
            "/v1/companies/globex/available-pages",
            json={"enabled_pages": []},
            headers=dev_headers(users["admin"]),
        )
        own = await client.get("/v1/companies/acme/available-pages", headers=dev_headers(users["admin"]))
    assert foreign.status_code == 403
    assert foreign.json()["error"]["code"] == "COMPANY_MISMATCH"
    assert own.status_code == 403
    assert own.json()["error"]["code"] == "INSUFFICIENT_ROLE"


@pytest.mark.asyncio
async def test_company_pages_errors(dev_bypass) -> None:
    await seed_tenant("acme", ())
    async with _client() as client:
        missing = await client.get("/v1/companies/nowhere/available-pages", headers=_master_admin())
        unknown = await client.put(
            "/v1/companies/acme/available-pages",
            json={"enabled_pages": ["billing"]},
            headers=_master_admin(),
        )
        legacy = await client.get("/companies/nowhere/available-pages", headers=_master_admin())
    assert missing.status_code == 404
    assert missing.json()["error"]["code"] == "COMPANY_NOT_FOUND"
    assert unknown.status_code == 400
    assert unknown.json()["error"]["code"] == "PAGE_UNKNOWN"
    assert legacy.json()["detail"]["code"] == "COMPANY_NOT_FOUND"


@pytest.mark.asyncio
async def test_dev_bypass_requires_company_for_non_master_roles(dev_bypass) -> None:
    async with _client() as client:
        response = await client.get("/v1/company/available-pages", headers=dev_headers(user_id="u1", role="admin"))
    assert response.status_code == 401
    assert response.json()["error"]["code"] == "AUTHENTICATION_REQUIRED"
