from __future__ import annotations

import pytest

from tenantgate.core.errors import UnknownPage
from tenantgate.domain.pages import PAGE_KEYS
from tenantgate.services.audit import drain_pending_events
from tenantgate.services.authz import availability
from tenantgate.tests.utils.seed import seed_company


@pytest.mark.asyncio
async def test_pages_are_enabled_until_disabled(session) -> None:
    # Opt-out model: no rows means every page is on.
    await seed_company(session, "acme")
    assert await availability.enabled_pages_for_company(session, "acme") == PAGE_KEYS
    assert await availability.is_page_enabled_for_company(session, "acme", "reports") is True


@pytest.mark.asyncio
async def test_set_company_pages_disables_the_rest(session, audit_sink) -> None:
    await seed_company(session, "acme")
    await seed_company(session, "globex")
    assert await availability.is_page_enabled_for_company(session, "acme", "reports") is True

    result = await availability.set_company_pages(
        session, "acme", ["dashboard", "settings"], created_by="root"
    )
    assert result["reports"] is False
    # The cached answer is dropped by the write.
    assert await availability.is_page_enabled_for_company(session, "acme", "reports") is False
    assert await availability.enabled_pages_for_company(session, "acme") == frozenset({"dashboard", "settings"})
    assert await availability.enabled_pages_for_company(session, "globex") == PAGE_KEYS

    await drain_pending_events()
    assert audit_sink.actions() == ["COMPANY_AVAILABLE_PAGES_UPDATED"]
    assert "reports" in audit_sink.events[0].metadata["disabled_pages"]


@pytest.mark.asyncio
async def test_unknown_keys_are_rejected(session) -> None:
    await seed_company(session, "acme")
    with pytest.raises(UnknownPage):
        await availability.set_company_pages(session, "acme", ["dashboard", "billing"], created_by="root")
    assert await availability.enabled_pages_for_company(session, "acme") == PAGE_KEYS


@pytest.mark.asyncio
async def test_repeated_updates_keep_one_row_per_page(session) -> None:
    await seed_company(session, "acme")
    await availability.set_company_pages(session, "acme", ["dashboard"], created_by="root")
    await availability.set_company_pages(session, "acme", ["dashboard", "reports"], created_by="root")
    pages = await availability.list_company_pages(session, "acme")
    assert set(pages) == PAGE_KEYS
    assert {key for key, enabled in pages.items() if enabled} == {"dashboard", "reports"}
