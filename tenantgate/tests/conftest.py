from __future__ import annotations

import os

# Bind the engine to an in-memory database before any tenantgate module builds it.
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ.setdefault("AUDIT_SINK", "none")

import pytest

from tenantgate.core.config import get_settings
from tenantgate.domain.models import Base
from tenantgate.persistence.db import SessionLocal, engine
from tenantgate.services.audit import drain_pending_events, set_audit_sink
from tenantgate.services.authz.cache import reset_authz_cache
from tenantgate.services.telemetry import reset_telemetry
from tenantgate.tests.utils.audit import RecordingAuditSink


@pytest.fixture(autouse=True)
def reset_process_state() -> None:
    # Settings, cache and counters are process globals; start every test clean.
    get_settings.cache_clear()
    reset_authz_cache()
    reset_telemetry()
    yield
    get_settings.cache_clear()
    reset_authz_cache()


@pytest.fixture(autouse=True)
async def database() -> None:
    # Each test gets a fresh schema; disposing the static pool drops the in-memory database.
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    await drain_pending_events()
    await engine.dispose()


@pytest.fixture(autouse=True)
def audit_sink() -> RecordingAuditSink:
    sink = RecordingAuditSink()
    set_audit_sink(sink)
    yield sink
    set_audit_sink(None)


@pytest.fixture
async def session():
    async with SessionLocal() as db:
        yield db


@pytest.fixture
def dev_bypass(monkeypatch) -> None:
    # API tests identify callers through the dev headers.
    monkeypatch.setenv("AUTH_DEV_BYPASS", "true")
    get_settings.cache_clear()
