from __future__ import annotations

from datetime import datetime, timezone
import json
import logging

import pytest

from tenantgate.domain.decisions import AccessRequest, Decision, Principal
from tenantgate.services.audit import (
    AUDIT_EMIT_FAILED_COUNTER,
    SEVERITY_CRITICAL,
    SEVERITY_INFO,
    SEVERITY_WARNING,
    AuditEvent,
    LoggingAuditSink,
    drain_pending_events,
    emit_event,
    record_admin_event,
    sanitize_metadata,
    severity_for,
)
from tenantgate.services.authz import engine
from tenantgate.services.telemetry import get_counter
from tenantgate.tests.utils.audit import FailingAuditSink, RecordingAuditSink


def _event(**overrides) -> AuditEvent:
    payload = dict(
        timestamp=datetime(2026, 1, 1, tzinfo=timezone.utc),
        user_id="u1",
        company_id="acme",
        action="PERMISSION_DENIED",
        resource_type="reports",
        allowed=False,
        reason="INSUFFICIENT_ROLE",
        severity=SEVERITY_WARNING,
    )
    payload.update(overrides)
    return AuditEvent(**payload)


def test_severity_mapping() -> None:
    # Cross-tenant denies are critical; PHI only flags allowed access.
    assert severity_for(allowed=False, reason="COMPANY_MISMATCH", phi_classified=True) == (
        SEVERITY_CRITICAL,
        False,
    )
    assert severity_for(allowed=False, reason="PAGE_DISABLED", phi_classified=True) == (SEVERITY_WARNING, False)
    assert severity_for(allowed=True, reason="ROLE", phi_classified=True) == (SEVERITY_INFO, True)
    assert severity_for(allowed=True, reason="ROLE", phi_classified=False) == (SEVERITY_INFO, False)


def test_metadata_redacts_sensitive_keys() -> None:
    sanitized = sanitize_metadata(
        {
            "Authorization": "Bearer abc",
            "nested": {"api_key": "k", "path": "/api/reports"},
            "pages": {"reports", "analytics"},
        }
    )
    assert sanitized["Authorization"] == "[REDACTED]"
    assert sanitized["nested"] == {"api_key": "[REDACTED]", "path": "/api/reports"}
    assert sanitized["pages"] == ["analytics", "reports"]


@pytest.mark.asyncio
async def test_failing_sink_never_raises() -> None:
    # Delivery failures are counted and logged, never propagated.
    sink = FailingAuditSink()
    task = emit_event(_event(), sink=sink)
    assert task is not None
    await drain_pending_events()
    assert sink.attempts == 1
    assert get_counter(AUDIT_EMIT_FAILED_COUNTER) == 1


@pytest.mark.asyncio
async def test_admin_events_are_scrubbed(audit_sink: RecordingAuditSink) -> None:
    record_admin_event(
        actor_id="admin-1",
        company_id="acme",
        action="CUSTOM_ROLE_CREATED",
        resource_type="ROLE",
        resource_id="technician",
        metadata={"role_name": "technician", "token": "secret-value"},
    )
    await drain_pending_events()
    assert audit_sink.actions() == ["CUSTOM_ROLE_CREATED"]
    assert audit_sink.events[0].metadata["token"] == "[REDACTED]"
    assert audit_sink.events[0].severity == SEVERITY_INFO


@pytest.mark.asyncio
async def test_logging_sink_writes_json_at_event_severity(caplog) -> None:
    sink = LoggingAuditSink("tenantgate.audit.test")
    with caplog.at_level(logging.INFO, logger="tenantgate.audit.test"):
        await sink.emit(_event(severity=SEVERITY_CRITICAL, reason="COMPANY_MISMATCH"))
    record = caplog.records[-1]
    assert record.levelno == logging.CRITICAL
    payload = json.loads(record.getMessage())
    assert payload["reason"] == "COMPANY_MISMATCH"
    assert payload["timestamp"].startswith("2026-01-01")


def test_emit_without_loop_counts_failure() -> None:
    # Synchronous callers lose the event but still surface the failure.
    assert emit_event(_event(), sink=RecordingAuditSink()) is None
    assert get_counter(AUDIT_EMIT_FAILED_COUNTER) == 1


def test_decision_events_pass_metadata_through_redaction(monkeypatch) -> None:
    scrubbed = []

    def _recording(value):
        scrubbed.append(value)
        return sanitize_metadata(value)

    monkeypatch.setattr(engine, "sanitize_metadata", _recording)
    event = engine._audit_event(
        Principal(user_id="u1", company_id="acme", role="admin"),
        AccessRequest(path="/v1/users/u9/permissions", method="post", target_company_id="globex"),
        Decision(allowed=False, reason="COMPANY_MISMATCH", matched_rule="POST /api/users/{user_id}/permissions"),
    )
    assert len(scrubbed) == 1
    assert event.metadata == {
        "path": "/v1/users/u9/permissions",
        "method": "POST",
        "matched_rule": "POST /api/users/{user_id}/permissions",
        "permission": None,
        "target_company_id": "globex",
    }
    assert event.severity == SEVERITY_CRITICAL
