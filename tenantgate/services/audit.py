from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
import asyncio
import json
import logging
from typing import Any, Protocol

from tenantgate.core.config import get_settings
from tenantgate.domain.decisions import REASON_COMPANY_MISMATCH
from tenantgate.services.telemetry import increment_counter


logger = logging.getLogger(__name__)

SEVERITY_CRITICAL = "CRITICAL"
SEVERITY_ERROR = "ERROR"
SEVERITY_WARNING = "WARNING"
SEVERITY_INFO = "INFO"

AUDIT_EMIT_FAILED_COUNTER = "audit.emit_failed"

_SENSITIVE_KEY_PATTERNS = ["api_key", "authorization", "token", "secret", "password", "totp", "code_hash"]
_REDACTED_VALUE = "[REDACTED]"


def _is_sensitive_key(key: str) -> bool:
    # Match sensitive key fragments case-insensitively to enforce redaction policy.
    lowered = key.lower()
    return any(pattern in lowered for pattern in _SENSITIVE_KEY_PATTERNS)


def sanitize_metadata(value: Any) -> Any:
    # Recursively scrub sensitive fields while preserving safe structure.
    if isinstance(value, dict):
        sanitized: dict[str, Any] = {}
        for raw_key, raw_value in value.items():
            key = str(raw_key)
            if _is_sensitive_key(key):
                sanitized[key] = _REDACTED_VALUE
            else:
                sanitized[key] = sanitize_metadata(raw_value)
        return sanitized
    if isinstance(value, (list, tuple, set, frozenset)):
        items = sorted(value) if isinstance(value, (set, frozenset)) else value
        return [sanitize_metadata(item) for item in items]
    return value


@dataclass(frozen=True)
class AuditEvent:
    timestamp: datetime
    user_id: str | None
    company_id: str | None
    action: str
    resource_type: str
    allowed: bool
    reason: str
    severity: str
    resource_id: str | None = None
    phi_accessed: bool = False
    session_id: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["timestamp"] = self.timestamp.isoformat()
        return payload


def severity_for(*, allowed: bool, reason: str, phi_classified: bool) -> tuple[str, bool]:
    """Map a decision outcome to ``(severity, phi_accessed)``.

    Cross-tenant attempts are CRITICAL, every other deny is WARNING, and
    allows are INFO. Only an allowed request on a PHI-classified page sets
    ``phi_accessed``.
    """
    if not allowed:
        if reason == REASON_COMPANY_MISMATCH:
            return SEVERITY_CRITICAL, False
        return SEVERITY_WARNING, False
    return SEVERITY_INFO, bool(phi_classified)


class AuditSink(Protocol):
    async def emit(self, event: AuditEvent) -> None: ...


class LoggingAuditSink:
    # Write one JSON line per event; log shippers forward the dedicated logger.
    def __init__(self, logger_name: str | None = None) -> None:
        self._logger = logging.getLogger(logger_name or get_settings().audit_logger_name)

    async def emit(self, event: AuditEvent) -> None:
        level = logging.getLevelName(event.severity)
        if not isinstance(level, int):
            level = logging.INFO
        self._logger.log(level, json.dumps(event.as_dict(), sort_keys=True, default=str))


class NullAuditSink:
    async def emit(self, event: AuditEvent) -> None:
        return None


_sink: AuditSink | None = None
_pending: set[asyncio.Task] = set()


def _build_default_sink() -> AuditSink:
    settings = get_settings()
    if settings.audit_sink == "none":
        return NullAuditSink()
    return LoggingAuditSink(settings.audit_logger_name)


def get_audit_sink() -> AuditSink:
    global _sink
    if _sink is None:
        _sink = _build_default_sink()
    return _sink


def set_audit_sink(sink: AuditSink | None) -> AuditSink | None:
    # Swap the process sink; passing None restores the configured default lazily.
    global _sink
    previous = _sink
    _sink = sink
    return previous


async def _deliver(sink: AuditSink, event: AuditEvent) -> None:
    try:
        await sink.emit(event)
    except Exception as exc:  # noqa: BLE001 - audit delivery is best-effort by contract
        increment_counter(AUDIT_EMIT_FAILED_COUNTER)
        logger.error(
            "audit_emit_failed action=%s company_id=%s severity=%s",
            event.action,
            event.company_id,
            event.severity,
            exc_info=exc,
        )


def emit_event(event: AuditEvent, *, sink: AuditSink | None = None) -> asyncio.Task | None:
    # Schedule delivery without awaiting it so sink latency never reaches the caller.
    resolved_sink = sink or get_audit_sink()
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        increment_counter(AUDIT_EMIT_FAILED_COUNTER)
        logger.error("audit_emit_failed action=%s reason=no_running_loop", event.action)
        return None
    task = loop.create_task(_deliver(resolved_sink, event))
    _pending.add(task)
    task.add_done_callback(_pending.discard)
    return task


async def drain_pending_events() -> None:
    # Wait for scheduled deliveries; used on shutdown and in tests.
    if _pending:
        await asyncio.gather(*list(_pending), return_exceptions=True)


def record_admin_event(
    *,
    actor_id: str,
    company_id: str | None,
    action: str,
    resource_type: str,
    resource_id: str | None,
    metadata: dict[str, Any] | None = None,
    session_id: str | None = None,
    sink: AuditSink | None = None,
) -> asyncio.Task | None:
    # Emit successful administrative mutations alongside authorization decisions.
    event = AuditEvent(
        timestamp=datetime.now(timezone.utc),
        user_id=actor_id,
        company_id=company_id,
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        allowed=True,
        reason="OK",
        severity=SEVERITY_INFO,
        session_id=session_id,
        metadata=sanitize_metadata(metadata or {}),
    )
    return emit_event(event, sink=sink)
