from __future__ import annotations

from typing import Any

from tenantgate.apps.api.response import ErrorEnvelope


def _documented(description: str, *, code: str, message: str) -> dict[str, Any]:
    # Attach an error-envelope example to each documented status.
    return {
        "model": ErrorEnvelope,
        "description": description,
        "content": {
            "application/json": {
                "example": {
                    "error": {"code": code, "message": message},
                    "meta": {"request_id": "req_example", "api_version": "v1"},
                }
            }
        },
    }


DEFAULT_ERROR_RESPONSES: dict[int, dict[str, Any]] = {
    400: _documented("Rejected mutation", code="PAGE_UNKNOWN", message="Invalid page keys: billing"),
    401: _documented("Unauthenticated", code="AUTHENTICATION_REQUIRED", message="Authentication required"),
    403: _documented("Denied", code="INSUFFICIENT_ROLE", message="Insufficient permissions"),
    404: _documented("Not found", code="ROLE_NOT_FOUND", message='Role "auditor" not found'),
    409: _documented(
        "Conflict",
        code="ROLE_IN_USE",
        message='Cannot delete role "auditor": 2 user(s) still assigned to this role',
    ),
    422: _documented("Validation error", code="REQUEST_VALIDATION_ERROR", message="Validation error"),
    500: _documented("Internal server error", code="INTERNAL_ERROR", message="Internal server error"),
}
