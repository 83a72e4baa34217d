from __future__ import annotations

import logging
from typing import Any

from fastapi import HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from tenantgate.apps.api.response import error_response, is_versioned_request
from tenantgate.core.errors import (
    AuthenticationRequired,
    AuthorizationDenied,
    DuplicateOverride,
    GrantNotPermitted,
    OverrideNotFound,
    OverrideStoreUnavailable,
    RestrictionNotFound,
    RoleAlreadyExists,
    RoleInUse,
    RoleNotFound,
    SelfGrantForbidden,
    TenantGateError,
    UserNotFound,
)
from tenantgate.persistence.guards import CompanyPredicateError


logger = logging.getLogger(__name__)

_DEFAULT_ERROR_CODES: dict[int, str] = {
    400: "BAD_REQUEST",
    401: "AUTHENTICATION_REQUIRED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    409: "CONFLICT",
    422: "VALIDATION_ERROR",
    500: "INTERNAL_ERROR",
}

# Checked in order so subclasses map before their parents.
_STATUS_BY_ERROR: tuple[tuple[type[TenantGateError], int], ...] = (
    (AuthenticationRequired, 401),
    (AuthorizationDenied, 403),
    (OverrideStoreUnavailable, 403),
    (SelfGrantForbidden, 403),
    (GrantNotPermitted, 403),
    (RoleNotFound, 404),
    (OverrideNotFound, 404),
    (UserNotFound, 404),
    (RestrictionNotFound, 404),
    (RoleAlreadyExists, 409),
    (RoleInUse, 409),
    (DuplicateOverride, 409),
)


def status_for_error(exc: TenantGateError) -> int:
    for error_cls, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_cls):
            return status_code
    # Remaining errors are rejected input.
    return 400


def _default_code(status_code: int) -> str:
    return _DEFAULT_ERROR_CODES.get(status_code, "UNKNOWN_ERROR")


def _split_detail(detail: Any, status_code: int) -> tuple[str, str, dict[str, Any] | None]:
    # Extract code/message/details from HTTPException detail payloads.
    if isinstance(detail, dict):
        code = str(detail.get("code") or _default_code(status_code))
        message = str(detail.get("message") or "Request failed")
        details = {k: v for k, v in detail.items() if k not in {"code", "message"}}
        return code, message, details or None
    if isinstance(detail, str):
        return _default_code(status_code), detail, None
    return _default_code(status_code), "Request failed", None


def _respond(
    request: Request,
    *,
    status_code: int,
    code: str,
    message: str,
    details: dict[str, Any] | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    # Legacy routes keep FastAPI's {"detail": ...} shape with the code inside.
    if not is_versioned_request(request):
        legacy = {"code": code, "message": message}
        if details:
            legacy.update(details)
        return JSONResponse(content={"detail": legacy}, status_code=status_code, headers=headers)
    payload = error_response(request=request, code=code, message=message, details=details)
    return JSONResponse(content=payload, status_code=status_code, headers=headers)


async def tenantgate_exception_handler(request: Request, exc: TenantGateError) -> JSONResponse:
    status_code = status_for_error(exc)
    details = {"reason": exc.reason} if isinstance(exc, AuthorizationDenied) else None
    headers = {"WWW-Authenticate": "Bearer"} if status_code == 401 else None
    return _respond(
        request,
        status_code=status_code,
        code=exc.code,
        message=str(exc),
        details=details,
        headers=headers,
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    code, message, details = _split_detail(exc.detail, exc.status_code)
    return _respond(
        request,
        status_code=exc.status_code,
        code=code,
        message=message,
        details=details,
        headers=exc.headers,
    )


async def starlette_http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    # Routing errors (404/405) raised by Starlette share the same envelope.
    code, message, details = _split_detail(exc.detail, exc.status_code)
    return _respond(
        request,
        status_code=exc.status_code,
        code=code,
        message=message,
        details=details,
        headers=exc.headers,
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    if not is_versioned_request(request):
        return JSONResponse(content={"detail": jsonable_encoder(exc.errors())}, status_code=422)
    payload = error_response(
        request=request,
        code="REQUEST_VALIDATION_ERROR",
        message="Validation error",
        details={"errors": jsonable_encoder(exc.errors())},
    )
    return JSONResponse(content=payload, status_code=422)


async def company_predicate_exception_handler(
    request: Request, exc: CompanyPredicateError
) -> JSONResponse:
    # A repository call without a company id is a server bug, never a client error.
    logger.error("company_predicate_missing path=%s message=%s", request.url.path, exc.message)
    return _respond(
        request,
        status_code=500,
        code="COMPANY_PREDICATE_REQUIRED",
        message="Internal server error",
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    # Avoid leaking stack traces; return a stable internal error envelope.
    logger.exception("unhandled_error path=%s", request.url.path, exc_info=exc)
    return _respond(request, status_code=500, code="INTERNAL_ERROR", message="Internal server error")
