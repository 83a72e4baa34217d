from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from email.utils import format_datetime
from typing import AsyncIterator
from uuid import uuid4

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.openapi.docs import get_swagger_ui_html
from fastapi.openapi.utils import get_openapi
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from tenantgate.apps.api.errors import (
    http_exception_handler,
    starlette_http_exception_handler,
    company_predicate_exception_handler,
    tenantgate_exception_handler,
    unhandled_exception_handler,
    validation_exception_handler,
)
from tenantgate.apps.api.response import API_VERSION
from tenantgate.apps.api.routes.authz import router as authz_router
from tenantgate.apps.api.routes.company_pages import router as company_pages_router
from tenantgate.apps.api.routes.company_roles import router as company_roles_router
from tenantgate.apps.api.routes.health import router as health_router
from tenantgate.apps.api.routes.user_permissions import router as user_permissions_router
from tenantgate.core.config import get_settings
from tenantgate.core.errors import TenantGateError
from tenantgate.core.logging import configure_logging
from tenantgate.persistence.guards import CompanyPredicateError
from tenantgate.services.audit import drain_pending_events


_LEGACY_SUNSET_DAYS = 90
_LEGACY_EXEMPT_PREFIXES = (
    "/v1",
    "/docs",
    "/openapi.json",
    "/redoc",
    "/health",
)

_ROUTERS = (
    health_router,
    company_roles_router,
    company_pages_router,
    user_permissions_router,
    authz_router,
)


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    yield
    # Flush scheduled audit deliveries before the process exits.
    await drain_pending_events()


def create_app() -> FastAPI:
    configure_logging()
    settings = get_settings()
    app = FastAPI(title="tenantgate API", lifespan=_lifespan)

    @app.middleware("http")
    async def request_context_middleware(request: Request, call_next):  # type: ignore[override]
        # Preserve incoming request IDs or assign a new one for traceability.
        request_id = request.headers.get("X-Request-Id") or str(uuid4())
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers.setdefault("X-Request-Id", request_id)
        # Mark legacy routes with deprecation headers to guide clients to /v1.
        if not request.url.path.startswith(_LEGACY_EXEMPT_PREFIXES):
            sunset_at = datetime.now(timezone.utc) + timedelta(days=_LEGACY_SUNSET_DAYS)
            response.headers["Deprecation"] = "true"
            response.headers["Sunset"] = format_datetime(sunset_at)
            response.headers["Link"] = '</v1/docs>; rel="successor-version"'
        return response

    @app.exception_handler(StarletteHTTPException)
    async def _starlette_http_exception_handler(request: Request, exc: StarletteHTTPException):
        return await starlette_http_exception_handler(request, exc)

    @app.exception_handler(Exception)
    async def _unhandled_exception_handler(request: Request, exc: Exception):
        return await unhandled_exception_handler(request, exc)

    @app.exception_handler(RequestValidationError)
    async def _validation_exception_handler(request: Request, exc: RequestValidationError):
        return await validation_exception_handler(request, exc)

    @app.exception_handler(HTTPException)
    async def _http_exception_handler(request: Request, exc: HTTPException):
        return await http_exception_handler(request, exc)

    @app.exception_handler(TenantGateError)
    async def _tenantgate_exception_handler(request: Request, exc: TenantGateError):
        return await tenantgate_exception_handler(request, exc)

    @app.exception_handler(CompanyPredicateError)
    async def _company_predicate_exception_handler(request: Request, exc: CompanyPredicateError):
        return await company_predicate_exception_handler(request, exc)

    # Mount versioned v1 API routes.
    for router in _ROUTERS:
        app.include_router(router, prefix=f"/{API_VERSION}")
    # Retain unversioned routes as deprecated compatibility aliases for the admin UI.
    for router in _ROUTERS:
        app.include_router(router, include_in_schema=False)

    @app.get("/v1/openapi.json", include_in_schema=False)
    async def openapi_json() -> JSONResponse:
        return JSONResponse(app.openapi())

    @app.get("/v1/docs", include_in_schema=False)
    async def v1_docs() -> HTMLResponse:
        return get_swagger_ui_html(openapi_url="/v1/openapi.json", title=f"{settings.app_name} API v1")

    @app.get("/docs", include_in_schema=False)
    async def docs_redirect() -> RedirectResponse:
        return RedirectResponse(url="/v1/docs")

    def custom_openapi() -> dict:
        if app.openapi_schema:
            return app.openapi_schema
        schema = get_openapi(
            title=f"{settings.app_name} API",
            version=API_VERSION,
            routes=app.routes,
        )
        components = schema.setdefault("components", {})
        security_schemes = components.setdefault("securitySchemes", {})
        security_schemes["BearerAuth"] = {"type": "http", "scheme": "bearer"}
        public_paths = {"/v1/health"}
        for path, operations in schema.get("paths", {}).items():
            if path in public_paths:
                continue
            for operation in operations.values():
                operation.setdefault("security", [{"BearerAuth": []}])
        app.openapi_schema = schema
        return app.openapi_schema

    app.openapi = custom_openapi

    return app


app = create_app()
