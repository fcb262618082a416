from __future__ import annotations

from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from adminpanel.apps.api.errors import (
    http_exception_handler,
    tenant_predicate_exception_handler,
    unhandled_exception_handler,
    validation_exception_handler,
)
from adminpanel.apps.api.response import API_VERSION
from adminpanel.apps.api.routes.audit import router as audit_router
from adminpanel.apps.api.routes.auth import router as auth_router
from adminpanel.apps.api.routes.me import router as me_router
from adminpanel.apps.api.routes.roles import router as roles_router
from adminpanel.core.config import get_settings
from adminpanel.core.logging import configure_logging
from adminpanel.persistence.guards import TenantPredicateError


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(title=get_settings().app_name)

    @app.middleware("http")
    async def request_context_middleware(request: Request, call_next):  # type: ignore[override]
        # Preserve incoming request IDs or assign a new one for traceability.
        request_id = request.headers.get("X-Request-Id") or str(uuid4())
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers.setdefault("X-Request-Id", request_id)
        return response

    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(TenantPredicateError, tenant_predicate_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    app.include_router(auth_router, prefix=f"/{API_VERSION}")
    # Per-user menu and grant reads for the UI shell.
    app.include_router(me_router, prefix=f"/{API_VERSION}")
    app.include_router(roles_router, prefix=f"/{API_VERSION}")
    app.include_router(audit_router, prefix=f"/{API_VERSION}")
    return app


app = create_app()
