"""
UOA Auth API Server

Entry point for the FastAPI application.
"""

from __future__ import annotations

import asyncio
from typing import Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from uoa_server.api import router as api_router
from uoa_server.core.config import get_settings
from uoa_server.core.context import AppContext
from uoa_server.core.errors import GENERIC_ERROR_BODY, ServiceError
from uoa_server.core.logging import configure_logging
from uoa_server.core.middleware import RequestContextMiddleware, SecurityHeadersMiddleware
from uoa_server.tasks.login_log_retention import run_login_log_retention

log = structlog.get_logger()


# ---------------------------------------------------------------------------
# Error handlers: every failure leaves with the same body
# ---------------------------------------------------------------------------

async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    log.warning(
        "request.failed",
        error=type(exc).__name__,
        status_code=exc.status_code,
        detail=exc.message,
        **{k: v for k, v in exc.details.items() if k not in ("error", "status_code", "detail")},
    )
    return JSONResponse(status_code=exc.status_code, content=GENERIC_ERROR_BODY)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    log.warning("request.invalid", errors=exc.errors())
    return JSONResponse(status_code=400, content=GENERIC_ERROR_BODY)


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    log.exception("request.crashed", exc_info=exc)
    return JSONResponse(status_code=500, content=GENERIC_ERROR_BODY)


def create_app(context: Optional[AppContext] = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Without an explicit ``context`` the production one is built from the
    environment.
    """
    if context is None:
        settings = get_settings()
        configure_logging(settings.log_level, settings.log_format)
        context = AppContext.from_settings(settings)
    settings = context.settings

    app = FastAPI(
        title="UOA Auth",
        description="Centralized authentication and multi-tenant authorization service.",
        version="0.1.0",
        docs_url="/docs" if settings.debug else None,
        redoc_url=None,
        openapi_url="/openapi.json" if settings.debug else None,
    )
    app.state.context = context

    # Middleware (last added is outermost)
    app.add_middleware(SecurityHeadersMiddleware)
    if settings.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_origins,
            allow_credentials=False,
            allow_methods=["GET", "POST", "PATCH", "PUT", "DELETE"],
            allow_headers=["Content-Type", "Authorization", "X-UOA-Access-Token"],
        )
    app.add_middleware(RequestContextMiddleware)

    app.add_exception_handler(ServiceError, service_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    app.include_router(api_router)

    @app.get("/health", tags=["System"])
    async def health_check():
        """Liveness probe."""
        return {"status": "ok"}

    @app.get("/ready", tags=["System"])
    async def readiness_check():
        """Readiness probe: the database answers."""
        async with context.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return {"status": "ready"}

    @app.on_event("startup")
    async def on_startup():
        log.info("uoa_auth.starting", rate_limit_backend=settings.rate_limit_backend)
        app.state.retention_task = asyncio.create_task(run_login_log_retention(context))

    @app.on_event("shutdown")
    async def on_shutdown():
        log.info("uoa_auth.shutting_down")
        task = getattr(app.state, "retention_task", None)
        if task is not None:
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
        await context.aclose()

    return app


def run() -> None:
    """Console entry point: serve with uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "uoa_server.main:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        log_config=None,
    )
