"""
Exam portal auth service main application.
"""

import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import uvicorn

from portal.core.config import Settings, get_settings, load_merged_config
from portal.core.dependencies import ServiceContainer, initialize_services
from portal.core.errors import PortalError
from portal.models.schemas import ErrorResponse
from portal.api.v1.auth import router as auth_router
from portal.api.v1.admin import router as admin_router
from portal.adapters.impl.memory_store import InMemoryCredentialStore, InMemorySessionStore
from portal.adapters.impl.sqlite_store import SQLiteCredentialStore, SQLiteSessionStore
from portal.adapters.impl.log_notifier import LoggingInvitationNotifier
from portal.observability.logging import setup_logging
from portal.observability.metrics import (
    CONTENT_TYPE_LATEST, RequestMetricsContext, get_metrics_collector
)
from portal.observability.tracing import setup_tracing
from portal.services.admins import AdminManagementService
from portal.services.auth import AuthenticationService
from portal.services.cleanup import SessionCleanupScheduler
from portal.services.passwords import PasswordHasher
from portal.services.tokens import TokenService

SERVICE_NAME = "exam-portal-auth"
VERSION = "0.1.0"

logger = logging.getLogger(__name__)


def build_services(settings: Settings) -> ServiceContainer:
    """
    Wire stores and services according to the settings.

    Raises:
        ValueError: unsupported store backend
    """
    if settings.store_backend == "memory":
        credentials = InMemoryCredentialStore()
        sessions = InMemorySessionStore()
    elif settings.store_backend == "sqlite":
        credentials = SQLiteCredentialStore(settings.store_path)
        sessions = SQLiteSessionStore(settings.store_path)
    else:
        raise ValueError(f"Unsupported store backend: {settings.store_backend}")

    tokens = TokenService.from_settings(settings, PasswordHasher(settings.password_hash_rounds))
    auth = AuthenticationService(credentials, sessions, tokens)
    admins = AdminManagementService(credentials, auth, LoggingInvitationNotifier())
    cleanup = SessionCleanupScheduler(sessions, settings.session_cleanup_interval_seconds)

    return ServiceContainer(
        settings=settings,
        credentials=credentials,
        sessions=sessions,
        tokens=tokens,
        auth=auth,
        admins=admins,
        cleanup=cleanup,
    )


def _error_response(status_code: int, message: str, errors: Optional[list] = None) -> JSONResponse:
    body = ErrorResponse(message=message, errors=errors)
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))


def create_app(
    settings: Optional[Settings] = None,
    services: Optional[ServiceContainer] = None
) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        settings: Settings to use; loaded from env and config files when omitted
        services: Prebuilt service container; built from settings on startup when omitted
    """
    settings = settings or (services.settings if services else get_settings())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager."""
        # Startup
        setup_logging(settings.log_level, settings.log_format)

        container = services or build_services(settings)
        initialize_services(app, container)
        await container.cleanup.start()

        logger.info(f"{SERVICE_NAME} started in {settings.environment} mode")
        logger.info(f"Using store backend: {settings.store_backend}")

        yield

        # Shutdown
        await container.cleanup.stop()
        logger.info(f"{SERVICE_NAME} shutdown complete")

    app = FastAPI(
        title=SERVICE_NAME,
        description="Authentication and session service for the exam portal",
        version=VERSION,
        lifespan=lifespan
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,  # Auth travels in cookies
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def metrics_middleware(request: Request, call_next):
        with RequestMetricsContext(request.method, "unmatched") as ctx:
            try:
                response = await call_next(request)
            finally:
                # Route template, never the raw path
                route = request.scope.get("route")
                if route is not None:
                    ctx.path = route.path
            ctx.set_status_code(response.status_code)
        response.headers["X-Process-Time"] = str(ctx.elapsed)
        return response

    @app.exception_handler(PortalError)
    async def portal_error_handler(request: Request, exc: PortalError):
        if exc.status_code >= 500:
            logger.error(f"{type(exc).__name__}: {exc.message}")
        return _error_response(exc.status_code, exc.message)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        errors = [
            {
                "field": ".".join(str(part) for part in error["loc"] if part != "body"),
                "message": error["msg"],
            }
            for error in exc.errors()
        ]
        return _error_response(400, "Validation failed", errors)

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=True)
        return _error_response(500, "Internal server error")

    # Include API routers
    app.include_router(auth_router, prefix="/api/v1")
    app.include_router(admin_router, prefix="/api/v1")

    # Health check endpoints
    @app.get("/", tags=["Health"])
    def read_root():
        """Root endpoint providing service info."""
        return {
            "service": SERVICE_NAME,
            "version": VERSION,
            "status": "running"
        }

    @app.get("/health", tags=["Health"])
    @app.get("/healthz", tags=["Health"])
    def health_check():
        """Health check endpoint."""
        return {"status": "healthy"}

    @app.get("/readyz", tags=["Health"])
    def readiness_check(request: Request):
        """Readiness check endpoint, including the cleanup scheduler status."""
        container = getattr(request.app.state, "services", None)
        if container is None:
            return JSONResponse(status_code=503, content={"status": "not ready"})
        return {
            "status": "ready",
            "session_cleanup": container.cleanup.get_status(),
        }

    @app.get("/metrics", tags=["Observability"])
    def metrics():
        """Prometheus metrics endpoint."""
        if not settings.enable_metrics:
            return _error_response(404, "Metrics are disabled")
        return Response(
            content=get_metrics_collector().get_metrics(),
            media_type=CONTENT_TYPE_LATEST
        )

    if settings.enable_tracing:
        app.state.tracer_provider = setup_tracing(
            app, SERVICE_NAME, enable_console=settings.tracing_console
        )

    return app


app = create_app()


def main():
    """Main entry point for the application."""
    import argparse

    parser = argparse.ArgumentParser(description="Exam portal auth service")
    parser.add_argument("--host", help="Host to bind to")
    parser.add_argument("--port", type=int, help="Port to bind to")
    parser.add_argument("--config", help="Config file path")
    parser.add_argument("--log-level", help="Log level")
    parser.add_argument("--reload", action="store_true", help="Enable auto-reload")

    args = parser.parse_args()

    if args.config:
        os.environ["PORTAL_CONFIG_FILE"] = args.config

    # Override settings with CLI args
    settings = load_merged_config()
    if args.host:
        settings.host = args.host
    if args.port:
        settings.port = args.port
    if args.log_level:
        settings.log_level = args.log_level

    # Run server
    uvicorn.run(
        "portal.main:app",
        host=settings.host,
        port=settings.port,
        workers=settings.workers,
        log_level=settings.log_level.lower(),
        reload=args.reload,
    )


if __name__ == "__main__":
    main()
