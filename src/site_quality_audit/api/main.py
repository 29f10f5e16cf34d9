"""FastAPI application entry point."""

import logging
import os
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, generate_latest
from starlette.exceptions import HTTPException as StarletteHTTPException

from ..core.errors import AuditBatchError, ErrorKind, classify_error
from .config import get_settings
from .middleware import MetricsMiddleware, RequestLoggingMiddleware
from .routes import batches, health

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    ErrorKind.CONFIGURATION: 503,
    ErrorKind.AUTH: 401,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONFLICT: 409,
    ErrorKind.INVALID: 422,
    ErrorKind.COORDINATOR_FAULT: 500,
}


def init_sentry() -> None:
    """Initialize Sentry error tracking."""
    settings = get_settings()
    sentry_dsn = os.getenv("SENTRY_DSN")

    if sentry_dsn and settings.is_production:
        import sentry_sdk
        from sentry_sdk.integrations.fastapi import FastApiIntegration
        from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

        sentry_sdk.init(
            dsn=sentry_dsn,
            environment=settings.environment,
            release=settings.app_version,
            integrations=[
                FastApiIntegration(),
                SqlalchemyIntegration(),
            ],
            traces_sample_rate=0.1,
        )
        logger.info("Sentry initialized")


def _error(status_code: int, message: str, headers: dict[str, str] | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": message},
        headers=headers,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager for startup/shutdown."""
    settings = get_settings()
    logger.info(f"Starting {settings.app_name} v{settings.app_version}")
    logger.info(f"Environment: {settings.environment}")
    if not settings.worker_url:
        logger.warning("SQA_WORKER_URL is not set; trigger endpoints will respond 503")

    init_sentry()

    from .deps import close_db, init_db

    await init_db()

    logger.info("Application started successfully")
    yield

    await close_db()
    logger.info("Application shutdown complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Fans site quality audits out to the monitoring worker and tracks progress",
        docs_url="/docs" if not settings.is_production else None,
        redoc_url="/redoc" if not settings.is_production else None,
        openapi_url="/openapi.json" if not settings.is_production else None,
        lifespan=lifespan,
    )

    # Add middleware (order matters - last added is outermost)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(MetricsMiddleware)

    @app.exception_handler(AuditBatchError)
    async def audit_batch_error_handler(request: Request, exc: AuditBatchError) -> JSONResponse:
        kind = classify_error(exc)
        status_code = ERROR_STATUS[kind]
        if kind == ErrorKind.COORDINATOR_FAULT:
            logger.error(f"{type(exc).__name__}: {exc}")
        else:
            logger.warning(f"{request.method} {request.url.path} -> {status_code}: {exc}")
        headers = {"WWW-Authenticate": "Bearer"} if kind == ErrorKind.AUTH else None
        return _error(status_code, str(exc), headers)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        return _error(exc.status_code, str(exc.detail), getattr(exc, "headers", None))

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled exception")

        if settings.is_production:
            import sentry_sdk

            sentry_sdk.capture_exception(exc)

        return _error(500, str(exc) or "An unexpected error occurred")

    @app.get("/metrics", include_in_schema=False)
    async def metrics() -> Response:
        """Prometheus metrics endpoint."""
        return Response(
            content=generate_latest(REGISTRY),
            media_type=CONTENT_TYPE_LATEST,
        )

    app.include_router(health.router, tags=["Health"])
    app.include_router(batches.router, tags=["Batches"])

    return app


# Create the app instance
app = create_app()
