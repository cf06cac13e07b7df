"""
FastAPI application factory.
"""

import time
import uuid
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from linkvault import __version__
from linkvault.api.dependencies import cleanup_dependencies, start_scheduler
from linkvault.api.routes import health, links
from linkvault.config.settings import get_settings

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the refresh scheduler with the app; drain it on shutdown."""
    logger.info("linkvault API starting up")

    settings = get_settings()
    if settings.tracing_enabled:
        from linkvault.observability.tracing import setup_tracing

        setup_tracing(
            service_name=settings.otel_service_name,
            otlp_endpoint=settings.otel_exporter_otlp_endpoint,
        )

    try:
        if await start_scheduler():
            logger.info("Refresh scheduler started")
    except Exception as e:
        logger.warning("Failed to start refresh scheduler", error=str(e))

    yield

    logger.info("linkvault API shutting down")
    await cleanup_dependencies()


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application
    """
    settings = get_settings()

    openapi_tags = [
        {"name": "health", "description": "Service, scheduler and database health"},
        {"name": "links", "description": "Manual link metadata refresh"},
    ]

    app = FastAPI(
        title="linkvault API",
        description="""
Background metadata refresh for saved links.

## Authentication

`POST` endpoints require an `X-API-KEY` header when `API_KEYS` is set.
        """,
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
        openapi_tags=openapi_tags,
    )

    # Origins from CORS_ORIGINS env var, comma-separated
    cors_origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    # Request logging, correlation ID, and tracing middleware
    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        from linkvault.observability.tracing import get_tracer, is_tracing_enabled

        request_id = (
            request.headers.get("X-Request-ID")
            or request.headers.get("X-Correlation-ID")
            or str(uuid.uuid4())
        )
        structlog.contextvars.bind_contextvars(request_id=request_id)

        start_time = time.perf_counter()

        try:
            if is_tracing_enabled():
                tracer = get_tracer("linkvault.api")
                with tracer.start_as_current_span(
                    f"{request.method} {request.url.path}",
                    attributes={
                        "http.method": request.method,
                        "http.route": request.url.path,
                        "http.request_id": request_id,
                    },
                ) as span:
                    response = await call_next(request)
                    duration = time.perf_counter() - start_time
                    span.set_attribute("http.status_code", response.status_code)
            else:
                response = await call_next(request)
                duration = time.perf_counter() - start_time

            response.headers["X-Request-ID"] = request_id

            logger.info(
                "HTTP request",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=round(duration * 1000, 2),
            )
            return response
        finally:
            structlog.contextvars.clear_contextvars()

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error", "error_type": "internal"},
        )

    app.include_router(health.router, tags=["health"])
    app.include_router(links.router, tags=["links"])

    @app.get("/", include_in_schema=False)
    async def root():
        return {
            "service": "linkvault",
            "version": __version__,
            "docs": "/docs",
        }

    return app
