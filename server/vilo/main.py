"""FastAPI application initialization and configuration."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from .core.config import settings
from .core.database import close_db, engine, init_db
from .core.dependencies import DatabaseSession
from .core.exceptions import register_exception_handlers
from .core.middleware import setup_middleware
from .core.observability import (
    SERVICE_NAME,
    SERVICE_VERSION,
    instrument_fastapi,
    instrument_sqlalchemy,
    setup_metrics,
    setup_structured_logging,
    setup_tracing,
)
from .core.responses import success_response
from .routers import (
    bookings_router,
    health_router,
    metrics_router,
    promotions_router,
    quote_requests_router,
    refunds_router,
    rooms_router,
    webhooks_router,
)
from .schemas.health import HealthStatus, ReadinessResponse
from .workers.manager import worker_manager

setup_structured_logging()

logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan context manager.

    Sets up observability and the schema, then runs the background workers
    for as long as the app is serving.
    """
    logger.info(
        "Starting Vilo API",
        extra={"environment": settings.environment, "debug": settings.debug},
    )

    try:
        setup_tracing()
        setup_metrics()
        instrument_sqlalchemy(engine)
        logger.info("Observability setup completed")

        await init_db()
        logger.info("Database initialized successfully")

        await worker_manager.start_all()
    except Exception as e:
        logger.error("Failed to initialize application", extra={"error": str(e)}, exc_info=True)
        raise

    logger.info("Application startup complete")

    yield

    logger.info("Shutting down Vilo API")
    try:
        await worker_manager.stop_all()
        logger.info("Background workers stopped")
    finally:
        await close_db()
        logger.info("Database connections closed")

    logger.info("Application shutdown complete")


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        FastAPI: Configured FastAPI application instance
    """
    app = FastAPI(
        title="Vilo API",
        description=(
            "Property rental and hospitality management API: room pricing, bookings, "
            "payments, refunds and group quote requests"
        ),
        version=SERVICE_VERSION,
        debug=settings.debug,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "Retry-After", "traceparent", "tracestate"],
    )

    setup_middleware(app, enable_logging=True)
    instrument_fastapi(app)
    register_exception_handlers(app)

    @app.get(
        "/health",
        status_code=status.HTTP_200_OK,
        tags=["health"],
        summary="Health Check",
    )
    async def health_check(request: Request):
        return success_response(
            {
                "status": HealthStatus.HEALTHY.value,
                "service": SERVICE_NAME,
                "version": SERVICE_VERSION,
                "environment": settings.environment,
            },
            request=request,
        )

    @app.get(
        "/ready",
        tags=["health"],
        summary="Readiness Check",
        responses={503: {"description": "A dependency is unavailable"}},
    )
    async def readiness_check(request: Request, db: AsyncSession = DatabaseSession):
        """Report ready only when the database answers."""
        try:
            await db.execute(text("SELECT 1"))
            database = "ok"
        except Exception as e:
            logger.warning("Readiness check failed", extra={"error": str(e)})
            database = "unavailable"

        ready = database == "ok"
        readiness = ReadinessResponse(
            status=HealthStatus.READY if ready else HealthStatus.NOT_READY,
            service=SERVICE_NAME,
            checks={"database": database},
        )
        if ready:
            return success_response(readiness, request=request)
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "success": False,
                "data": readiness.model_dump(mode="json"),
                "error": {"code": "INTERNAL_ERROR", "message": "Service not ready", "details": None},
                "meta": {"request_id": getattr(request.state, "request_id", None)},
            },
        )

    @app.get("/info", tags=["info"], summary="Service Information")
    async def service_info(request: Request):
        return success_response(
            {
                "service": SERVICE_NAME,
                "version": SERVICE_VERSION,
                "environment": settings.environment,
                "features": {
                    "authentication": True,
                    "idempotency": True,
                    "tracing": bool(settings.otlp_endpoint),
                    "background_workers": settings.workers_enabled,
                    "payment_gateways": ["paystack", "paypal"],
                },
                "endpoints": {
                    "health": "/health",
                    "readiness": "/ready",
                    "metrics": "/metrics",
                    "docs": "/docs" if settings.debug else None,
                },
            },
            request=request,
        )

    app.include_router(health_router)
    app.include_router(rooms_router)
    app.include_router(promotions_router)
    app.include_router(bookings_router)
    app.include_router(refunds_router)
    app.include_router(webhooks_router)
    app.include_router(quote_requests_router)
    app.include_router(metrics_router)

    logger.info("FastAPI application created and configured")
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "vilo.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
        access_log=True,
    )
