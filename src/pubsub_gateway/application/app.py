"""
FastAPI Application Entry Point

Configures the pub/sub gateway application: lifespan (gateway start and
ordered shutdown), middleware, error mapping and routes.

Error mapping:
- PoolExhaustedError        → 503 with Retry-After
- SubscriptionNotFoundError → 404
- GatewayBaseError          → 500 "Broker Messaging Error"
- OSError                   → 400 "File I/O Error"
- anything else             → 500 via ErrorHandlingMiddleware

Author: System Architect
Date: 2025-12-11
"""

import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from pubsub_gateway.application.api.middleware.error_handler import ErrorHandlingMiddleware
from pubsub_gateway.application.api.models.messaging import ErrorResponse
from pubsub_gateway.application.api.routes.health import router as health_router
from pubsub_gateway.application.api.routes.messaging import router as messaging_router
from pubsub_gateway.application.services.gateway import BrokerGateway
from pubsub_gateway.core.config.constants import HEADER_REQUEST_ID, HEADER_RETRY_AFTER
from pubsub_gateway.core.config.settings import get_settings
from pubsub_gateway.core.exceptions import (
    GatewayBaseError,
    PoolExhaustedError,
    SubscriptionNotFoundError,
)
from pubsub_gateway.core.logging.logger import (
    clear_request_id,
    get_logger,
    set_request_id,
    setup_logging,
)
from pubsub_gateway.infrastructure.monitoring.metrics_collector import get_metrics_collector

logger = get_logger(__name__)


# ============================================================================
# LIFESPAN
# ============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application lifecycle.

    Startup builds the gateway from settings unless one was injected into
    create_app(), then warms the pools and starts the supervisor.
    Shutdown tears down subscriptions before closing both pools.
    """
    settings = get_settings()

    setup_logging(log_level=settings.logging.LOG_LEVEL, log_format=settings.logging.LOG_FORMAT)

    logger.info(
        "Starting pub/sub gateway",
        stage="0.0",
        environment=settings.app.ENVIRONMENT,
        version=settings.app.APP_VERSION,
    )

    gateway: BrokerGateway | None = getattr(app.state, "gateway", None)
    if gateway is None:
        gateway = BrokerGateway.from_settings(settings)
        app.state.gateway = gateway

    try:
        await run_in_threadpool(gateway.start)
        logger.info("Application startup complete", stage="0.0")

        yield

    finally:
        logger.info("Shutting down application", stage="0.9")
        await run_in_threadpool(gateway.shutdown)
        logger.info("Application shutdown complete", stage="0.9")


# ============================================================================
# EXCEPTION HANDLERS
# ============================================================================


async def pool_exhausted_handler(request: Request, exc: PoolExhaustedError):
    """No session became available in time; the client may retry."""
    get_metrics_collector().record_error(type(exc).__name__, "HTTP")
    logger.warning("Session pool exhausted", stage="HTTP.8", path=request.url.path, details=exc.details)
    return JSONResponse(
        status_code=503,
        content=ErrorResponse(error="Service Unavailable", message=exc.message).model_dump(),
        headers={HEADER_RETRY_AFTER: "1"},
    )


async def subscription_not_found_handler(request: Request, exc: SubscriptionNotFoundError):
    return JSONResponse(
        status_code=404,
        content=ErrorResponse(error="Subscription Not Found", message=exc.message).model_dump(),
    )


async def gateway_exception_handler(request: Request, exc: GatewayBaseError):
    """Broker failures surfaced by publish, subscribe and listen."""
    get_metrics_collector().record_error(type(exc).__name__, "HTTP")
    logger.error(
        "Broker exception",
        stage="HTTP.8",
        path=request.url.path,
        **exc.to_dict(),
    )
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(error="Broker Messaging Error", message=exc.message).model_dump(),
    )


async def file_io_exception_handler(request: Request, exc: OSError):
    """Upload could not be read."""
    logger.error("File I/O error", stage="HTTP.8", path=request.url.path, error=str(exc))
    return JSONResponse(
        status_code=400,
        content=ErrorResponse(error="File I/O Error", message="Error processing file.").model_dump(),
    )


# ============================================================================
# APPLICATION FACTORY
# ============================================================================


def create_app(gateway: BrokerGateway | None = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        gateway: Pre-built gateway; when omitted the lifespan builds one from settings

    Returns:
        FastAPI: Configured application instance
    """
    settings = get_settings()

    app = FastAPI(
        title=settings.app.APP_NAME,
        version=settings.app.APP_VERSION,
        description="HTTP facade over a pooled pub/sub broker client",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.gateway = gateway

    app.add_middleware(
        ErrorHandlingMiddleware,
        include_traceback=(settings.app.ENVIRONMENT == "development")
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.app.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[HEADER_REQUEST_ID],
    )

    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next):
        """Tag every log line of the request with a correlation id."""
        request_id = request.headers.get(HEADER_REQUEST_ID) or str(uuid.uuid4())
        set_request_id(request_id)
        try:
            response = await call_next(request)
            response.headers[HEADER_REQUEST_ID] = request_id
            return response
        finally:
            clear_request_id()

    app.add_exception_handler(PoolExhaustedError, pool_exhausted_handler)
    app.add_exception_handler(SubscriptionNotFoundError, subscription_not_found_handler)
    app.add_exception_handler(GatewayBaseError, gateway_exception_handler)
    app.add_exception_handler(OSError, file_io_exception_handler)

    base_path = settings.app.API_BASE_PATH
    app.include_router(messaging_router, prefix=base_path)
    app.include_router(health_router, prefix=base_path)

    @app.get("/", tags=["Root"])
    async def root():
        return {
            "name": settings.app.APP_NAME,
            "version": settings.app.APP_VERSION,
            "environment": settings.app.ENVIRONMENT,
            "docs": "/docs",
            "health": f"{base_path}/health",
        }

    return app


app = create_app()


def main() -> None:
    import uvicorn

    settings = get_settings()

    uvicorn.run(
        "pubsub_gateway.application.app:app",
        host=settings.app.API_HOST,
        port=settings.app.API_PORT,
        reload=settings.app.ENVIRONMENT == "development",
        log_level=settings.logging.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()
