"""FastAPI application initialization and configuration."""

import asyncio
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from . import __version__
from .core.config import settings
from .core.database import async_session_factory, close_db, engine, init_db
from .core.exceptions import (
    PersistenceError,
    ProblemDetailsException,
    generic_exception_handler,
    persistence_error_handler,
    problem_details_handler,
    request_validation_handler,
)
from .core.middleware import setup_middleware
from .core.observability import (
    SERVICE_NAME,
    instrument_fastapi,
    instrument_sqlalchemy,
    setup_metrics,
    setup_structured_logging,
    setup_tracing,
)
from .routers import booking, health, metrics, sync, user
from .services.booking_source import BookingSourceClient
from .services.mailer import Mailer
from .services.sync_service import BookingSyncService, load_seed_numbers
from .workers.manager import WorkerManager
from .workers.sync_worker import BookingSyncWorker

# Configure structured logging
setup_structured_logging()

# Configure traditional logging for compatibility
logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)

logger = logging.getLogger(__name__)


async def run_seed_file(sync_service: BookingSyncService, path: str) -> None:
    """Ingest the booking numbers listed in ``path`` once."""
    try:
        numbers = await asyncio.to_thread(load_seed_numbers, path)
    except (OSError, ValueError) as e:
        logger.error(f"Could not read seed file: {e}", extra={"seed_file": path})
        return

    result = await sync_service.run_seed(numbers)
    logger.info(
        "Seed ingestion finished",
        extra={
            "seed_file": path,
            "total": result.total,
            "persisted": result.persisted,
            "skipped": result.skipped,
        },
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan context manager.

    Builds the application-scoped services (booking source client, mailer,
    sync engine, workers) and tears them down on shutdown.
    """
    # Startup
    logger.info("Starting FastAPI application")
    logger.info(f"Environment: {settings.environment}")
    logger.info(f"Debug mode: {settings.debug}")

    seed_task: Optional[asyncio.Task] = None
    try:
        # Setup observability
        setup_tracing()
        setup_metrics()
        instrument_sqlalchemy(engine)
        logger.info("Observability setup completed")

        # Initialize database
        await init_db()
        logger.info("Database initialized successfully")

        source_client = BookingSourceClient(
            settings.booking_source_url,
            api_key=settings.booking_source_api_key,
            timeout=settings.booking_source_timeout,
        )
        app.state.source_client = source_client
        app.state.mailer = Mailer(
            smtp_host=settings.smtp_host,
            smtp_port=settings.smtp_port,
            smtp_user=settings.smtp_user,
            smtp_password=settings.smtp_password,
            from_email=settings.mail_from,
            frontend_url=settings.frontend_url,
            app_name=settings.app_name,
        )
        sync_service = BookingSyncService(
            async_session_factory,
            source_client,
            seed_element_types=settings.seed_element_types,
            scheduled_element_types=settings.scheduled_element_types,
            initial_watermark=settings.sync_initial_watermark,
        )
        app.state.sync_service = sync_service

        worker_manager = WorkerManager()
        if settings.sync_enabled:
            worker_manager.register(BookingSyncWorker(
                sync_service,
                cron_expression=settings.sync_cron,
                run_on_start=settings.sync_run_on_start,
            ))
        app.state.worker_manager = worker_manager

        if settings.seed_file:
            seed_task = asyncio.create_task(run_seed_file(sync_service, settings.seed_file))
            logger.info("Seed ingestion scheduled", extra={"seed_file": settings.seed_file})

        # Start background workers
        await worker_manager.start_all()
        logger.info("Background workers started successfully")
    except Exception as e:
        logger.error(f"Failed to initialize application: {e}")
        raise

    logger.info("Application startup complete")

    yield

    # Shutdown
    logger.info("Shutting down FastAPI application")

    try:
        await app.state.worker_manager.stop_all()
        logger.info("Background workers stopped")

        if seed_task and not seed_task.done():
            seed_task.cancel()
            await asyncio.gather(seed_task, return_exceptions=True)

        await app.state.source_client.close()

        # Close database connections
        await close_db()
        logger.info("Database connections closed")
    except Exception as e:
        logger.error(f"Error during application cleanup: {e}")

    logger.info("Application shutdown complete")


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ProblemDetailsException, problem_details_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(PersistenceError, persistence_error_handler)
    app.add_exception_handler(Exception, generic_exception_handler)


def include_routers(app: FastAPI) -> None:
    app.include_router(health.router)
    app.include_router(booking.router)
    app.include_router(user.router)
    app.include_router(sync.router)
    app.include_router(metrics.router)


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        FastAPI: Configured FastAPI application instance
    """
    app = FastAPI(
        title="Booking Sync API",
        description="Bookings synchronized from an external travel-booking system, with user accounts and JWT auth",
        version=__version__,
        debug=settings.debug,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
    )

    # Setup custom middleware
    setup_middleware(app, enable_logging=True)

    # Instrument FastAPI with OpenTelemetry
    instrument_fastapi(app)

    register_exception_handlers(app)

    @app.get(
        "/health",
        status_code=status.HTTP_200_OK,
        tags=["Health"],
        summary="Health Check",
        response_model=dict,
    )
    async def health_check():
        return {
            "status": "healthy",
            "service": SERVICE_NAME,
            "version": __version__,
            "environment": settings.environment,
            "debug": settings.debug,
        }

    @app.get(
        "/ready",
        status_code=status.HTTP_200_OK,
        tags=["Health"],
        summary="Readiness Check",
        description="Check that the database answers",
        response_model=dict,
    )
    async def readiness_check():
        try:
            async with engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            logger.warning(f"Readiness check failed: {e}")
            return JSONResponse(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                content={"status": "unavailable", "service": SERVICE_NAME, "checks": {"database": "error"}},
            )
        return {"status": "ready", "service": SERVICE_NAME, "checks": {"database": "ok"}}

    @app.get(
        "/info",
        status_code=status.HTTP_200_OK,
        tags=["Info"],
        summary="Service Information",
        response_model=dict,
    )
    async def service_info():
        return {
            "service": SERVICE_NAME,
            "version": __version__,
            "environment": settings.environment,
            "debug": settings.debug,
            "sync": {
                "enabled": settings.sync_enabled,
                "cron": settings.sync_cron,
                "seed_file": settings.seed_file,
            },
            "endpoints": {
                "health": "/health",
                "readiness": "/ready",
                "metrics": "/metrics",
                "docs": "/docs" if settings.debug else None,
            },
        }

    include_routers(app)

    logger.info("FastAPI application created and configured")

    return app


# Create the application instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "booking_api.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
        access_log=True,
    )
