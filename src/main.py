"""
SLA Tracker - Main Application
===============================

Business-hours SLA tracking service.

Modules:
- SLA: configurations, per-issue instances, pause/resume/complete and
  the periodic breach scan

Clean Architecture Layers:
- Interfaces: FastAPI controllers
- Application: Services and DTOs
- Domain: Entities and value objects
- Infrastructure: Database, calendar file, scheduler
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

# Configuration
from src.config import settings

# Infrastructure
from src.infrastructure.database import (
    close_database,
    create_tables,
    get_session_context,
    init_database,
)

# SLA Module
from src.sla.application import (
    BreachScanResponse,
    ICalendarProvider,
    SLABreachScanService,
    SLAService,
)
from src.sla.infrastructure import (
    CalendarConfigManager,
    SLAScheduler,
    SQLAlchemySLAConfigRepository,
    SQLAlchemySLAInstanceRepository,
)
from src.sla.interfaces import sla_router

# Shared
from src.shared.api.middleware import (
    CorrelationIDMiddleware,
    LoggingMiddleware,
    register_exception_handlers,
)
from src.shared.infrastructure.logging import get_logger, log_latency, setup_logging

logger = get_logger(__name__)


async def run_breach_scan(calendar_provider: ICalendarProvider) -> BreachScanResponse:
    """One breach scan pass in its own session, one savepoint per instance."""
    async with get_session_context() as session:
        instance_repo = SQLAlchemySLAInstanceRepository(session)
        sla_service = SLAService(
            SQLAlchemySLAConfigRepository(session),
            instance_repo,
            calendar_provider
        )
        scanner = SLABreachScanService(
            instance_repo,
            sla_service,
            batch_size=settings.sla_breach_scan_batch_size,
            unit_of_work=session.begin_nested
        )
        with log_latency(logger, "sla_breach_scan"):
            return await scanner.scan()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan manager.

    STARTUP:
    1. Setup structured logging
    2. Initialize database and create tables
    3. Load the default business calendar and watch it for changes
    4. Start the breach scan scheduler

    SHUTDOWN:
    1. Stop the scheduler
    2. Stop the calendar watcher
    3. Close database connections
    """
    # === STARTUP ===
    setup_logging(settings.log_level, settings.environment)
    logger.info("Starting SLA Tracker", extra={
        "version": settings.app_version,
        "environment": settings.environment
    })

    logger.info("Initializing database")
    init_database()

    # Create tables (for development - use Alembic in production)
    await create_tables()

    logger.info("Loading business calendar", extra={"path": str(settings.sla_calendar_path)})
    calendar_manager = CalendarConfigManager()
    calendar_manager.load(settings.sla_calendar_path)
    calendar_manager.start_watching()
    app.state.calendar_provider = calendar_manager

    sla_scheduler = None
    if settings.sla_breach_scan_interval > 0:
        async def breach_scan_job():
            """Background breach scan job."""
            await run_breach_scan(calendar_manager)

        sla_scheduler = SLAScheduler(interval_seconds=settings.sla_breach_scan_interval)
        await sla_scheduler.start(breach_scan_job)
    else:
        logger.info("Breach scan disabled")
    app.state.sla_scheduler = sla_scheduler

    logger.info("SLA Tracker started successfully")

    yield  # Application runs here

    # === SHUTDOWN ===
    logger.info("Shutting down SLA Tracker")

    if sla_scheduler:
        await sla_scheduler.stop()

    calendar_manager.stop_watching()

    await close_database()

    logger.info("SLA Tracker shutdown complete")


def create_app() -> FastAPI:
    """Build the FastAPI application with middleware, handlers and routes."""
    application = FastAPI(
        title="SLA Tracker API",
        description="""
        ## Business-Hours SLA Tracking

        Tracks service level agreements for issues, counting only business
        time (working hours on weekdays, minus holidays, in UTC).

        **Configs** (`/sla/configs`): reusable SLA definitions per organization.

        **Instances** (`/sla/instances`): one tracked SLA per issue and config,
        moving `active -> paused -> active -> met | breached`.

        All `/sla` routes require the `X-Organization-ID` header.
        """,
        version=settings.app_version,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan
    )
    application.state.settings = settings

    # === CORS Middleware ===
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # === Custom Middleware (from shared) ===
    # Added last runs first: correlation id must be set before logging
    application.add_middleware(LoggingMiddleware)
    application.add_middleware(CorrelationIDMiddleware)
    register_exception_handlers(application)

    # === Include Module Routers ===
    application.include_router(sla_router)

    @application.get("/health", tags=["Health"], responses={
        200: {
            "description": "Service is healthy",
            "content": {
                "application/json": {
                    "example": {
                        "status": "healthy",
                        "service": "sla-tracker",
                        "version": "1.0.0",
                        "environment": "development",
                        "checks": {
                            "calendar": "loaded",
                            "sla_scheduler": "running"
                        }
                    }
                }
            }
        }
    })
    async def health_check(request: Request):
        """
        Health check endpoint for load balancers and orchestrators.

        Reports whether the default calendar is loaded and the breach scan
        scheduler is running.
        """
        scheduler = getattr(request.app.state, "sla_scheduler", None)
        checks = {
            "calendar": "loaded" if getattr(request.app.state, "calendar_provider", None) else "not_loaded",
            "sla_scheduler": "running" if scheduler and scheduler.is_running else "stopped"
        }

        return {
            "status": "healthy",
            "service": settings.app_name,
            "version": settings.app_version,
            "environment": settings.environment,
            "checks": checks
        }

    return application


app = create_app()


# === Development Entry Point ===

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "src.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.environment == "development",
        log_level=settings.log_level.lower()
    )
