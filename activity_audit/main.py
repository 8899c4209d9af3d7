"""FastAPI application entry point."""
import logging
import traceback
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from activity_audit.api.exceptions import domain_error_handler
from activity_audit.api.routes import activity, admin_sessions, dashboard, impersonation, sessions
from activity_audit.config import Settings, get_settings
from activity_audit.database import create_engine, create_session_factory
from activity_audit.exceptions import TrackingCoreError
from activity_audit.tasks import create_scheduler, start_scheduler, stop_scheduler
from activity_audit.tracking.middleware import ActivityTrackingMiddleware
from activity_audit.version import VERSION


# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

# Silence SQLAlchemy query logging (too verbose)
logging.getLogger('sqlalchemy.engine').setLevel(logging.WARNING)
logging.getLogger('sqlalchemy.pool').setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the application.

    Args:
        settings: Settings to use, read from the environment when omitted
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager for startup and shutdown events."""
        # Startup
        logger.info("Activity Audit API starting...")
        logger.info("  Environment: %s", settings.ENVIRONMENT.upper())
        logger.info("  Database: %s", settings.DATABASE_URL.split('@')[1] if '@' in settings.DATABASE_URL else 'configured')
        logger.info("  Session expiry: %d hours", settings.SESSION_EXPIRY_HOURS)
        logger.info("  Activity tracking: %s", "enabled" if settings.ACTIVITY_TRACKING_ENABLED else "disabled")

        engine = create_engine(settings)
        app.state.engine = engine
        app.state.session_factory = create_session_factory(engine)

        if settings.SCHEDULER_ENABLED:
            logger.info("  Background scheduler: Starting...")
            try:
                create_scheduler(settings, app.state.session_factory)
                await start_scheduler()
                logger.info("  Background scheduler: Started successfully")
            except Exception as e:
                logger.error("  Background scheduler: Failed to start - %s", e)
        else:
            logger.info("  Background scheduler: Disabled (run run_scheduler.py separately)")

        yield  # Application runs

        # Shutdown
        logger.info("Activity Audit API shutting down...")
        try:
            await stop_scheduler()
        except Exception as e:
            logger.error("  Background scheduler: Error during shutdown - %s", e)

        await engine.dispose()

    app = FastAPI(
        title="Activity Audit API",
        description="Session tracking, activity auditing and admin impersonation",
        version=VERSION,
        docs_url="/api/docs" if settings.DEBUG else None,  # Disable docs in production
        redoc_url="/api/redoc" if settings.DEBUG else None,
        lifespan=lifespan,
    )

    # Activity tracking (uses app.state.session_factory set at startup)
    app.add_middleware(ActivityTrackingMiddleware, settings=settings)

    # CORS configuration
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
        allow_headers=["*"],
    )

    # Include API routers
    app.include_router(sessions.router)
    app.include_router(admin_sessions.router)
    app.include_router(activity.router)
    app.include_router(impersonation.router)
    app.include_router(dashboard.router)

    app.add_exception_handler(TrackingCoreError, domain_error_handler)

    # Health check endpoint
    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy", "version": VERSION}

    # Global exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Handle uncaught exceptions."""
        logger.error("Unhandled error on %s %s: %s", request.method, request.url.path, exc, exc_info=True)
        content = {"detail": "Internal server error"}
        if settings.DEBUG:
            content["error"] = str(exc)
            content["traceback"] = traceback.format_exc()
        return JSONResponse(status_code=500, content=content)

    return app


app = create_app()
