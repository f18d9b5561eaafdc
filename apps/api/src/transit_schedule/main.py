"""FastAPI application entry point."""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Annotated, Any

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from transit_schedule.config import get_settings
from transit_schedule.dependencies import get_engine
from transit_schedule.errors import ScheduleFeedError
from transit_schedule.logging import (
    bind_request_context,
    clear_request_context,
    get_logger,
    setup_logging,
)
from transit_schedule.routers.admin import router as admin_router
from transit_schedule.routers.schedule import router as schedule_router
from transit_schedule.services.schedule.engine import ScheduleEngine

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    setup_logging()
    logger.info("Starting Transit Schedule API")

    settings = get_settings()
    if settings.refresh_on_startup:
        try:
            await app.state.engine.ensure_fresh()
        except ScheduleFeedError as exc:
            logger.error("Initial static GTFS load failed", error=str(exc))

    yield

    logger.info("Shutting down Transit Schedule API")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Scheduled departures and arrivals from a static GTFS feed",
        lifespan=lifespan,
        docs_url="/docs" if settings.environment != "production" else None,
        redoc_url="/redoc" if settings.environment != "production" else None,
    )
    app.state.engine = ScheduleEngine.from_settings(settings)

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.environment == "development" else [],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Request ID middleware
    @app.middleware("http")
    async def request_context_middleware(request: Request, call_next: Any) -> Any:
        import uuid

        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
        bind_request_context(request_id=request_id, path=request.url.path)

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id

        clear_request_context()
        return response

    # Include routers
    app.include_router(admin_router)
    app.include_router(schedule_router)

    # Health endpoint
    @app.get("/health", tags=["meta"])
    async def health_check(
        engine: Annotated[ScheduleEngine, Depends(get_engine)],
    ) -> dict[str, Any]:
        """Health check endpoint returning application status."""
        settings = get_settings()
        missing_env = settings.missing_required_env()
        schedule = engine.status()

        if missing_env:
            status = "unhealthy"
        elif schedule["loaded"] and schedule["fresh"]:
            status = "healthy"
        else:
            status = "degraded"

        issues: list[str] = []
        if missing_env:
            issues.append("Missing required environment variables: " + ", ".join(missing_env))
        if not schedule["loaded"]:
            issues.append("Static schedule not loaded")
        elif not schedule["fresh"]:
            issues.append("Static schedule is stale")
        if schedule["last_error"]:
            issues.append(f"Last refresh failed: {schedule['last_error']}")

        return {
            "service": settings.app_name,
            "status": status,
            "version": settings.app_version,
            "environment": settings.environment,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "checks": {
                "schedule": {
                    "loaded": schedule["loaded"],
                    "fresh": schedule["fresh"],
                    "loadedAt": schedule["loaded_at"],
                    "refreshing": schedule["refreshing"],
                    "counts": schedule["counts"],
                },
            },
            "issues": issues,
        }

    # Global exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error("Unhandled exception", exc_info=exc, path=request.url.path)
        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_server_error",
                "message": "An unexpected error occurred",
            },
        )

    return app


app = create_app()
