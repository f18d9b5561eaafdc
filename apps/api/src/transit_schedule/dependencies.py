"""FastAPI dependencies and shared route helpers."""

from __future__ import annotations

from fastapi import HTTPException, Request

from transit_schedule.errors import NetworkError, ScheduleFeedError
from transit_schedule.logging import get_logger
from transit_schedule.services.schedule.engine import ScheduleEngine

logger = get_logger(__name__)


def get_engine(request: Request) -> ScheduleEngine:
    """Return the engine owned by the running application."""
    return request.app.state.engine


def error_status(exc: ScheduleFeedError) -> int:
    """Network problems are retryable (503); bad upstream data is 502."""
    return 503 if isinstance(exc, NetworkError) else 502


async def ensure_schedule(engine: ScheduleEngine) -> None:
    """Refresh a stale schedule before answering a query.

    A failed refresh is only fatal when there is no earlier snapshot to
    fall back on.
    """
    try:
        await engine.ensure_fresh()
    except ScheduleFeedError as exc:
        if engine.snapshot.is_empty:
            raise HTTPException(status_code=error_status(exc), detail=str(exc)) from exc
        logger.warning(
            "Serving previous schedule after failed refresh",
            error_type=type(exc).__name__,
            error=str(exc),
        )
